"""
Pull request number extraction from agent output.

Agents report the PR they opened only in free text, so the number is scraped
with an ordered list of matchers, most specific first. The first matcher that
finds a number wins; if none do, open PRs for the branch are queried instead.
"""

import re
from typing import Callable, Optional, Sequence

from wralph.integrations.github import find_open_pr_number_for_branch
from wralph.utils.logger import get_logger

logger = get_logger(__name__)

Matcher = Callable[[str], Optional[str]]

PR_URL_PATTERN = re.compile(r"/[^/\s]+/[^/\s]+/pull/(\d+)", re.IGNORECASE)
PR_NUMBER_FIELD_PATTERN = re.compile(
    r"PR\s+Number\s*(?:\*\*)?\s*:\s*(?:\*\*)?\s*#?(\d+)", re.IGNORECASE
)
PR_HEADLINE_PATTERN = re.compile(
    r"^[ \t]*(?:[-*+][ \t]+)?(?:#{1,6}[ \t]+)?(?:\*\*)?(?:PR|Pull Request)[: \t]+(?:\*\*)?[ \t]*#?(\d+)",
    re.IGNORECASE | re.MULTILINE,
)
PR_TOKEN_PATTERN = re.compile(r"\b(?:PR|Pull Request)[: \t]+(?:\*\*)?[ \t]*#?(\d+)", re.IGNORECASE)
PR_LOOSE_PATTERN = re.compile(r"(?:PR|Pull Request)[^0-9]*#?(\d+)", re.IGNORECASE)

FOUND_PREFIX_PATTERN = re.compile(r"\bFound\s*$", re.IGNORECASE)


def match_pr_url(text: str) -> Optional[str]:
    """A .../<owner>/<repo>/pull/<n> URL on any host."""
    match = PR_URL_PATTERN.search(text)
    return match.group(1) if match else None


def match_pr_number_field(text: str) -> Optional[str]:
    """A labelled "PR Number: #123" field, optionally in bold."""
    match = PR_NUMBER_FIELD_PATTERN.search(text)
    return match.group(1) if match else None


def match_pr_headline(text: str) -> Optional[str]:
    """"PR #123" at a line start, after a list bullet or a markdown heading."""
    match = PR_HEADLINE_PATTERN.search(text)
    return match.group(1) if match else None


def preceded_by_found(text: str, position: int) -> bool:
    """True when the word "Found" immediately precedes position."""
    return bool(FOUND_PREFIX_PATTERN.search(text[:position]))


def match_pr_token(text: str) -> Optional[str]:
    """A "PR #123" token anywhere, unless it reads "Found PR #123".

    wralph logs "Found PR #N" itself; those lines can end up in captured agent
    context and must not be mistaken for the agent's answer.
    """
    for match in PR_TOKEN_PATTERN.finditer(text):
        if not preceded_by_found(text, match.start()):
            return match.group(1)
    return None


def match_pr_loose(text: str) -> Optional[str]:
    """Any "PR" followed eventually by digits."""
    match = PR_LOOSE_PATTERN.search(text)
    return match.group(1) if match else None


DEFAULT_MATCHERS: tuple[Matcher, ...] = (
    match_pr_url,
    match_pr_number_field,
    match_pr_headline,
    match_pr_token,
    match_pr_loose,
)


class PRNumberExtractor:
    """Recover a pull request number from agent output."""

    def __init__(
        self,
        matchers: Sequence[Matcher] = DEFAULT_MATCHERS,
        find_pr: Callable[[str], Optional[str]] = find_open_pr_number_for_branch,
    ):
        self.matchers = tuple(matchers)
        self.find_pr = find_pr

    def extract_from_text(self, text: str) -> Optional[str]:
        for matcher in self.matchers:
            pr_number = matcher(text)
            if pr_number:
                logger.debug(f"PR number {pr_number} matched by {matcher.__name__}")
                return pr_number
        return None

    def extract(self, agent_output: Optional[str], branch_name: str) -> Optional[str]:
        """Extract the PR number, falling back to the open PR for branch_name.

        Returns:
            PR number as a string, or None if every strategy failed
        """
        pr_number = self.extract_from_text(agent_output or "")
        if pr_number:
            return pr_number

        logger.info(f"No PR number in agent output, looking up open PR for branch {branch_name}")
        return self.find_pr(branch_name)
