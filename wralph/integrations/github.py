"""GitHub integration via gh CLI."""

import json
from typing import Optional

from wralph.models import GitHubRepository
from wralph.utils.logger import get_logger
from wralph.utils.shell import ShellError, check_command_exists, run_command

logger = get_logger(__name__)


class GitHubIntegrationError(Exception):
    """GitHub integration error."""
    pass


class GitHubAuthError(GitHubIntegrationError):
    """GitHub authentication error."""
    pass


class GitHubRepositoryError(GitHubIntegrationError):
    """GitHub repository error."""
    pass


def validate_github_auth() -> bool:
    """Validate GitHub authentication via gh CLI.

    Returns:
        True if authenticated, False otherwise
    """
    if not check_command_exists("gh"):
        logger.warning("GitHub CLI (gh) not found. Please install it first.")
        return False

    try:
        result = run_command("gh auth status", check=False)
    except ShellError:
        logger.debug("Failed to check GitHub CLI authentication")
        return False

    if result.success:
        logger.debug("GitHub CLI authentication verified")
        return True

    logger.debug("GitHub CLI not authenticated")
    return False


def detect_repository() -> GitHubRepository:
    """Detect the GitHub repository of the current checkout.

    Raises:
        GitHubRepositoryError: If the repository cannot be determined
    """
    try:
        result = run_command("gh repo view --json owner,name", check=True, timeout=30)
        data = json.loads(result.stdout)
        return GitHubRepository(owner=data["owner"]["login"], name=data["name"])
    except ShellError as e:
        raise GitHubRepositoryError(f"Could not detect GitHub repository: {e.stderr.strip() or e}")
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise GitHubRepositoryError(f"Failed to parse repository data: {e}")


def find_open_pr_number_for_branch(branch_name: str) -> Optional[str]:
    """Return the number of the first open PR whose head is branch_name.

    Returns:
        PR number as a string, or None when there is no such PR
    """
    try:
        result = run_command(
            ["gh", "pr", "list", "--head", branch_name, "--json", "number", "-q", ".[0].number"],
            timeout=30,
        )
    except ShellError as e:
        logger.debug(f"PR lookup for branch {branch_name} failed: {e}")
        return None

    pr_number = result.stdout.strip()
    if not result.success or not pr_number or pr_number == "null":
        return None
    return pr_number


def is_pr_open(identifier: str) -> bool:
    """Check whether the PR for a number or head branch is open."""
    try:
        result = run_command(
            ["gh", "pr", "view", identifier, "--json", "state", "-q", ".state"],
            timeout=30,
        )
    except ShellError:
        return False
    return result.success and result.stdout.strip() == "OPEN"


def get_pr_head_branch(pr_number: str) -> str:
    """Get the head branch name of a pull request.

    Raises:
        GitHubIntegrationError: If the PR cannot be read
    """
    try:
        result = run_command(
            ["gh", "pr", "view", str(pr_number), "--json", "headRefName", "-q", ".headRefName"],
            check=True,
            timeout=30,
        )
    except ShellError as e:
        raise GitHubIntegrationError(f"Failed to read PR #{pr_number}: {e.stderr.strip() or e}")
    return result.stdout.strip()


def fetch_issue_text(identifier: str) -> str:
    """Fetch the human readable text of an issue.

    Raises:
        GitHubIntegrationError: If the issue cannot be fetched
    """
    try:
        result = run_command(["gh", "issue", "view", identifier], check=True, timeout=30)
    except ShellError as e:
        if "could not resolve to an issue" in e.stderr.lower():
            raise GitHubIntegrationError(f"Issue #{identifier} not found")
        raise GitHubIntegrationError(f"Failed to fetch issue #{identifier}: {e.stderr.strip() or e}")
    return result.stdout
