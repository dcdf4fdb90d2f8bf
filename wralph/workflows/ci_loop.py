"""
CI feedback loop.

Waits for the CI build of a pull request, and while it fails hands the failure
details to the coding agent for a fix, up to a fixed number of attempts.
"""

import time
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console

from wralph.integrations.agents import AgentHarness
from wralph.integrations.ci import CIProvider
from wralph.integrations.github import detect_repository, find_open_pr_number_for_branch
from wralph.integrations.prompts import render_prompt
from wralph.models import (
    FAILURE_DETAILS_PLACEHOLDER,
    BuildOutcome,
    BuildStatus,
    Config,
    FailureReport,
    FatalReason,
    GitHubRepository,
    LoopOutcome,
    LoopResult,
    RetrySession,
)
from wralph.repo import RepoLayout, branch_name_for
from wralph.utils.logger import get_logger
from wralph.utils.shell import get_current_branch

logger = get_logger(__name__)


class CIFeedbackLoop:
    """Drive one pull request to a green build or run out of attempts.

    Collaborators are injected so the loop can run without git, gh, CI or an
    agent; sleep is injected so waits can be skipped.
    """

    def __init__(
        self,
        config: Config,
        ci: CIProvider,
        agent: AgentHarness,
        layout: RepoLayout,
        api_token: Optional[str],
        current_branch: Callable[[], Optional[str]] = get_current_branch,
        find_pr: Callable[[str], Optional[str]] = find_open_pr_number_for_branch,
        detect_repo: Callable[[], GitHubRepository] = detect_repository,
        sleep: Callable[[float], None] = time.sleep,
        console: Optional[Console] = None,
    ):
        self.config = config
        self.ci = ci
        self.agent = agent
        self.layout = layout
        self.api_token = api_token
        self.current_branch = current_branch
        self.find_pr = find_pr
        self.detect_repo = detect_repo
        self.sleep = sleep
        self.console = console or Console()

    def run(self, identifier: str, pr_number: Optional[str] = None) -> LoopResult:
        """Run the loop for an objective.

        Args:
            identifier: Objective identifier the branch was named after
            pr_number: PR number, looked up by branch when not given

        Returns:
            Loop result; only RESOLVED means the build is green

        Raises:
            GitHubRepositoryError: If the GitHub repository cannot be detected
        """
        branch_name = branch_name_for(identifier, self.config.repo)

        current = self.current_branch()
        if current != branch_name:
            return self._fatal(
                FatalReason.BRANCH_MISMATCH,
                f"Not on the expected branch {branch_name} (current branch: {current or 'unknown'})",
            )

        if not pr_number:
            logger.info(f"Looking up open PR for branch {branch_name}")
            pr_number = self.find_pr(branch_name)
        if not pr_number:
            return self._fatal(FatalReason.NO_PR_FOUND, f"No open PR found for branch {branch_name}")
        logger.info(f"Found PR #{pr_number}")

        if not self.api_token:
            return self._fatal(
                FatalReason.MISSING_API_TOKEN,
                f"ci_api_token is not set in {self.layout.secrets_file}",
                pr_number=pr_number,
            )

        repository = self.detect_repo()
        session = RetrySession(
            issue_identifier=identifier,
            pr_number=pr_number,
            branch_name=branch_name,
            max_retries=self.config.ci.max_retries,
        )
        return self.run_session(session, repository)

    def run_session(self, session: RetrySession, repository: GitHubRepository) -> LoopResult:
        """Wait/fix cycle for an already validated session.

        The attempt budget is checked before any failure details are fetched:
        once max_retries fixes have been tried, a further failed build ends the
        loop as EXHAUSTED without fetching details, writing an artifact or
        invoking the agent.
        """
        while True:
            outcome = self.wait_for_build(session, repository)

            if outcome == BuildOutcome.SUCCESS:
                logger.info(f"CI build passed for PR #{session.pr_number}")
                return self._result(LoopOutcome.RESOLVED, session, "CI build passed")

            if outcome == BuildOutcome.TIMED_OUT:
                return self._result(
                    LoopOutcome.TIMED_OUT,
                    session,
                    f"CI build did not finish within {self.config.ci.wait_timeout}s",
                )

            if session.exhausted:
                return self._result(
                    LoopOutcome.EXHAUSTED,
                    session,
                    f"CI still failing after {session.attempt} fix attempts; manual intervention required",
                )

            session.attempt += 1
            logger.info(f"CI build failed, fix attempt {session.attempt}/{session.max_retries}")

            report = self.fetch_failure_report(session, repository)
            failure_file = self.write_failure_report(session, report)

            instructions = render_prompt(
                self.config.prompts.fix_ci,
                pr_number=session.pr_number,
                failure_file=failure_file,
                plan_file=self.layout.plan_file(session.issue_identifier),
                branch_name=session.branch_name,
            )
            result = self.agent.run(instructions)

            if not result.push_confirmed:
                return self._fatal(
                    FatalReason.PUSH_UNCONFIRMED,
                    "Agent did not confirm that fixes were pushed",
                    pr_number=session.pr_number,
                    attempts=session.attempt,
                )

            cooldown = self.config.ci.fix_cooldown
            logger.info(f"Fixes pushed, waiting {cooldown}s for CI to pick up the new commit")
            self.sleep(cooldown)

    def wait_for_build(self, session: RetrySession, repository: GitHubRepository) -> BuildOutcome:
        """Poll CI until the build concludes or the wait ceiling is reached.

        Statuses other than success and the failure family (not_found, unknown,
        running, ...) mean keep waiting. Each interval polls quietly; when the
        status differs from the previous interval the provider is polled again
        verbosely so pipeline and workflow details are reported.
        """
        ci_config = self.config.ci
        elapsed = 0
        last_status: Optional[BuildStatus] = None

        logger.info(f"Waiting for CI build of PR #{session.pr_number}")

        while elapsed < ci_config.wait_timeout:
            status = self.ci.poll_status(session.pr_number, repository, self.api_token, verbose=False)

            if status == last_status:
                self.console.print(".", end="")
            else:
                status = self.ci.poll_status(session.pr_number, repository, self.api_token, verbose=True)

                if status == BuildStatus.SUCCESS:
                    return BuildOutcome.SUCCESS
                if status.is_failure:
                    logger.warning(f"CI build finished with status: {status.value}")
                    return BuildOutcome.FAILED

                self.console.print(
                    f"CI status: {status.value}, checking again in {ci_config.poll_interval}s"
                )
                last_status = status

            self.sleep(ci_config.poll_interval)
            elapsed += ci_config.poll_interval

        logger.error(f"Timed out after {ci_config.wait_timeout}s waiting for CI")
        return BuildOutcome.TIMED_OUT

    def fetch_failure_report(self, session: RetrySession, repository: GitHubRepository) -> FailureReport:
        """Fetch failure details, substituting a placeholder when that fails."""
        try:
            details = self.ci.fetch_failure_details(session.pr_number, repository, self.api_token)
        except Exception as e:
            logger.warning(f"Could not fetch CI failure details: {e}")
            details = None

        return FailureReport(
            raw_text=details or FAILURE_DETAILS_PLACEHOLDER,
            source_attempt=session.attempt,
        )

    def write_failure_report(self, session: RetrySession, report: FailureReport) -> Path:
        """Write the report for this attempt and return its path."""
        path = self.layout.failure_details_file(session.branch_name, report.source_attempt)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report.raw_text, encoding="utf-8")
        logger.debug(f"Failure details written to {path}")
        return path

    def _result(self, outcome: LoopOutcome, session: RetrySession, message: str) -> LoopResult:
        return LoopResult(
            outcome=outcome,
            message=message,
            attempts=session.attempt,
            pr_number=session.pr_number,
        )

    def _fatal(
        self,
        reason: FatalReason,
        message: str,
        pr_number: Optional[str] = None,
        attempts: int = 0,
    ) -> LoopResult:
        logger.error(message)
        return LoopResult(
            outcome=LoopOutcome.FATAL,
            reason=reason,
            message=message,
            attempts=attempts,
            pr_number=pr_number,
        )
