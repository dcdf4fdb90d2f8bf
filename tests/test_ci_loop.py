"""Tests for the CI feedback loop."""

from unittest.mock import Mock

import pytest

from wralph.models import (
    FAILURE_DETAILS_PLACEHOLDER,
    BuildOutcome,
    BuildStatus,
    CIConfig,
    Config,
    FatalReason,
    LoopOutcome,
    RepoConfig,
    RetrySession,
)
from wralph.integrations.ci import CIProviderError
from wralph.workflows.ci_loop import CIFeedbackLoop

FAILED = BuildStatus.FAILED
SUCCESS = BuildStatus.SUCCESS


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_loop(layout, repository, quiet_console, sleeps):
    """Build a loop on branch issue-42 with PR #7 and fake collaborators."""

    def _make_loop(ci, agent, config=None, current_branch="issue-42", find_pr=None, api_token="token"):
        return CIFeedbackLoop(
            config=config or Config(),
            ci=ci,
            agent=agent,
            layout=layout,
            api_token=api_token,
            current_branch=lambda: current_branch,
            find_pr=find_pr or Mock(return_value="7"),
            detect_repo=lambda: repository,
            sleep=sleeps.append,
            console=quiet_console,
        )

    return _make_loop


class TestPreconditions:
    """Test the checks made before any CI call."""

    def test_branch_mismatch_is_fatal_without_ci_calls(self, make_loop, scripted_ci, scripted_agent):
        """Test running from the wrong branch stops before polling CI."""
        ci = scripted_ci([SUCCESS])
        find_pr = Mock(return_value="7")
        loop = make_loop(ci, scripted_agent(), current_branch="main", find_pr=find_pr)

        result = loop.run("42")

        assert result.outcome == LoopOutcome.FATAL
        assert result.reason == FatalReason.BRANCH_MISMATCH
        assert ci.polls == 0
        find_pr.assert_not_called()

    def test_no_pr_found_is_fatal(self, make_loop, scripted_ci, scripted_agent):
        """Test a missing PR stops the loop."""
        ci = scripted_ci([SUCCESS])
        find_pr = Mock(return_value=None)
        loop = make_loop(ci, scripted_agent(), find_pr=find_pr)

        result = loop.run("42")

        assert result.outcome == LoopOutcome.FATAL
        assert result.reason == FatalReason.NO_PR_FOUND
        find_pr.assert_called_once_with("issue-42")
        assert ci.polls == 0

    def test_given_pr_number_skips_lookup(self, make_loop, scripted_ci, scripted_agent):
        """Test an explicit PR number is used as is."""
        find_pr = Mock(return_value="7")
        loop = make_loop(scripted_ci([SUCCESS]), scripted_agent(), find_pr=find_pr)

        result = loop.run("42", "99")

        assert result.succeeded
        assert result.pr_number == "99"
        find_pr.assert_not_called()

    def test_missing_api_token_is_fatal_without_ci_calls(self, make_loop, scripted_ci, scripted_agent):
        """Test a missing token is reported as a configuration error."""
        ci = scripted_ci([SUCCESS])
        loop = make_loop(ci, scripted_agent(), api_token=None)

        result = loop.run("42")

        assert result.outcome == LoopOutcome.FATAL
        assert result.reason == FatalReason.MISSING_API_TOKEN
        assert "ci_api_token" in result.message
        assert ci.polls == 0

    def test_custom_branch_template(self, make_loop, scripted_ci, scripted_agent):
        """Test the expected branch follows the configured template."""
        config = Config(repo=RepoConfig(branch_name="wralph/{identifier}"))
        loop = make_loop(scripted_ci([SUCCESS]), scripted_agent(), config=config, current_branch="wralph/42")

        assert loop.run("42").succeeded


class TestRetries:
    """Test the wait/fix cycle."""

    def test_green_build_resolves_without_fixes(self, make_loop, scripted_ci, scripted_agent, sleeps):
        """Test a passing build resolves immediately."""
        agent = scripted_agent()
        result = make_loop(scripted_ci([SUCCESS]), agent).run("42")

        assert result.outcome == LoopOutcome.RESOLVED
        assert result.attempts == 0
        assert agent.instructions == []
        assert sleeps == []

    def test_two_failures_then_success(self, make_loop, scripted_ci, scripted_agent, sleeps):
        """Test [failed, failed, success] resolves after exactly two fixes."""
        agent = scripted_agent()
        result = make_loop(scripted_ci([FAILED, FAILED, SUCCESS]), agent).run("42")

        assert result.outcome == LoopOutcome.RESOLVED
        assert result.attempts == 2
        assert len(agent.instructions) == 2
        assert sleeps == [60, 60]

    def test_failing_forever_exhausts_after_max_retries(self, make_loop, scripted_ci, scripted_agent):
        """Test a build that never passes gets exactly max_retries fixes."""
        agent = scripted_agent()
        ci = scripted_ci([FAILED])
        config = Config(ci=CIConfig(max_retries=3))

        result = make_loop(ci, agent, config=config).run("42")

        assert result.outcome == LoopOutcome.EXHAUSTED
        assert result.attempts == 3
        assert len(agent.instructions) == 3
        assert ci.polls == 4

    def test_exhaustion_skips_failure_details(self, make_loop, scripted_ci, scripted_agent, layout):
        """Test the failed build past the budget fetches no details and writes no artifact."""
        ci = scripted_ci([FAILED])
        config = Config(ci=CIConfig(max_retries=2))

        result = make_loop(ci, scripted_agent(), config=config).run("42")

        assert result.outcome == LoopOutcome.EXHAUSTED
        assert ci.detail_calls == 2
        assert sorted(p.name for p in layout.tmp_dir.iterdir()) == [
            "issue-42_failure_details_1_1.txt",
            "issue-42_failure_details_2_2.txt",
        ]

    def test_default_retry_cap_is_ten(self, make_loop, scripted_ci, scripted_agent):
        """Test the default configuration allows ten fixes."""
        agent = scripted_agent()

        result = make_loop(scripted_ci([FAILED]), agent).run("42")

        assert result.outcome == LoopOutcome.EXHAUSTED
        assert result.attempts == 10
        assert len(agent.instructions) == 10

    @pytest.mark.parametrize("status", [BuildStatus.ERROR, BuildStatus.CANCELED, BuildStatus.UNAUTHORIZED])
    def test_failure_family_triggers_a_fix(self, make_loop, scripted_ci, scripted_agent, status):
        """Test every failed-family status is treated as a failed build."""
        agent = scripted_agent()

        result = make_loop(scripted_ci([status, SUCCESS]), agent).run("42")

        assert result.succeeded
        assert result.attempts == 1

    def test_unconfirmed_push_is_fatal_without_sleep_or_repoll(self, make_loop, scripted_ci, scripted_agent, sleeps):
        """Test missing FIXES_PUSHED stops the loop at once."""
        ci = scripted_ci([FAILED, SUCCESS])
        agent = scripted_agent("I looked at the failure but could not fix it.")

        result = make_loop(ci, agent).run("42")

        assert result.outcome == LoopOutcome.FATAL
        assert result.reason == FatalReason.PUSH_UNCONFIRMED
        assert result.attempts == 1
        assert sleeps == []
        assert ci.polls == 1

    def test_sentinel_quoted_in_narration_counts_as_confirmation(self, make_loop, scripted_ci, scripted_agent):
        """Test the sentinel check is a plain text search (false positives possible)."""
        agent = scripted_agent('I was told to print "FIXES_PUSHED" but did nothing.')

        result = make_loop(scripted_ci([FAILED, SUCCESS]), agent).run("42")

        assert result.succeeded

    def test_misspelled_sentinel_is_not_confirmation(self, make_loop, scripted_ci, scripted_agent):
        """Test a near miss of the sentinel is not accepted (false negatives possible)."""
        agent = scripted_agent("FIXES PUSHED")

        result = make_loop(scripted_ci([FAILED, SUCCESS]), agent).run("42")

        assert result.reason == FatalReason.PUSH_UNCONFIRMED


class TestWaitForBuild:
    """Test CI polling."""

    def test_not_found_forever_times_out_after_120_polls(self, make_loop, scripted_ci, scripted_agent, sleeps):
        """Test a 3600s ceiling at 30s intervals gives up after 120 polls."""
        ci = scripted_ci([BuildStatus.NOT_FOUND])
        agent = scripted_agent()

        result = make_loop(ci, agent).run("42")

        assert result.outcome == LoopOutcome.TIMED_OUT
        assert result.outcome != LoopOutcome.EXHAUSTED
        assert result.attempts == 0
        assert ci.polls == 120
        assert sleeps == [30] * 120
        assert agent.instructions == []

    def test_timeout_after_fixes_keeps_attempt_count(self, make_loop, scripted_ci, scripted_agent):
        """Test a timeout after a fix reports the attempts consumed."""
        ci = scripted_ci([FAILED, BuildStatus.RUNNING])
        config = Config(ci=CIConfig(wait_timeout=90, poll_interval=30))

        result = make_loop(ci, scripted_agent(), config=config).run("42")

        assert result.outcome == LoopOutcome.TIMED_OUT
        assert result.attempts == 1

    def test_in_progress_statuses_keep_waiting(self, make_loop, scripted_ci, scripted_agent, sleeps, repository):
        """Test running/pending/unknown statuses are polled again."""
        ci = scripted_ci([BuildStatus.RUNNING, BuildStatus.PENDING, BuildStatus.UNKNOWN, SUCCESS])
        loop = make_loop(ci, scripted_agent())
        session = RetrySession(issue_identifier="42", pr_number="7", branch_name="issue-42")

        assert loop.wait_for_build(session, repository) == BuildOutcome.SUCCESS
        assert ci.polls == 4
        assert sleeps == [30, 30, 30]

    def test_unchanged_status_prints_progress_marker(self, make_loop, scripted_ci, scripted_agent, repository, quiet_console):
        """Test repeated statuses print a dot instead of the full status."""
        ci = scripted_ci([BuildStatus.RUNNING, BuildStatus.RUNNING, BuildStatus.RUNNING, SUCCESS])
        loop = make_loop(ci, scripted_agent())
        session = RetrySession(issue_identifier="42", pr_number="7", branch_name="issue-42")

        loop.wait_for_build(session, repository)

        output = quiet_console.file.getvalue()
        assert output.count("CI status: running") == 1
        assert ".." in output

    def test_status_change_polls_verbosely(self, make_loop, scripted_ci, scripted_agent, repository):
        """Test details are re-polled on every status change, not only the first."""
        ci = scripted_ci([BuildStatus.NOT_FOUND, BuildStatus.RUNNING, BuildStatus.RUNNING, SUCCESS])
        loop = make_loop(ci, scripted_agent())
        session = RetrySession(issue_identifier="42", pr_number="7", branch_name="issue-42")

        assert loop.wait_for_build(session, repository) == BuildOutcome.SUCCESS
        assert ci.polls == 4
        # not_found, running, success; the repeated running stays quiet
        assert ci.verbose_polls == 3


class TestFailureReports:
    """Test failure artifacts and fix instructions."""

    def test_artifact_written_before_agent_runs(self, make_loop, scripted_ci, scripted_agent, layout):
        """Test the agent never gets a path to an unwritten report."""
        expected = layout.failure_details_file("issue-42", 1)
        seen = {}

        agent = scripted_agent()
        original_invoke = agent.invoke

        def invoke(instructions):
            seen["exists"] = expected.exists()
            return original_invoke(instructions)

        agent.invoke = invoke
        make_loop(scripted_ci([FAILED, SUCCESS], details="Job: lint (#3) failed."), agent).run("42")

        assert seen["exists"] is True
        assert str(expected) in agent.instructions[0]

    def test_artifact_round_trip_is_byte_identical(self, make_loop, scripted_ci, scripted_agent, layout):
        """Test the report read back equals what CI returned."""
        details = "Job: test (#12) failed.\nFAILED STEP: pytest\n\nLOG TAIL:\nE   AssertionError: ✗ 1 != 2\n"

        make_loop(scripted_ci([FAILED, SUCCESS], details=details), scripted_agent()).run("42")

        path = layout.failure_details_file("issue-42", 1)
        assert path.read_bytes() == details.encode("utf-8")

    def test_one_artifact_per_attempt(self, make_loop, scripted_ci, scripted_agent, layout):
        """Test each attempt writes its own report."""
        make_loop(scripted_ci([FAILED, FAILED, SUCCESS]), scripted_agent()).run("42")

        assert layout.failure_details_file("issue-42", 1).exists()
        assert layout.failure_details_file("issue-42", 2).exists()
        assert not layout.failure_details_file("issue-42", 3).exists()

    def test_fix_instruction_references_plan_artifact_and_branch(self, make_loop, scripted_ci, scripted_agent, layout):
        """Test the fix prompt carries everything the agent needs."""
        agent = scripted_agent()

        make_loop(scripted_ci([FAILED, SUCCESS]), agent).run("42")

        instructions = agent.instructions[0]
        assert "PR #7" in instructions
        assert str(layout.plan_file("42")) in instructions
        assert str(layout.failure_details_file("issue-42", 1)) in instructions
        assert "`issue-42`" in instructions

    def test_details_fetch_error_uses_placeholder(self, make_loop, scripted_ci, scripted_agent, layout):
        """Test a failing details fetch is soft."""
        ci = scripted_ci([FAILED, SUCCESS], details_error=CIProviderError("connection refused"))

        result = make_loop(ci, scripted_agent()).run("42")

        assert result.succeeded
        assert layout.failure_details_file("issue-42", 1).read_text() == FAILURE_DETAILS_PLACEHOLDER

    def test_empty_details_use_placeholder(self, make_loop, scripted_ci, scripted_agent, layout):
        """Test empty details are replaced by the placeholder."""
        make_loop(scripted_ci([FAILED, SUCCESS], details=""), scripted_agent()).run("42")

        assert layout.failure_details_file("issue-42", 1).read_text() == FAILURE_DETAILS_PLACEHOLDER

    def test_branch_with_slash_gives_flat_artifact_name(self, make_loop, scripted_ci, scripted_agent, layout):
        """Test path-unsafe branch characters never reach the filename."""
        config = Config(repo=RepoConfig(branch_name="feature/issue-{identifier}"))

        make_loop(
            scripted_ci([FAILED, SUCCESS]), scripted_agent(), config=config, current_branch="feature/issue-42"
        ).run("42")

        written = list(layout.tmp_dir.iterdir())
        assert len(written) == 1
        assert written[0].parent == layout.tmp_dir
        assert "/" not in written[0].name
