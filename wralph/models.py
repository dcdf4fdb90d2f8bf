"""Data models for wralph."""

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

PUSH_CONFIRMATION_SENTINEL = "FIXES_PUSHED"
FAILURE_DETAILS_PLACEHOLDER = "Could not fetch failure details"


class BuildStatus(str, Enum):
    """Raw CI status reported by a single poll."""

    SUCCESS = "success"
    FAILED = "failed"
    ERROR = "error"
    CANCELED = "canceled"
    UNAUTHORIZED = "unauthorized"
    RUNNING = "running"
    PENDING = "pending"
    ON_HOLD = "on_hold"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "BuildStatus":
        """Map a provider status string onto a known status, UNKNOWN otherwise."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_failure(self) -> bool:
        return self in FAILED_BUILD_STATUSES

    @property
    def is_in_progress(self) -> bool:
        return self in (BuildStatus.RUNNING, BuildStatus.PENDING, BuildStatus.ON_HOLD)


FAILED_BUILD_STATUSES = frozenset(
    {BuildStatus.FAILED, BuildStatus.ERROR, BuildStatus.CANCELED, BuildStatus.UNAUTHORIZED}
)


class BuildOutcome(str, Enum):
    """Result of waiting for a CI build to conclude."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class LoopOutcome(str, Enum):
    """Terminal states of the CI feedback loop."""

    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed_out"
    FATAL = "fatal"


class FatalReason(str, Enum):
    """Why the CI feedback loop stopped without retrying."""

    BRANCH_MISMATCH = "branch_mismatch"
    NO_PR_FOUND = "no_pr_found"
    MISSING_API_TOKEN = "missing_api_token"
    PUSH_UNCONFIRMED = "push_unconfirmed"


class RetrySession(BaseModel):
    """Mutable state owned by one run of the CI feedback loop."""

    issue_identifier: str = Field(description="Issue/objective identifier")
    pr_number: str = Field(description="Pull request number")
    branch_name: str = Field(description="PR head branch")
    attempt: int = Field(default=0, description="Fix attempts made so far")
    max_retries: int = Field(default=10, description="Maximum fix attempts")

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def validate_attempt_bounds(self) -> "RetrySession":
        """Keep 0 <= attempt <= max_retries."""
        if self.attempt < 0 or self.attempt > self.max_retries:
            raise ValueError(
                f"attempt must be between 0 and {self.max_retries}, got {self.attempt}"
            )
        return self

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_retries


class FailureReport(BaseModel):
    """CI failure diagnostics for one attempt."""

    raw_text: str = Field(description="Failure details as fetched from CI")
    source_attempt: int = Field(description="Attempt number the report belongs to")


class AgentInvocationResult(BaseModel):
    """Output of one agent invocation."""

    output_text: str = Field(default="", description="Raw agent output")
    push_confirmed: bool = Field(
        default=False, description="Whether the agent reported pushing its fixes"
    )

    @classmethod
    def from_output(cls, output: str | None) -> "AgentInvocationResult":
        """Build a result, deriving push confirmation from the sentinel.

        The agent's output format is not guaranteed, so a sentinel quoted back
        in narration counts as a confirmation and a misspelled one does not.
        """
        text = output or ""
        return cls(output_text=text, push_confirmed=PUSH_CONFIRMATION_SENTINEL in text)


class LoopResult(BaseModel):
    """Final result of the CI feedback loop."""

    outcome: LoopOutcome = Field(description="Terminal state")
    reason: FatalReason | None = Field(default=None, description="Fatal reason, if any")
    message: str = Field(default="", description="Human readable summary")
    attempts: int = Field(default=0, description="Fix attempts consumed")
    pr_number: str | None = Field(default=None, description="Pull request number")

    @property
    def succeeded(self) -> bool:
        return self.outcome == LoopOutcome.RESOLVED


class GitHubRepository(BaseModel):
    """GitHub repository context model."""

    owner: str = Field(description="Repository owner")
    name: str = Field(description="Repository name")

    @property
    def full_name(self) -> str:
        """Get full repository name (owner/name)."""
        return f"{self.owner}/{self.name}"


class WorktreeInfo(BaseModel):
    """Worktree information model."""

    path: str = Field(description="Worktree path")
    branch: str = Field(description="Branch name")
    head: str | None = Field(default=None, description="HEAD commit")

    @property
    def path_obj(self) -> Path:
        """Get Path object for worktree path."""
        return Path(self.path)

    def exists(self) -> bool:
        """Check if worktree path exists."""
        return self.path_obj.exists()


class ObjectiveRepositoryConfig(BaseModel):
    """Where objectives (issues) are fetched from."""

    source: str = Field(default="github_issues", description="Objective repository adapter")


class CIConfig(BaseModel):
    """CI provider and feedback loop settings."""

    source: str = Field(default="circle_ci", description="CI adapter (circle_ci|custom)")
    class_name: str | None = Field(
        default=None, description="CIProvider subclass name when source is 'custom'"
    )
    max_retries: int = Field(default=10, description="Maximum fix attempts")
    poll_interval: int = Field(default=30, description="Seconds between CI polls")
    wait_timeout: int = Field(default=3600, description="Max seconds to wait for a build")
    fix_cooldown: int = Field(
        default=60, description="Seconds to wait after a pushed fix before polling again"
    )
    log_tail_lines: int = Field(default=30, description="Log lines kept per failing job")

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate max retries is reasonable."""
        if v < 1:
            raise ValueError("Max retries must be at least 1")
        if v > 50:
            raise ValueError("Max retries must be at most 50")
        return v

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Poll interval must be at least 1 second")
        return v

    @field_validator("fix_cooldown")
    @classmethod
    def validate_fix_cooldown(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Fix cooldown cannot be negative")
        return v

    @field_validator("wait_timeout")
    @classmethod
    def validate_wait_timeout(cls, v: int) -> int:
        """Validate the CI wait ceiling."""
        if v < 1:
            raise ValueError("Wait timeout must be at least 1 second")
        if v > 86400:
            raise ValueError("Wait timeout cannot exceed 24 hours")
        return v

    @model_validator(mode="after")
    def validate_custom_class_name(self) -> "CIConfig":
        """Require class_name for custom adapters."""
        if self.source == "custom" and not self.class_name:
            raise ValueError("class_name is required when source is 'custom'")
        return self


class AgentHarnessConfig(BaseModel):
    """Agent harness settings."""

    source: str = Field(default="claude_code", description="Agent adapter (claude_code|opencode)")
    flags: list[str] = Field(
        default_factory=lambda: ["dangerously-skip-permissions"],
        description="Flags passed to the agent CLI (without leading dashes)",
    )


class RepoConfig(BaseModel):
    """Repository conventions."""

    branch_name: str = Field(default="issue-{identifier}", description="Branch naming template")
    worktree_base: str = Field(default="../{project}-worktrees", description="Worktree base path")

    @field_validator("branch_name")
    @classmethod
    def validate_branch_name(cls, v: str) -> str:
        """Validate branch naming template."""
        if "{identifier}" not in v:
            raise ValueError("Branch naming template must contain {identifier}")
        invalid_chars = [":", "~", "^", "?", "*", "[", "\\", " "]
        for char in invalid_chars:
            if char in v:
                raise ValueError(f"Branch naming template contains invalid character: '{char}'")
        return v


DEFAULT_EXECUTE_WITH_PLAN_PROMPT = """\
You previously created a plan to solve objective #{issue_number}. You can find the plan in the file: `{plan_file}`. You have been placed in a git worktree for the branch `{branch_name}`.

Do as follows:

1. Execute your plan:
   - Make the necessary changes to solve the objective
   - Commit your changes (including the plan) with a descriptive message that references the objective
   - Push the branch to the remote
   - Create a pull request, referencing the objective in the body like "Fixes #{issue_number}"

2. After creating the PR, output the PR number and its URL so I can track it.

Please proceed with these steps.
"""

DEFAULT_EXECUTE_WITHOUT_PLAN_PROMPT = """\
You need to solve objective #{issue_number}. The objective is described in the file: `{objective_file}`. You have been placed in a git worktree for the branch `{branch_name}`.

Do as follows:

1. Read the objective and solve it:
   - Make the necessary changes to solve the objective
   - Commit your changes with a descriptive message that references the objective
   - Push the branch to the remote
   - Create a pull request, referencing the objective in the body like "Fixes #{issue_number}"

2. After creating the PR, output the PR number and its URL so I can track it.

Please proceed with these steps.
"""

DEFAULT_FEEDBACK_PROMPT = """\
Background: You previously created a plan (found in the file {plan_file}) and executed changes into a Pull Request
from the current branch ({branch_name}) to the git origin. You can compare this branch against the default branch
to see your proposed changes.

The user has reviewed your Pull Request and requested the following changes:

{changes}

Do as follows:
  1. Review your original plan that you documented in the plan file: `{plan_file}`
  2. Analyze the code changes that you've made in this branch by comparing it to the default branch
  3. Review the user input
  4. Make the necessary changes to address the issues raised by the user
  5. Commit and push the changes to the Pull Request branch
  6. After pushing, output "FIXES_PUSHED" so I know you've completed the fixes
"""

DEFAULT_FIX_CI_PROMPT = """\
The CI build for PR #{pr_number} has failed. The failure details have been logged into the following file:

{failure_file}

Do as follows:
1. Review your original plan that you documented in the plan file: `{plan_file}`
2. Analyze the failures logged in the file above
3. Make the necessary changes to fix the issues
4. Commit and push the changes to the PR branch
5. After pushing, output "FIXES_PUSHED" so I know you've completed the fixes

The PR branch is: `{branch_name}`
"""


class PromptsConfig(BaseModel):
    """Agent instruction templates using {name} placeholders."""

    execute_with_plan: str = Field(default=DEFAULT_EXECUTE_WITH_PLAN_PROMPT)
    execute_without_plan: str = Field(default=DEFAULT_EXECUTE_WITHOUT_PLAN_PROMPT)
    feedback: str = Field(default=DEFAULT_FEEDBACK_PROMPT)
    fix_ci: str = Field(default=DEFAULT_FIX_CI_PROMPT)

    @field_validator("execute_with_plan", "execute_without_plan", "feedback", "fix_ci")
    @classmethod
    def validate_prompts(cls, v: str) -> str:
        """Validate prompts are not empty."""
        if not v or not v.strip():
            raise ValueError("Prompt template cannot be empty")
        return v


class Config(BaseModel):
    """Main configuration model."""

    objective_repository: ObjectiveRepositoryConfig = Field(
        default_factory=ObjectiveRepositoryConfig
    )
    ci: CIConfig = Field(default_factory=CIConfig)
    agent_harness: AgentHarnessConfig = Field(default_factory=AgentHarnessConfig)
    repo: RepoConfig = Field(default_factory=RepoConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)

    model_config = {"extra": "allow"}


class Secrets(BaseModel):
    """Secrets loaded from .wralph/secrets.yaml."""

    ci_api_token: str | None = Field(default=None, description="CI provider API token")

    model_config = {"extra": "allow"}

    @field_validator("ci_api_token", mode="before")
    @classmethod
    def blank_token_is_missing(cls, v: Any) -> Any:
        if v is None:
            return None
        v = str(v).strip()
        return v or None
