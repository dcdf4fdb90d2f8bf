"""Review feedback workflow."""

import time
from typing import Callable, Iterable

from wralph.integrations.github import is_pr_open
from wralph.integrations.prompts import render_prompt
from wralph.models import FatalReason, LoopOutcome, LoopResult
from wralph.repo import RepoLayout
from wralph.utils.logger import get_logger
from wralph.workflows.common import WorkflowError, inside_issue_worktree, require_initialized

logger = get_logger(__name__)


def read_feedback(lines: Iterable[str]) -> str:
    """Collect feedback text until two consecutive empty lines or end of input."""
    collected = []
    blank_run = 0

    for line in lines:
        line = line.rstrip("\n")
        if not line.strip():
            blank_run += 1
            if blank_run >= 2 and any(entry.strip() for entry in collected):
                break
        else:
            blank_run = 0
        collected.append(line)

    return "\n".join(collected).strip("\n")


def feedback_workflow(
    core,
    identifier: str,
    changes: str,
    sleep: Callable[[float], None] = time.sleep,
) -> LoopResult:
    """Have the agent address review feedback, then iterate on CI.

    Raises:
        WorkflowError: If there is no worktree, the PR is not open or the
            feedback is empty
    """
    require_initialized(core.layout)
    if not changes.strip():
        raise WorkflowError("No feedback given")

    branch_name = core.branch_name(identifier)

    with inside_issue_worktree(core, identifier, create=False) as worktree_path:
        if not is_pr_open(branch_name):
            raise WorkflowError(f"Pull Request for {branch_name} is not open. Please open it and try again.")

        layout = RepoLayout(worktree_path)
        instructions = render_prompt(
            core.config.prompts.feedback,
            plan_file=layout.plan_file(identifier),
            branch_name=branch_name,
            changes=changes,
        )

        logger.info("Asking the agent to address the feedback...")
        result = core.agent.run(instructions)
        if not result.push_confirmed:
            message = "Could not confirm that fixes were pushed. Please check manually."
            logger.error(message)
            return LoopResult(
                outcome=LoopOutcome.FATAL, reason=FatalReason.PUSH_UNCONFIRMED, message=message
            )

        cooldown = core.config.ci.fix_cooldown
        logger.info(f"Fixes pushed, waiting {cooldown}s before checking the build")
        sleep(cooldown)

        return core.ci_feedback_loop(root=worktree_path, sleep=sleep).run(identifier)
