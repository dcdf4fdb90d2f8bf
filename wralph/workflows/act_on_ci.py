"""Run the CI feedback loop for an objective whose PR already exists."""

from typing import Optional

from wralph.models import LoopResult
from wralph.workflows.common import inside_issue_worktree, require_initialized


def act_on_ci_workflow(core, identifier: str, pr_number: Optional[str] = None) -> LoopResult:
    """Enter the objective's existing worktree and iterate on its CI results.

    Raises:
        WorkflowError: If there is no worktree for the objective
    """
    require_initialized(core.layout)
    with inside_issue_worktree(core, identifier, create=False) as worktree_path:
        return core.ci_feedback_loop(root=worktree_path).run(identifier, pr_number)
