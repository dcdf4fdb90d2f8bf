"""Cleanup of an objective's branches and worktree."""

from typing import Dict

from wralph.integrations.git import GitWorktreeError, delete_local_branch, delete_remote_branch
from wralph.utils.logger import get_logger
from wralph.workflows.common import WorkflowError, require_initialized

logger = get_logger(__name__)


def remove_workflow(core, identifier: str) -> Dict[str, bool]:
    """Remove the worktree, the local branch and the remote branch.

    The worktree goes first since git refuses to delete a checked-out branch.

    Returns:
        Which of "worktree", "local_branch" and "remote_branch" were removed
    """
    require_initialized(core.layout)
    branch_name = core.branch_name(identifier)

    try:
        worktree_removed = core.worktree_manager().remove_worktree(branch_name)
    except GitWorktreeError as e:
        raise WorkflowError(str(e))

    removed = {
        "worktree": worktree_removed,
        "local_branch": delete_local_branch(branch_name),
        "remote_branch": delete_remote_branch(branch_name),
    }

    for item, done in removed.items():
        if done:
            logger.info(f"Removed {item.replace('_', ' ')} for '{branch_name}'")
        else:
            logger.warning(f"No {item.replace('_', ' ')} found for '{branch_name}'")

    return removed
