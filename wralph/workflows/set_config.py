"""Sync the main checkout's .wralph directory into an objective's worktree."""

from pathlib import Path

from wralph.integrations.git import GitWorktreeError, is_linked_worktree
from wralph.workflows.common import WorkflowError, copy_wralph_dir, require_initialized


def set_config_workflow(core, identifier: str) -> Path:
    """Copy .wralph into the worktree of an objective.

    Returns:
        The worktree's .wralph directory

    Raises:
        WorkflowError: If run from a linked worktree or the worktree is missing
    """
    require_initialized(core.layout)

    if is_linked_worktree():
        raise WorkflowError(
            "Cannot run set-config from within a worktree. Please run it from the main repository."
        )

    branch_name = core.branch_name(identifier)
    try:
        worktree = core.worktree_manager().find_worktree(branch_name)
    except GitWorktreeError as e:
        raise WorkflowError(str(e))

    if worktree is None:
        raise WorkflowError(
            f"No worktree found for objective #{identifier} (branch: {branch_name}). "
            "Create one with the plan or execute command first."
        )

    return copy_wralph_dir(core.layout, worktree.path_obj)
