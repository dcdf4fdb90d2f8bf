"""Helpers shared by the workflows."""

import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from wralph.integrations.git import GitWorktreeError
from wralph.repo import WRALPH_DIR_NAME, RepoLayout
from wralph.utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowError(Exception):
    """Workflow cannot continue."""
    pass


def require_initialized(layout: RepoLayout) -> None:
    """Fail unless .wralph exists in the repository."""
    if not layout.is_initialized():
        raise WorkflowError(
            "wralph has not been initialized in this repository. Run 'wralph init' first."
        )


def copy_wralph_dir(layout: RepoLayout, destination_root: Path) -> Path:
    """Copy the .wralph directory (config, secrets, plans) into another checkout.

    Raises:
        WorkflowError: If there is nothing to copy or the copy fails
    """
    if not layout.wralph_dir.is_dir():
        raise WorkflowError(f"{layout.wralph_dir} not found. Run 'wralph init' first.")

    destination = Path(destination_root) / WRALPH_DIR_NAME
    try:
        shutil.copytree(layout.wralph_dir, destination, dirs_exist_ok=True)
    except OSError as e:
        raise WorkflowError(f"Failed to copy {layout.wralph_dir} to {destination}: {e}")

    logger.debug(f"Copied {layout.wralph_dir} to {destination}")
    return destination


@contextmanager
def inside_issue_worktree(core, identifier: str, create: bool = True) -> Iterator[Path]:
    """Run the body inside the worktree of an objective's branch.

    A freshly created worktree gets a copy of the .wralph directory. The
    original working directory is restored afterwards.

    Raises:
        WorkflowError: If the worktree does not exist and create is False,
            or it cannot be created
    """
    branch_name = core.branch_name(identifier)
    original_cwd = Path.cwd()

    try:
        manager = core.worktree_manager()
        existed = manager.find_worktree(branch_name) is not None
        worktree_path = manager.switch_into_worktree(branch_name, create_if_not_exists=create)
    except GitWorktreeError as e:
        raise WorkflowError(str(e))

    try:
        if not existed:
            copy_wralph_dir(core.layout, worktree_path)
        logger.info(f"Working in {worktree_path} on branch {branch_name}")
        yield worktree_path
    finally:
        os.chdir(original_cwd)
        logger.debug(f"Returned to {original_cwd}")
