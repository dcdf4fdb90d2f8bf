"""Git branch and worktree management."""

import os
import shutil
from pathlib import Path
from typing import List, Optional

from wralph.models import RepoConfig, WorktreeInfo
from wralph.utils.logger import get_logger
from wralph.utils.shell import ShellError, get_current_branch, get_git_root, run_command

logger = get_logger(__name__)


class GitWorktreeError(Exception):
    """Git worktree error."""
    pass


def local_branch_exists(branch_name: str) -> bool:
    result = run_command(["git", "show-ref", "--verify", "--quiet", f"refs/heads/{branch_name}"])
    return result.success


def remote_branch_exists(branch_name: str, remote: str = "origin") -> bool:
    result = run_command(["git", "ls-remote", "--heads", remote, branch_name], timeout=60)
    return result.success and branch_name in result.stdout


def delete_local_branch(branch_name: str) -> bool:
    return run_command(["git", "branch", "-D", branch_name]).success


def delete_remote_branch(branch_name: str, remote: str = "origin") -> bool:
    return run_command(["git", "push", remote, "--delete", branch_name], timeout=60).success


def has_uncommitted_changes() -> bool:
    return not run_command("git diff-index --quiet HEAD --").success


def is_linked_worktree() -> bool:
    """True when the current checkout is a linked worktree, not the main one."""
    try:
        git_dir = run_command("git rev-parse --git-dir", check=True).stdout.strip()
    except ShellError:
        return False
    return (Path(git_dir) / "commondir").exists()


class GitWorktreeManager:
    """Git worktree management."""

    def __init__(self, repo_config: Optional[RepoConfig] = None):
        """Initialize git worktree manager.

        Args:
            repo_config: Repository conventions (worktree base path)

        Raises:
            GitWorktreeError: If not in a git repository
        """
        self.repo_config = repo_config or RepoConfig()
        if get_git_root() is None:
            raise GitWorktreeError("Not in a git repository. Git worktrees require a git repository.")

    def list_worktrees(self) -> List[WorktreeInfo]:
        """List all worktrees of the repository."""
        try:
            result = run_command("git worktree list --porcelain", check=True)
        except ShellError as e:
            logger.warning(f"Failed to list worktrees: {e}")
            return []

        worktrees = []
        current_worktree: dict = {}
        for line in result.stdout.strip().split("\n") + [""]:
            if not line:
                if current_worktree.get("path") and current_worktree.get("branch"):
                    worktrees.append(WorktreeInfo(**current_worktree))
                current_worktree = {}
            elif line.startswith("worktree "):
                current_worktree["path"] = line[len("worktree "):]
            elif line.startswith("branch "):
                current_worktree["branch"] = line[len("branch "):].removeprefix("refs/heads/")
            elif line.startswith("HEAD "):
                current_worktree["head"] = line[len("HEAD "):]

        return worktrees

    def find_worktree(self, branch_name: str) -> Optional[WorktreeInfo]:
        for worktree in self.list_worktrees():
            if worktree.branch == branch_name:
                return worktree
        return None

    def generate_worktree_path(self, branch_name: str) -> Path:
        """Generate worktree path from branch name."""
        git_root = get_git_root()
        project_name = git_root.name if git_root else "project"

        worktree_base = Path(self.repo_config.worktree_base.format(project=project_name))
        if not worktree_base.is_absolute():
            # relative to the repository root
            worktree_base = Path(os.path.normpath((git_root or Path.cwd()) / worktree_base))

        return worktree_base / branch_name.replace("/", "-")

    def create_worktree(self, branch_name: str) -> WorktreeInfo:
        """Create a worktree with a new branch off the current HEAD.

        Raises:
            GitWorktreeError: If worktree creation fails
        """
        worktree_path = self.generate_worktree_path(branch_name)
        if worktree_path.exists():
            raise GitWorktreeError(f"Worktree path {worktree_path} already exists")

        logger.info(f"Creating worktree for branch {branch_name}: {worktree_path}")

        try:
            worktree_path.parent.mkdir(parents=True, exist_ok=True)
            if local_branch_exists(branch_name):
                command = ["git", "worktree", "add", str(worktree_path), branch_name]
            else:
                command = ["git", "worktree", "add", "-b", branch_name, str(worktree_path)]
            run_command(command, check=True, timeout=60)
        except ShellError as e:
            raise GitWorktreeError(f"Failed to create git worktree: {e.stderr.strip() or e}")
        except OSError as e:
            raise GitWorktreeError(f"Filesystem error creating worktree: {e}")

        return WorktreeInfo(path=str(worktree_path), branch=branch_name)

    def switch_into_worktree(self, branch_name: str, create_if_not_exists: bool = True) -> Path:
        """Change the process working directory to the worktree for a branch.

        Returns:
            The working directory after switching

        Raises:
            GitWorktreeError: If the worktree is missing and may not be created
        """
        if get_current_branch() == branch_name:
            logger.info(f"Already in worktree for branch {branch_name}")
            # the checkout root, even when started from a subdirectory
            return get_git_root() or Path.cwd()

        worktree = self.find_worktree(branch_name)
        if worktree is None:
            if not create_if_not_exists:
                raise GitWorktreeError(f"Worktree for branch {branch_name} not found")
            worktree = self.create_worktree(branch_name)

        os.chdir(worktree.path)
        logger.debug(f"Changed to worktree directory: {worktree.path}")
        return worktree.path_obj

    def remove_worktree(self, branch_name: str) -> bool:
        """Remove the worktree for a branch.

        Returns:
            True if a worktree was removed, False if none existed
        """
        worktree = self.find_worktree(branch_name)
        if worktree is None:
            return False

        result = run_command(["git", "worktree", "remove", worktree.path])
        if not result.success:
            result = run_command(["git", "worktree", "remove", "--force", worktree.path])
        if not result.success and worktree.exists():
            shutil.rmtree(worktree.path_obj)
            run_command("git worktree prune")
            logger.warning(f"Manually removed worktree directory: {worktree.path}")

        return True
