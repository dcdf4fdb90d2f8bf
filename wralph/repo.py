"""Paths wralph reads and writes inside a repository."""

from pathlib import Path
from typing import Optional

from wralph.models import RepoConfig
from wralph.utils.shell import get_git_root

WRALPH_DIR_NAME = ".wralph"


def sanitize_branch_for_filename(branch_name: str) -> str:
    """Make a branch name safe to use as a single filename component."""
    return branch_name.replace("/", "-").replace("\\", "-")


def branch_name_for(identifier: str, repo_config: Optional[RepoConfig] = None) -> str:
    """Render the branch name for an objective identifier."""
    template = (repo_config or RepoConfig()).branch_name
    return template.format(identifier=identifier)


class RepoLayout:
    """Filesystem layout of a wralph-enabled repository (or worktree)."""

    def __init__(self, root: Path):
        self.root = Path(root)

    @classmethod
    def discover(cls) -> "RepoLayout":
        """Layout rooted at the current git checkout, or the cwd outside git."""
        return cls(get_git_root() or Path.cwd())

    @property
    def wralph_dir(self) -> Path:
        return self.root / WRALPH_DIR_NAME

    @property
    def plans_dir(self) -> Path:
        return self.wralph_dir / "plans"

    @property
    def objectives_dir(self) -> Path:
        return self.wralph_dir / "objectives"

    @property
    def tmp_dir(self) -> Path:
        return self.root / "tmp"

    @property
    def config_file(self) -> Path:
        return self.wralph_dir / "config.yaml"

    @property
    def secrets_file(self) -> Path:
        return self.wralph_dir / "secrets.yaml"

    @property
    def gitignore_file(self) -> Path:
        return self.root / ".gitignore"

    def plan_file(self, identifier: str) -> Path:
        return self.plans_dir / f"plan_{identifier}.md"

    def objective_file(self, identifier: str) -> Path:
        return self.objectives_dir / f"{identifier}.md"

    def failure_details_file(self, branch_name: str, attempt: int) -> Path:
        """Per-attempt failure report path, unique for (branch_name, attempt)."""
        safe_branch = sanitize_branch_for_filename(branch_name)
        return self.tmp_dir / f"{safe_branch}_failure_details_{attempt}_{attempt}.txt"

    def is_initialized(self) -> bool:
        return self.wralph_dir.is_dir()
