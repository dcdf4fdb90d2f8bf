"""Repository initialization workflow."""

from pathlib import Path
from typing import List

from wralph.config import ConfigError, ConfigManager
from wralph.repo import RepoLayout
from wralph.utils.logger import get_logger
from wralph.workflows.common import WorkflowError

logger = get_logger(__name__)

SECRETS_IGNORE_ENTRY = ".wralph/secrets.yaml"
GITIGNORE_BLOCK = f"\n# WRALPH secrets\n{SECRETS_IGNORE_ENTRY}\n"


def update_gitignore(layout: RepoLayout) -> bool:
    """Add the secrets file to .gitignore unless it is already listed.

    Returns:
        True if .gitignore was changed
    """
    gitignore = layout.gitignore_file
    if gitignore.exists() and SECRETS_IGNORE_ENTRY in gitignore.read_text():
        return False

    with open(gitignore, "a") as f:
        f.write(GITIGNORE_BLOCK)

    logger.debug(f"Added {SECRETS_IGNORE_ENTRY} to {gitignore}")
    return True


def init_repository(config_manager: ConfigManager) -> List[Path]:
    """Create .wralph with its plans directory and config/secrets templates.

    Existing files are left untouched.

    Returns:
        Paths that were created or updated

    Raises:
        WorkflowError: If the files cannot be written
    """
    layout = config_manager.layout
    changed: List[Path] = []

    try:
        for directory in (layout.wralph_dir, layout.plans_dir):
            if not directory.exists():
                directory.mkdir(parents=True)
                changed.append(directory)

        for path, write in (
            (layout.secrets_file, config_manager.write_secrets_template),
            (layout.config_file, config_manager.write_default_config),
        ):
            if not path.exists():
                write()
                changed.append(path)

        if update_gitignore(layout):
            changed.append(layout.gitignore_file)

    except (ConfigError, OSError) as e:
        raise WorkflowError(f"Failed to initialize wralph: {e}")

    logger.info(f"wralph initialized in {layout.wralph_dir}")
    return changed
