"""Process-wide context for wralph commands."""

from pathlib import Path
from typing import Optional

from wralph.config import ConfigManager
from wralph.integrations.agents import create_agent
from wralph.integrations.ci import create_ci_provider
from wralph.integrations.git import GitWorktreeManager
from wralph.integrations.objectives import create_objective_repository
from wralph.repo import RepoLayout, branch_name_for
from wralph.utils.logger import get_logger
from wralph.workflows.ci_loop import CIFeedbackLoop
from wralph.workflows.pr_number import PRNumberExtractor

logger = get_logger(__name__)


class WralphCore:
    """Configuration, secrets and adapters, resolved once per invocation.

    Adapters are instantiated here so a bad adapter name or a broken custom CI
    module fails before any work starts.
    """

    def __init__(
        self,
        layout: Optional[RepoLayout] = None,
        config_manager: Optional[ConfigManager] = None,
    ):
        """Initialize wralph core.

        Args:
            layout: Repository layout (defaults to the current git checkout)
            config_manager: Configuration manager for the layout

        Raises:
            ConfigError: If the configuration is invalid
            AdapterError: If a configured adapter cannot be resolved
        """
        self.layout = layout or RepoLayout.discover()
        self.config_manager = config_manager or ConfigManager(self.layout)
        self.config = self.config_manager.load_config()
        self.secrets = self.config_manager.load_secrets()

        self.objectives = create_objective_repository(self.config.objective_repository, self.layout)
        self.agent = create_agent(self.config.agent_harness)
        self.ci = create_ci_provider(self.config.ci, self.layout)

        logger.debug(
            f"Adapters: objectives={self.config.objective_repository.source}, "
            f"agent={self.config.agent_harness.source}, ci={self.config.ci.source}"
        )

    def branch_name(self, identifier: str) -> str:
        return branch_name_for(identifier, self.config.repo)

    def worktree_manager(self) -> GitWorktreeManager:
        return GitWorktreeManager(self.config.repo)

    def pr_extractor(self) -> PRNumberExtractor:
        return PRNumberExtractor()

    def ci_feedback_loop(self, root: Optional[Path] = None, **overrides) -> CIFeedbackLoop:
        """Build the CI loop, writing its artifacts under root (default: repo root)."""
        layout = RepoLayout(root) if root is not None else self.layout
        return CIFeedbackLoop(
            config=self.config,
            ci=self.ci,
            agent=self.agent,
            layout=layout,
            api_token=self.secrets.ci_api_token,
            **overrides,
        )
