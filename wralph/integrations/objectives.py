"""Objective repositories: where the work items wralph solves come from."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Type

from wralph.integrations import AdapterError
from wralph.integrations.github import GitHubIntegrationError, fetch_issue_text
from wralph.models import ObjectiveRepositoryConfig
from wralph.repo import RepoLayout
from wralph.utils.logger import get_logger

logger = get_logger(__name__)


class ObjectiveError(Exception):
    """Objective cannot be fetched or stored."""
    pass


class ObjectiveRepository(ABC):
    """Base class for objective sources."""

    def __init__(self, layout: RepoLayout):
        self.layout = layout

    def local_file_path(self, identifier: str) -> Path:
        return self.layout.objective_file(identifier)

    @abstractmethod
    def fetch(self, identifier: str) -> str:
        """Return the objective text."""

    def download(self, identifier: str) -> Path:
        """Fetch an objective into .wralph/objectives, overwriting any old copy.

        Raises:
            ObjectiveError: If the objective cannot be fetched or written
        """
        content = self.fetch(identifier)
        file_path = self.local_file_path(identifier)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content)
        except OSError as e:
            raise ObjectiveError(f"Failed to write objective {identifier} to {file_path}: {e}")

        logger.debug(f"Objective {identifier} saved to {file_path}")
        return file_path


class GitHubIssuesRepository(ObjectiveRepository):
    """GitHub issues of the current repository, read with gh."""

    def fetch(self, identifier: str) -> str:
        try:
            return fetch_issue_text(identifier)
        except GitHubIntegrationError as e:
            raise ObjectiveError(f"Failed to download GitHub issue #{identifier}: {e}")


OBJECTIVE_ADAPTERS: Dict[str, Type[ObjectiveRepository]] = {
    "github_issues": GitHubIssuesRepository,
}


def create_objective_repository(
    config: ObjectiveRepositoryConfig, layout: RepoLayout
) -> ObjectiveRepository:
    """Instantiate the objective repository named by the configuration.

    Raises:
        AdapterError: If the source is unknown
    """
    try:
        adapter_class = OBJECTIVE_ADAPTERS[config.source]
    except KeyError:
        raise AdapterError(
            f"Unknown objective repository: {config.source}. "
            f"Must be one of {sorted(OBJECTIVE_ADAPTERS)}"
        )
    return adapter_class(layout)
