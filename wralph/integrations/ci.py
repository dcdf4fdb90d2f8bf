"""
CI provider integration.

A CI provider answers two questions about a pull request: what is the state of
its latest build, and why did it fail. CircleCI is built in; a project can plug
in its own provider by subclassing CIProvider in a module under .wralph/.
"""

import importlib.util
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Type

import requests

from wralph.integrations import AdapterError
from wralph.integrations.github import GitHubIntegrationError, get_pr_head_branch
from wralph.models import BuildStatus, CIConfig, GitHubRepository
from wralph.repo import RepoLayout
from wralph.utils.logger import get_logger

logger = get_logger(__name__)

FAILURE_SEPARATOR = "\n\n" + "=" * 40 + "\n\n"


class CIProviderError(Exception):
    """CI provider request failed."""
    pass


class CIProvider(ABC):
    """Base class for CI provider adapters."""

    name = "ci"

    @abstractmethod
    def poll_status(
        self,
        pr_number: str,
        repository: GitHubRepository,
        api_token: str,
        verbose: bool = True,
    ) -> BuildStatus:
        """Return the status of the latest build for a pull request."""

    @abstractmethod
    def fetch_failure_details(
        self, pr_number: str, repository: GitHubRepository, api_token: str
    ) -> str:
        """Return human readable details of the failing jobs.

        Raises:
            CIProviderError: If the details cannot be retrieved
        """


class CircleCIProvider(CIProvider):
    """CircleCI REST API (v2, plus v1.1 for step output URLs)."""

    name = "circle_ci"
    base_url = "https://circleci.com/api"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        head_branch_lookup: Callable[[str], str] = get_pr_head_branch,
        log_tail_lines: int = 30,
        timeout: float = 30,
    ):
        self.session = session or requests.Session()
        self.head_branch_lookup = head_branch_lookup
        self.log_tail_lines = log_tail_lines
        self.timeout = timeout

    def _get_json(
        self, url: str, api_token: Optional[str] = None, params: Optional[Dict[str, str]] = None
    ) -> Optional[Any]:
        """GET a JSON document.

        Returns:
            Parsed JSON, or None for a non-success HTTP status

        Raises:
            CIProviderError: On connection errors or an unparsable body
        """
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Circle-Token"] = api_token

        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise CIProviderError(f"Request to {url} failed: {e}")

        if not response.ok:
            logger.debug(f"GET {url} returned HTTP {response.status_code}")
            return None

        try:
            return response.json()
        except ValueError as e:
            raise CIProviderError(f"Failed to parse JSON response from {url}: {e}")

    def _project_slug(self, repository: GitHubRepository) -> str:
        return f"gh/{repository.owner}/{repository.name}"

    def _latest_pipeline(self, repository: GitHubRepository, branch: str, api_token: str) -> Optional[dict]:
        data = self._get_json(
            f"{self.base_url}/v2/project/{self._project_slug(repository)}/pipeline",
            api_token,
            params={"branch": branch},
        )
        if data is None:
            return None
        items = data.get("items") or []
        return items[0] if items else None

    def _latest_workflow(self, pipeline_id: str, api_token: str) -> Optional[dict]:
        data = self._get_json(f"{self.base_url}/v2/pipeline/{pipeline_id}/workflow", api_token)
        if data is None:
            return None
        items = data.get("items") or []
        return items[0] if items else None

    def _head_branch(self, pr_number: str) -> str:
        try:
            return self.head_branch_lookup(pr_number)
        except GitHubIntegrationError as e:
            raise CIProviderError(str(e))

    def poll_status(
        self,
        pr_number: str,
        repository: GitHubRepository,
        api_token: str,
        verbose: bool = True,
    ) -> BuildStatus:
        """Return the status of the latest pipeline on the PR's head branch.

        The workflow is only queried once the pipeline itself has concluded.
        """
        try:
            branch = self._head_branch(pr_number)
            if verbose:
                logger.info(f"Checking CircleCI build for branch: {branch}")

            pipeline = self._latest_pipeline(repository, branch, api_token)
            if pipeline is None:
                if verbose:
                    logger.warning(f"No CircleCI pipeline found for branch {branch}")
                return BuildStatus.NOT_FOUND

            pipeline_id = pipeline.get("id")
            pipeline_state = BuildStatus.parse(pipeline.get("state"))
            if verbose:
                logger.info(f"Pipeline ID: {pipeline_id}, State: {pipeline.get('state')}")

            if pipeline_state in (BuildStatus.RUNNING, BuildStatus.PENDING):
                return pipeline_state

            workflow = self._latest_workflow(pipeline_id, api_token)
            if workflow is None:
                if verbose:
                    logger.warning(f"No workflow found for pipeline {pipeline_id}")
                return BuildStatus.UNKNOWN

            raw_status = (workflow.get("status") or "").strip()
            if verbose:
                logger.info(f"Workflow status: {raw_status}")
            return BuildStatus.parse(raw_status)

        except CIProviderError as e:
            if verbose:
                logger.warning(f"Could not read CircleCI status: {e}")
            return BuildStatus.UNKNOWN

    def fetch_failure_details(
        self, pr_number: str, repository: GitHubRepository, api_token: str
    ) -> str:
        branch = self._head_branch(pr_number)

        pipeline = self._latest_pipeline(repository, branch, api_token)
        if pipeline is None or not pipeline.get("id"):
            return "No pipeline found"

        workflow = self._latest_workflow(pipeline["id"], api_token)
        if workflow is None or not workflow.get("id"):
            return "No workflow found"

        jobs = self._get_json(f"{self.base_url}/v2/workflow/{workflow['id']}/job", api_token)
        if jobs is None:
            raise CIProviderError(f"Could not fetch jobs for workflow {workflow['id']}")

        failed_jobs = [
            job for job in jobs.get("items") or [] if job.get("status") in ("failed", "error")
        ]
        if not failed_jobs:
            return f"All jobs passed for branch {branch}."

        return FAILURE_SEPARATOR.join(
            self._describe_failed_job(job, repository, api_token) for job in failed_jobs
        )

    def _describe_failed_job(self, job: dict, repository: GitHubRepository, api_token: str) -> str:
        """Summarise one failed job with the tail of its failing step's log."""
        job_number = job.get("job_number")
        description = f"Job: {job.get('name')} (#{job_number}) failed."

        # v2 does not expose step output URLs
        job_details = self._get_json(
            f"{self.base_url}/v1.1/project/github/{repository.owner}/{repository.name}/{job_number}",
            api_token,
        )
        if not job_details:
            return description

        failed_step, failed_action = find_failed_step(job_details)
        if failed_step is None or not failed_action.get("output_url"):
            return description

        try:
            log_entries = self._get_json(failed_action["output_url"])
            log_tail = tail_log_lines(log_entries or [], self.log_tail_lines)
        except (CIProviderError, AttributeError, TypeError):
            return description + "\n(Could not parse raw log output)"

        return f"{description}\nFAILED STEP: {failed_step.get('name')}\n\nLOG TAIL:\n{log_tail}"


def find_failed_step(job_details: dict) -> tuple[Optional[dict], Optional[dict]]:
    """First step holding a failed action, and that action."""
    for step in job_details.get("steps") or []:
        for action in step.get("actions") or []:
            if action.get("failed"):
                return step, action
    return None, None


def tail_log_lines(log_entries: list, line_count: int) -> str:
    """Last line_count lines of a CircleCI step output document."""
    text = "".join(entry.get("message") or "" for entry in log_entries)
    return "\n".join(text.splitlines()[-line_count:])


CI_ADAPTERS: Dict[str, Type[CIProvider]] = {
    "circle_ci": CircleCIProvider,
}


def class_name_to_snake_case(class_name: str) -> str:
    """Convert a CamelCase class name to the snake_case module name it lives in."""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", class_name)
    name = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", name)
    return name.lower()


def load_custom_ci_class(class_name: str, layout: RepoLayout) -> Type[CIProvider]:
    """Load a CIProvider subclass from .wralph/<snake_case_name>.py.

    Raises:
        AdapterError: If the module or class is missing or not a CIProvider
    """
    adapter_file = layout.wralph_dir / f"{class_name_to_snake_case(class_name)}.py"
    if not adapter_file.exists():
        raise AdapterError(f"Custom adapter file not found: {adapter_file}")

    spec = importlib.util.spec_from_file_location(f"wralph_custom_ci.{adapter_file.stem}", adapter_file)
    if spec is None or spec.loader is None:
        raise AdapterError(f"Cannot import custom adapter file: {adapter_file}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise AdapterError(f"Failed to load custom adapter file {adapter_file}: {e}")

    adapter_class = getattr(module, class_name, None)
    if adapter_class is None:
        raise AdapterError(f"Custom adapter class '{class_name}' not found in {adapter_file}")
    if not (isinstance(adapter_class, type) and issubclass(adapter_class, CIProvider)):
        raise AdapterError(f"Custom adapter class '{class_name}' must subclass CIProvider")

    return adapter_class


def create_ci_provider(config: CIConfig, layout: RepoLayout) -> CIProvider:
    """Instantiate the CI provider named by the configuration.

    Raises:
        AdapterError: If the provider cannot be resolved or instantiated
    """
    if config.source == "custom":
        adapter_class = load_custom_ci_class(config.class_name or "", layout)
        try:
            return adapter_class()
        except TypeError as e:
            raise AdapterError(f"Cannot instantiate custom adapter '{config.class_name}': {e}")

    if config.source not in CI_ADAPTERS:
        raise AdapterError(f"Unknown CI source: {config.source}. Must be one of {sorted(CI_ADAPTERS)} or 'custom'")

    if config.source == "circle_ci":
        return CircleCIProvider(log_tail_lines=config.log_tail_lines)
    return CI_ADAPTERS[config.source]()
