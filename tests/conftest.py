"""Shared test configuration and fixtures."""

import io
import os
from pathlib import Path
from typing import List, Optional, Sequence, Union

import pytest
from rich.console import Console

from wralph.config import ConfigManager
from wralph.core import WralphCore
from wralph.integrations.agents import AgentHarness
from wralph.integrations.ci import CIProvider
from wralph.models import BuildStatus, GitHubRepository
from wralph.repo import RepoLayout


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the real home directory and WRALPH_* overrides."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)

    for key in list(os.environ):
        if key.startswith("WRALPH_"):
            monkeypatch.delenv(key)

    return home


@pytest.fixture
def repo_root(tmp_path):
    """A repository root with an initialized .wralph directory."""
    root = tmp_path / "repo"
    (root / ".wralph" / "plans").mkdir(parents=True)
    return root


@pytest.fixture
def layout(repo_root):
    return RepoLayout(repo_root)


@pytest.fixture
def config_manager(layout, isolated_environment):
    return ConfigManager(layout, user_config_path=isolated_environment / ".wralph" / "config.yaml")


@pytest.fixture
def core(layout, config_manager):
    """A real WralphCore on the temporary repository with default config."""
    return WralphCore(layout=layout, config_manager=config_manager)


@pytest.fixture
def repository():
    return GitHubRepository(owner="acme", name="widgets")


@pytest.fixture
def quiet_console():
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner
    return CliRunner()


class ScriptedCI(CIProvider):
    """CI provider replaying a list of statuses; the last one repeats forever.

    Quiet polls advance the script. A verbose poll reports the status of the
    quiet poll just made, as a real provider would within the same interval.
    """

    def __init__(
        self,
        statuses: Sequence[BuildStatus],
        details: Optional[str] = "Job: test (#1) failed.",
        details_error: Optional[Exception] = None,
    ):
        self.statuses = list(statuses)
        self.details = details
        self.details_error = details_error
        self.polls = 0
        self.verbose_polls = 0
        self.detail_calls = 0
        self.current: Optional[BuildStatus] = None

    def poll_status(self, pr_number, repository, api_token, verbose=True):
        if verbose and self.current is not None:
            self.verbose_polls += 1
            return self.current

        self.polls += 1
        if len(self.statuses) > 1:
            self.current = self.statuses.pop(0)
        else:
            self.current = self.statuses[0]
        return self.current

    def fetch_failure_details(self, pr_number, repository, api_token):
        self.detail_calls += 1
        if self.details_error is not None:
            raise self.details_error
        return self.details


class ScriptedAgent(AgentHarness):
    """Agent returning canned output and recording the instructions it got."""

    name = "scripted"

    def __init__(self, outputs: Union[str, List[str]] = "Pushed. FIXES_PUSHED"):
        self.outputs = outputs
        self.instructions: List[str] = []

    def build_command(self, instructions):
        return ["true"]

    def invoke(self, instructions):
        self.instructions.append(instructions)
        if isinstance(self.outputs, list):
            return self.outputs.pop(0)
        return self.outputs


@pytest.fixture
def scripted_ci():
    """Factory for ScriptedCI providers."""
    return ScriptedCI


@pytest.fixture
def scripted_agent():
    """Factory for ScriptedAgent harnesses."""
    return ScriptedAgent
