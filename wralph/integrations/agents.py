"""
Agent harness integration.

An agent harness runs an AI coding agent CLI non-interactively with a
natural-language instruction and hands back whatever text it printed. The
harness never raises: a crashed or missing agent yields empty or unexpected
text, which callers already have to tolerate.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from wralph.integrations import AdapterError
from wralph.models import AgentHarnessConfig, AgentInvocationResult
from wralph.utils.logger import get_logger
from wralph.utils.shell import ShellError, check_command_exists, run_command

logger = get_logger(__name__)


class AgentError(Exception):
    """Agent harness cannot be used."""
    pass


class AgentHarness(ABC):
    """Base class for coding agent adapters."""

    name = "agent"
    executable = ""

    def ensure_available(self) -> None:
        """Check the agent CLI is on PATH.

        Raises:
            AgentError: If the executable cannot be found
        """
        if self.executable and not check_command_exists(self.executable):
            raise AgentError(f"{self.executable} CLI not found. Please install it first.")

    @abstractmethod
    def build_command(self, instructions: str) -> List[str]:
        """Command line that runs the agent on the given instructions."""

    def invoke(self, instructions: str) -> str:
        """Run the agent and return its raw output text."""
        command = self.build_command(instructions)
        logger.info(f"Running {self.name} agent (prompt truncated): {instructions[:80]!r}...")

        try:
            result = run_command(command)
        except ShellError as e:
            logger.error(f"Failed to run {self.name} agent: {e}")
            return ""

        if not result.success:
            logger.warning(f"{self.name} agent exited with code {result.returncode}")
            if result.stderr:
                logger.debug(f"{self.name} stderr: {result.stderr}")

        return result.stdout

    def run(self, instructions: str) -> AgentInvocationResult:
        """Invoke the agent and interpret its output."""
        return AgentInvocationResult.from_output(self.invoke(instructions))


class ClaudeCodeAgent(AgentHarness):
    """Claude Code CLI in print mode."""

    name = "claude_code"
    executable = "claude"

    def __init__(self, flags: Optional[List[str]] = None):
        self.flags = list(flags) if flags is not None else ["dangerously-skip-permissions"]

    def build_command(self, instructions: str) -> List[str]:
        return ["claude", "-p", instructions] + [f"--{flag}" for flag in self.flags]


class OpencodeAgent(AgentHarness):
    """opencode CLI."""

    name = "opencode"
    executable = "opencode"

    def __init__(self, flags: Optional[List[str]] = None):
        self.flags = flags or []

    def build_command(self, instructions: str) -> List[str]:
        return ["opencode", "run", "--command", instructions]


AGENT_ADAPTERS: Dict[str, Type[AgentHarness]] = {
    "claude_code": ClaudeCodeAgent,
    "opencode": OpencodeAgent,
}


def create_agent(config: AgentHarnessConfig) -> AgentHarness:
    """Instantiate the agent harness named by the configuration.

    Raises:
        AdapterError: If the source is unknown
    """
    try:
        adapter_class = AGENT_ADAPTERS[config.source]
    except KeyError:
        raise AdapterError(
            f"Unknown agent harness: {config.source}. Must be one of {sorted(AGENT_ADAPTERS)}"
        )
    return adapter_class(flags=config.flags)
