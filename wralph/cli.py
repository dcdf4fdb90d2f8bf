"""Click CLI interface for wralph."""

import json
import sys
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.table import Table

from wralph import __version__
from wralph.config import ConfigError, ConfigManager
from wralph.core import WralphCore
from wralph.integrations import AdapterError
from wralph.integrations.agents import AgentError
from wralph.integrations.ci import CIProviderError
from wralph.integrations.git import GitWorktreeError, has_uncommitted_changes
from wralph.integrations.github import GitHubIntegrationError
from wralph.integrations.objectives import ObjectiveError
from wralph.integrations.prompts import PromptError
from wralph.models import LoopOutcome, LoopResult
from wralph.repo import RepoLayout
from wralph.utils.logger import enable_verbose_logging
from wralph.workflows import (
    WorkflowError,
    act_on_ci_workflow,
    create_plan,
    execute_workflow,
    feedback_workflow,
    init_repository,
    read_feedback,
    remove_workflow,
    set_config_workflow,
)

console = Console()

WORKFLOW_ERRORS = (
    WorkflowError,
    GitHubIntegrationError,
    GitWorktreeError,
    CIProviderError,
    ObjectiveError,
    AgentError,
    PromptError,
)


def fail(message: str) -> None:
    console.print(f"[red]✗ Error:[/red] {message}")
    sys.exit(1)


def get_core(ctx: click.Context) -> WralphCore:
    """Build the WralphCore once per invocation and keep it on the root context."""
    root = ctx.find_root()
    if root.obj is None:
        try:
            root.obj = WralphCore()
        except (ConfigError, AdapterError) as e:
            fail(str(e))
    return root.obj


def report_loop_result(result: LoopResult) -> None:
    """Print the outcome of a CI loop and exit non-zero unless it resolved."""
    if result.outcome == LoopOutcome.RESOLVED:
        console.print(f"\n[green]✓[/green] CI build passed for PR #{result.pr_number}")
        return

    if result.outcome == LoopOutcome.EXHAUSTED:
        console.print(f"\n[red]✗ Gave up after {result.attempts} fix attempts:[/red] {result.message}")
    elif result.outcome == LoopOutcome.TIMED_OUT:
        console.print(f"\n[red]✗ Timed out:[/red] {result.message}")
    else:
        reason = result.reason.value if result.reason else "fatal"
        console.print(f"\n[red]✗ Stopped ({reason}):[/red] {result.message}")
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, verbose: bool) -> None:
    """wralph - drive a coding agent from objective to green pull request.

    Plans an objective with the agent, executes the plan in a git worktree,
    opens a pull request and keeps fixing CI failures until the build passes.
    """
    if version:
        click.echo(f"wralph version {__version__}")
        sys.exit(0)

    if verbose:
        enable_verbose_logging()

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def init() -> None:
    """Initialize wralph in the current repository."""
    layout = RepoLayout.discover()
    if layout.is_initialized():
        console.print(f"[yellow]⚠[/yellow] .wralph directory already exists at {layout.wralph_dir}")
        console.print("Skipping initialization")
        return

    try:
        created = init_repository(ConfigManager(layout))
    except WorkflowError as e:
        fail(str(e))

    for path in created:
        console.print(f"[green]✓[/green] Created {path}")

    console.print("\n[green]✓[/green] wralph initialized successfully!")
    console.print(f"1. Add your CI API token to [cyan]{layout.secrets_file}[/cyan]")
    console.print("2. Run [cyan]wralph plan <issue_number>[/cyan] to get started")


@cli.command()
@click.argument("identifier")
@click.pass_context
def plan(ctx: click.Context, identifier: str) -> None:
    """Plan an objective with the agent, then execute the plan.

    IDENTIFIER: Objective (issue) identifier
    """
    core = get_core(ctx)

    try:
        core.agent.ensure_available()

        if has_uncommitted_changes():
            console.print(
                "[yellow]⚠[/yellow] You have uncommitted changes. A new branch will be created, "
                "but consider committing or stashing your changes first."
            )
            click.confirm("Continue anyway?", abort=True)

        plan_file = create_plan(core, identifier)
        console.print(
            f"[green]✓[/green] Plan file '{plan_file}' was created. "
            "Please review it, answering any questions the agent has asked."
        )
        click.confirm("Ready to execute the plan?", abort=True)

        result = execute_workflow(core, identifier)
    except WORKFLOW_ERRORS as e:
        fail(str(e))

    report_loop_result(result)


@cli.command()
@click.argument("identifier")
@click.pass_context
def execute(ctx: click.Context, identifier: str) -> None:
    """Execute an objective (with its plan, if any) and iterate on CI.

    IDENTIFIER: Objective (issue) identifier
    """
    core = get_core(ctx)

    try:
        core.agent.ensure_available()
        result = execute_workflow(core, identifier)
    except WORKFLOW_ERRORS as e:
        fail(str(e))

    report_loop_result(result)


@cli.command("ci")
@click.argument("identifier")
@click.option("--pr", "pr_number", help="PR number (looked up from the branch if omitted)")
@click.pass_context
def act_on_ci(ctx: click.Context, identifier: str, pr_number: Optional[str]) -> None:
    """Check CI results of an objective's PR and fix failures.

    IDENTIFIER: Objective (issue) identifier
    """
    core = get_core(ctx)

    try:
        core.agent.ensure_available()
        result = act_on_ci_workflow(core, identifier, pr_number)
    except WORKFLOW_ERRORS as e:
        fail(str(e))

    report_loop_result(result)


@cli.command()
@click.argument("identifier")
@click.option("--message", "-m", help="Feedback text (prompted for if omitted)")
@click.pass_context
def feedback(ctx: click.Context, identifier: str, message: Optional[str]) -> None:
    """Have the agent address review feedback on an objective's PR.

    IDENTIFIER: Objective (issue) identifier
    """
    core = get_core(ctx)

    if not message:
        console.print("Please provide feedback on what changes to make to the Pull Request.")
        console.print("  - Press Enter for a new line")
        console.print("  - Press Enter three times to submit")
        message = read_feedback(click.get_text_stream("stdin"))

    try:
        core.agent.ensure_available()
        result = feedback_workflow(core, identifier, message)
    except WORKFLOW_ERRORS as e:
        fail(str(e))

    report_loop_result(result)


@cli.command()
@click.argument("identifier")
@click.pass_context
def remove(ctx: click.Context, identifier: str) -> None:
    """Remove the worktree and branches of an objective.

    IDENTIFIER: Objective (issue) identifier
    """
    core = get_core(ctx)
    branch_name = core.branch_name(identifier)

    try:
        removed = remove_workflow(core, identifier)
    except WORKFLOW_ERRORS as e:
        fail(str(e))

    for item, done in removed.items():
        label = item.replace("_", " ")
        if done:
            console.print(f"[green]✓[/green] Removed {label} for '{branch_name}'")
        else:
            console.print(f"[yellow]⚠[/yellow] No {label} found for '{branch_name}'")

    console.print(f"[green]✓[/green] Cleanup completed for objective #{identifier}")


@cli.command("set-config")
@click.argument("identifier")
@click.pass_context
def set_config(ctx: click.Context, identifier: str) -> None:
    """Copy .wralph (config, secrets, plans) into an objective's worktree.

    IDENTIFIER: Objective (issue) identifier
    """
    core = get_core(ctx)

    try:
        destination = set_config_workflow(core, identifier)
    except WORKFLOW_ERRORS as e:
        fail(str(e))

    console.print(f"[green]✓[/green] Copied .wralph contents to {destination}")


@cli.group()
def config() -> None:
    """Configuration management."""
    pass


@config.command("show")
@click.option("--format", "-f", "output_format", type=click.Choice(["table", "yaml", "json"]), default="table", help="Output format (default: table)")
@click.option("--section", "-s", help="Show only a specific section (e.g. 'ci', 'prompts')")
@click.pass_context
def config_show(ctx: click.Context, output_format: str, section: Optional[str]) -> None:
    """Show the effective configuration."""
    config_dict = get_core(ctx).config.model_dump(mode="json")

    if section:
        if section not in config_dict:
            console.print(f"[red]Error:[/red] Section '{section}' not found in configuration")
            console.print(f"[dim]Available sections: {', '.join(config_dict.keys())}[/dim]")
            sys.exit(1)
        config_dict = {section: config_dict[section]}

    if output_format == "yaml":
        click.echo(yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=False))
        return
    if output_format == "json":
        click.echo(json.dumps(config_dict, indent=2))
        return

    table = Table(title="wralph Configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    def add_config_rows(data: dict, prefix: str = "") -> None:
        for key, value in data.items():
            full_key = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict):
                table.add_row(f"[bold cyan]{full_key}[/bold cyan]", "")
                add_config_rows(value, full_key)
            elif value is None:
                table.add_row(full_key, "[dim]None[/dim]")
            elif isinstance(value, str) and "\n" in value:
                # prompt templates
                table.add_row(full_key, f"[dim]{value.splitlines()[0]} ...[/dim]")
            else:
                table.add_row(full_key, str(value))

    add_config_rows(config_dict)
    console.print(table)


@config.command("list")
def config_list() -> None:
    """List configuration files and whether they exist."""
    config_files = ConfigManager(RepoLayout.discover()).list_config_files()

    table = Table(title="Configuration Files")
    table.add_column("Type", style="cyan")
    table.add_column("Path")
    table.add_column("Status", style="green")

    for config_type, path in config_files.items():
        if path is not None:
            table.add_row(config_type.title(), str(path), "✓ Exists")
        else:
            table.add_row(config_type.title(), "N/A", "✗ Not found")

    console.print(table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
