"""Planning workflow: ask the agent for a written plan before touching code."""

from pathlib import Path

from wralph.integrations.git import local_branch_exists, remote_branch_exists
from wralph.integrations.github import validate_github_auth
from wralph.integrations.objectives import ObjectiveError
from wralph.integrations.prompts import render_prompt
from wralph.utils.logger import get_logger
from wralph.workflows.common import WorkflowError, require_initialized

logger = get_logger(__name__)

PLAN_INSTRUCTIONS = """\
I need you to make a plan to solve the objective "{issue_number}" in the file: `{objective_file}`. You are not to make any code changes. Instead, here's what I need you to do:

1. First, read the objective from the file

2. Create a detailed plan for solving the issue. Write your thinking and plan in a markdown file at:
   `{plan_file}`

 The plan should include:
 - Analysis of the issue.
 - Approach to solving it.
 - Test cases that should be written to verify the solution.
 - Steps you'll take.
 - Any potential risks or considerations.
 - A list of questions for any clarifications you need to ask the user. If you do not need any clarifications, you can say "No questions needed".
"""


def check_branch_available(branch_name: str) -> None:
    """Fail if the branch already exists locally or on origin."""
    if local_branch_exists(branch_name):
        raise WorkflowError(f"Branch '{branch_name}' already exists locally. Please delete it first.")
    if remote_branch_exists(branch_name):
        raise WorkflowError(f"Branch '{branch_name}' already exists on remote. Please delete it first.")


def create_plan(core, identifier: str) -> Path:
    """Have the agent write a plan for an objective.

    Args:
        core: WralphCore of the invocation
        identifier: Objective identifier

    Returns:
        Path of the written plan

    Raises:
        WorkflowError: If a precondition fails or no plan file was written
    """
    layout = core.layout
    require_initialized(layout)
    layout.plans_dir.mkdir(parents=True, exist_ok=True)

    if not validate_github_auth():
        raise WorkflowError("gh CLI is not authenticated. Please run 'gh auth login'")

    logger.info(f"Fetching objective #{identifier}...")
    try:
        objective_file = core.objectives.download(identifier)
    except ObjectiveError as e:
        raise WorkflowError(f"Objective #{identifier} not found or not accessible: {e}")

    branch_name = core.branch_name(identifier)
    check_branch_available(branch_name)

    plan_file = layout.plan_file(identifier)
    instructions = render_prompt(
        PLAN_INSTRUCTIONS,
        issue_number=identifier,
        objective_file=objective_file,
        plan_file=plan_file,
    )

    logger.info(f"Running agent to create a plan for objective #{identifier}...")
    output = core.agent.invoke(instructions)

    if not plan_file.exists():
        logger.debug(f"Agent output: {output}")
        raise WorkflowError(
            f"Plan file '{plan_file}' was not created. Please check the agent output manually."
        )

    return plan_file
