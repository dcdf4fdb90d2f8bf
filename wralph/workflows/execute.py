"""
Execution workflow.

Runs the agent inside the objective's worktree, with the plan when there is
one, recovers the number of the PR it opened and hands over to the CI loop.
"""

from typing import Optional

from wralph.integrations.objectives import ObjectiveError
from wralph.integrations.prompts import render_prompt
from wralph.models import LoopResult
from wralph.repo import RepoLayout
from wralph.utils.logger import get_logger
from wralph.workflows.common import WorkflowError, inside_issue_worktree, require_initialized
from wralph.workflows.pr_number import PRNumberExtractor

logger = get_logger(__name__)


def build_execution_instructions(core, identifier: str, layout: RepoLayout) -> str:
    """Execution prompt, with-plan if the worktree holds a plan."""
    branch_name = core.branch_name(identifier)
    plan_file = layout.plan_file(identifier)
    prompts = core.config.prompts

    if plan_file.exists():
        logger.info(f"Executing the plan {plan_file}")
        return render_prompt(
            prompts.execute_with_plan,
            issue_number=identifier,
            plan_file=plan_file,
            branch_name=branch_name,
        )

    logger.info(f"No plan found, fetching objective #{identifier}...")
    try:
        objective_file = core.objectives.download(identifier)
    except ObjectiveError as e:
        raise WorkflowError(f"Failed to fetch objective #{identifier}: {e}")

    return render_prompt(
        prompts.execute_without_plan,
        issue_number=identifier,
        objective_file=objective_file,
        branch_name=branch_name,
    )


def execute_workflow(
    core, identifier: str, extractor: Optional[PRNumberExtractor] = None
) -> LoopResult:
    """Solve an objective in its worktree and iterate on CI until green.

    Raises:
        WorkflowError: If the worktree cannot be entered or no PR number is found
    """
    require_initialized(core.layout)
    extractor = extractor or core.pr_extractor()
    branch_name = core.branch_name(identifier)

    with inside_issue_worktree(core, identifier, create=True) as worktree_path:
        instructions = build_execution_instructions(core, identifier, RepoLayout(worktree_path))
        output = core.agent.invoke(instructions)

        pr_number = extractor.extract(output, branch_name)
        if not pr_number:
            logger.debug(f"Agent output: {output}")
            raise WorkflowError("Could not determine PR number. Please check the agent output manually.")

        logger.info(f"Found PR #{pr_number}, monitoring CI build status...")
        return core.ci_feedback_loop(root=worktree_path).run(identifier, pr_number)
