"""Workflow modules for the wralph commands."""

from wralph.workflows.act_on_ci import act_on_ci_workflow
from wralph.workflows.ci_loop import CIFeedbackLoop
from wralph.workflows.common import WorkflowError, copy_wralph_dir, inside_issue_worktree
from wralph.workflows.execute import execute_workflow
from wralph.workflows.feedback import feedback_workflow, read_feedback
from wralph.workflows.init import init_repository, update_gitignore
from wralph.workflows.plan import create_plan
from wralph.workflows.pr_number import PRNumberExtractor
from wralph.workflows.remove import remove_workflow
from wralph.workflows.set_config import set_config_workflow

__all__ = [
    # CI feedback loop
    "CIFeedbackLoop",
    "PRNumberExtractor",
    # Commands
    "init_repository",
    "update_gitignore",
    "create_plan",
    "execute_workflow",
    "act_on_ci_workflow",
    "feedback_workflow",
    "read_feedback",
    "remove_workflow",
    "set_config_workflow",
    # Shared
    "WorkflowError",
    "copy_wralph_dir",
    "inside_issue_worktree",
]
