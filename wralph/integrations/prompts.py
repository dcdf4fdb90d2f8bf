"""Rendering of agent instruction templates."""

from string import Formatter
from typing import Any


class PromptError(Exception):
    """Prompt rendering error."""
    pass


def template_variables(template: str) -> set[str]:
    """Names of the {placeholders} used in a template."""
    return {field for _, field, _, _ in Formatter().parse(template) if field}


def render_prompt(template: str, **variables: Any) -> str:
    """Fill {name} placeholders in a prompt template.

    Args:
        template: Template text
        **variables: Values for the placeholders

    Returns:
        Rendered prompt

    Raises:
        PromptError: If the template references a variable that was not supplied
    """
    try:
        missing = sorted(template_variables(template) - set(variables))
    except ValueError as e:
        raise PromptError(f"Malformed prompt template: {e}")

    if missing:
        raise PromptError(f"Prompt substitution failed: missing variables {', '.join(missing)}")

    return template.format(**{key: str(value) for key, value in variables.items()})
