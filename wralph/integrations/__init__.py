"""Integrations with external tools: git, GitHub, CI providers and coding agents."""


class AdapterError(Exception):
    """An adapter named in the configuration cannot be resolved or loaded."""
    pass
