"""Wralph - Workflow Ralph.

A human-in-the-loop CLI that drives an AI coding agent from an issue to a
green pull request: plan, execute in a worktree, open a PR, then iterate on
CI failures until the build passes.
"""

__version__ = "1.0.0"
