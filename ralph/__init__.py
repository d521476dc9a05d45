"""
Ralph - Iterative coding-agent supervisor.

This package repeatedly invokes a coding-assistant CLI against a markdown
task list, one task per iteration, recording per-iteration metrics and
committing the results to git.
"""

__version__ = "0.1.0"
