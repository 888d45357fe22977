"""
errors.py

Responsibility: The error taxonomy shared by every chore.

Each error names the stage it failed in (config, dispatch, render, build,
update, commit, pr, ...) so the CLI can report which part of a run broke
without printing a traceback.
"""

from __future__ import annotations


class ChoreError(RuntimeError):
    stage = "chore"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigurationError(ChoreError, ValueError):
    """Malformed or incomplete project / task options."""

    stage = "config"


class ResolutionError(ChoreError, LookupError):
    """An unknown task or module name was requested."""

    stage = "dispatch"


class CommandError(ChoreError):
    """An external command exited non-zero."""

    stage = "command"

    def __init__(self, cmd: list[str], returncode: int, *, stage: str | None = None) -> None:
        super().__init__(f"Command failed (exit {returncode}): {' '.join(cmd)}", stage=stage)
        self.cmd = cmd
        self.returncode = returncode


class PreconditionError(ChoreError):
    stage = "update"


class RenderError(ChoreError):
    stage = "render"


class GitHubError(ChoreError):
    stage = "pr"
