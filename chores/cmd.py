"""
cmd.py

Responsibility: Run external commands as opaque success/failure operations.

Output is streamed through to the caller's terminal; nothing here parses it,
except `output`, which exists for the git collaborator's porcelain queries.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Sequence

from chores.errors import ChoreError, CommandError

logger = logging.getLogger(__name__)


async def _spawn(args: list[str], stage: str | None, **kwargs: Any) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_exec(*args, **kwargs)
    except OSError as e:
        raise ChoreError(f"Could not start `{args[0]}`: {e.strerror or e}", stage=stage or "command") from e


def _merged_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if not env:
        return None
    merged = dict(os.environ)
    merged.update(env)
    return merged


async def run(
    cmd: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    stdin: str | None = None,
    cwd: str | Path | None = None,
    check: bool = True,
    stage: str | None = None,
) -> int:
    """
    Run `cmd`, raising `CommandError` on a non-zero exit when `check` is set.

    `env` entries override the inherited environment; `stdin` is fed as text.
    Returns the exit code.
    """
    args = [str(a) for a in cmd]
    logger.debug("+ %s", " ".join(args))
    proc = await _spawn(
        args,
        stage,
        cwd=str(cwd) if cwd is not None else None,
        env=_merged_env(env),
        stdin=asyncio.subprocess.PIPE if stdin is not None else None,
    )
    await proc.communicate(stdin.encode("utf-8") if stdin is not None else None)
    returncode = proc.returncode if proc.returncode is not None else -1
    if check and returncode != 0:
        raise CommandError(args, returncode, stage=stage)
    return returncode


async def output(
    cmd: Sequence[str],
    *,
    cwd: str | Path | None = None,
    stage: str | None = None,
) -> str:
    """Run `cmd` and return its stdout as text."""
    args = [str(a) for a in cmd]
    logger.debug("+ %s", " ".join(args))
    proc = await _spawn(
        args,
        stage,
        cwd=str(cwd) if cwd is not None else None,
        stdout=asyncio.subprocess.PIPE,
    )
    stdout, _ = await proc.communicate()
    if proc.returncode != 0:
        raise CommandError(args, proc.returncode if proc.returncode is not None else -1, stage=stage)
    return stdout.decode("utf-8")
