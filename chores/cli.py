"""
cli.py

Responsibility: CLI entrypoint for chores.

High-level flow:
1) Load the project file -> `ProjectOptions`
2) Build the task registry for that project
3) Dispatch the requested task with its `key=value` options

Any `ChoreError` ends the run with exit status 1 and a one-line message naming
the stage that failed; usage errors exit with status 2.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from chores import __version__
from chores.errors import ChoreError
from chores.options import load_options
from chores.scala import build_registry
from chores.tasks import dispatch

logger = logging.getLogger(__name__)


def parse_task_options(pairs: list[str]) -> dict[str, str]:
    """
    Split `key=value` arguments. Values stay text; each task's option types decide
    how they are read (`docker=true` is a bool, `github_token=on` stays a string).
    """
    out: dict[str, str] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Task options must look like key=value, got {pair!r}")
        out[key] = raw
    return out


def _project_path(root: str, project: str) -> Path:
    path = Path(project)
    return path if path.is_absolute() else Path(root) / path


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chores", description="Project chores: render, build, test, self-update")
    p.add_argument("task", nargs="?", help="Task to run (e.g. render, ci, docker.build, selfUpdate)")
    p.add_argument("options", nargs="*", metavar="key=value", help="Task options")
    p.add_argument(
        "--project",
        default=os.environ.get("CHORES_PROJECT", "chores.yml"),
        help="Project file (default: chores.yml, or env CHORES_PROJECT)",
    )
    p.add_argument("--root", default=".", help="Project working tree (default: current directory)")
    p.add_argument("--list", action="store_true", help="List available tasks and exit")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.task and not args.list:
        parser.error("a task name is required (use --list to see them)")
    try:
        task_options = parse_task_options(args.options)
    except ValueError as e:
        parser.error(str(e))

    try:
        project = load_options(_project_path(args.root, args.project))
        registry = build_registry(project, root=args.root)
        if args.list:
            for name in registry.names():
                print(name)
            return 0
        asyncio.run(dispatch(registry, args.task, task_options, text=True))
    except ChoreError as e:
        logger.debug("Task failed", exc_info=True)
        print(f"chores: {e.stage} failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
