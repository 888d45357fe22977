"""
pypi.py

Responsibility: Build and upload a Python sdist (`pypi.build`, `pypi.release`).
"""

from __future__ import annotations

from pathlib import Path

from chores import cmd
from chores.errors import ChoreError
from chores.tasks import Module, NoOptions, Task


def pypi_module(root: str | Path = ".") -> Module:
    root_dir = Path(root)

    async def build(_: NoOptions) -> None:
        await cmd.run(["rm", "-rf", "dist"], cwd=root_dir, stage="build")
        await cmd.run(["./setup.py", "sdist"], cwd=root_dir, stage="build")

    async def release(_: NoOptions) -> None:
        dist = root_dir / "dist"
        if not dist.is_dir():
            raise ChoreError(f"Nothing to release: {dist} does not exist (run pypi.build)", stage="release")
        dist_files = sorted(f"dist/{p.name}" for p in dist.iterdir())
        if not dist_files:
            raise ChoreError(f"Nothing to release: {dist} is empty", stage="release")
        await cmd.run(["twine", "check", *dist_files], cwd=root_dir, stage="release")
        await cmd.run(["twine", "upload", *dist_files], cwd=root_dir, stage="release")

    return Module.of("pypi", [Task("build", build), Task("release", release)])
