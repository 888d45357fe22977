"""
git.py

Responsibility: The git primitives used by chores (clean check, commit, branch, push).

All of these operate on a single working tree, given by `root` (default: cwd).
"""

from __future__ import annotations

import logging
from pathlib import Path

from chores import cmd
from chores.errors import PreconditionError

logger = logging.getLogger(__name__)


class Git:
    def __init__(self, root: str | Path = ".") -> None:
        self.root = Path(root)

    async def status(self) -> str:
        return await cmd.output(
            ["git", "status", "--porcelain", "--untracked-files=normal"], cwd=self.root, stage="git"
        )

    async def is_dirty(self) -> bool:
        return bool((await self.status()).strip())

    async def require_clean(self) -> None:
        """
        Fail unless the working tree has no uncommitted or untracked changes.
        """
        status = await self.status()
        if status.strip():
            logger.error("Uncommitted changes:\n%s", status.rstrip())
            raise PreconditionError(f"Working tree is not clean: {self.root.resolve()}")

    async def _base_ref(self, base: str) -> str:
        remotes = (await cmd.output(["git", "remote"], cwd=self.root, stage="git")).split()
        if "origin" not in remotes:
            return base
        await cmd.run(["git", "fetch", "origin", base], cwd=self.root, stage="git")
        return f"origin/{base}"

    async def checkout_branch(self, branch: str, *, base: str | None = None) -> None:
        """
        Create or reset `branch`, carrying working changes along.

        With `base`, the branch starts at the base branch (`origin/<base>` when an
        `origin` remote exists) instead of HEAD, so commits on the current branch
        never reach it.
        """
        if base is None:
            await cmd.run(["git", "checkout", "-B", branch], cwd=self.root, stage="git")
            return
        start = await self._base_ref(base)
        dirty = await self.is_dirty()
        if dirty:
            await cmd.run(
                ["git", "stash", "push", "--include-untracked", "--message", "chores self-update"],
                cwd=self.root,
                stage="git",
            )
        await cmd.run(["git", "checkout", "-B", branch, start], cwd=self.root, stage="git")
        if dirty:
            await cmd.run(["git", "stash", "pop"], cwd=self.root, stage="git")

    async def commit(self, message: str) -> None:
        await cmd.run(["git", "add", "-A"], cwd=self.root, stage="commit")
        await cmd.run(["git", "commit", "-m", message], cwd=self.root, stage="commit")

    async def push(self, branch: str, *, force: bool = False) -> None:
        args = ["git", "push"]
        if force:
            args.append("--force")
        args += ["origin", f"HEAD:refs/heads/{branch}"]
        await cmd.run(args, cwd=self.root, stage="pr")
