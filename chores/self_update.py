"""
self_update.py

Responsibility: Regenerate a project, detect drift, and commit or propose the fix.

Flow: require a clean tree -> run `update` -> if the tree is still clean, stop
(no-op, whatever the mode) -> otherwise act on the mode:

- `noop`:   report that changes were detected, touch nothing
- `commit`: commit everything to the current branch
- `pr`:     commit onto a dedicated branch, force-push it, then open the pull
            request (or refresh the one already open for that branch)

This runs unattended on a schedule, so a clean run must never produce an
empty commit or pull request, and any failing git/GitHub call aborts the run.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from chores.errors import ConfigurationError
from chores.github_client import GitHubClient, PullRequest

logger = logging.getLogger(__name__)


class Mode(str, enum.Enum):
    NOOP = "noop"
    COMMIT = "commit"
    PR = "pr"

    @classmethod
    def parse(cls, value: str | Mode) -> Mode:
        try:
            return cls(value)
        except ValueError as e:
            choices = ", ".join(m.value for m in cls)
            raise ConfigurationError(f"Unknown self-update mode {value!r} (expected one of: {choices})") from e


class Outcome(str, enum.Enum):
    NOOP = "no-op"
    SUPPRESSED = "changes-detected"
    COMMITTED = "committed"
    PR_OPENED = "pr-opened"


@dataclass(frozen=True)
class PullRequestOptions:
    owner: str
    repo: str
    github_token: str | None = None
    base_branch: str = "main"
    branch_name: str = "self-update"
    title: str = "[bot] self-update"
    body: str = ":robot:"


@dataclass(frozen=True)
class SelfUpdateRequest:
    mode: Mode
    update: Callable[[], Awaitable[None]]
    pr: PullRequestOptions | None = None
    commit_message: str = "chore: update"


class GitCollaborator(Protocol):
    async def require_clean(self) -> None: ...

    async def is_dirty(self) -> bool: ...

    async def checkout_branch(self, branch: str, *, base: str | None = None) -> None: ...

    async def commit(self, message: str) -> None: ...

    async def push(self, branch: str, *, force: bool = False) -> None: ...


class PullRequestCollaborator(Protocol):
    async def create_or_update_pull(
        self, *, owner: str, repo: str, branch: str, base: str, title: str, body: str
    ) -> PullRequest: ...


class GitHubPulls:
    """Async face of `GitHubClient`; HTTP calls run in a worker thread."""

    def __init__(self, token: str) -> None:
        self._client = GitHubClient(token)

    async def create_or_update_pull(
        self, *, owner: str, repo: str, branch: str, base: str, title: str, body: str
    ) -> PullRequest:
        return await asyncio.to_thread(
            self._client.create_or_update_pull,
            owner=owner,
            repo=repo,
            branch=branch,
            base=base,
            title=title,
            body=body,
        )


def _pull_request_target(request: SelfUpdateRequest, mode: Mode) -> tuple[PullRequestOptions, str] | None:
    """Validate the request up front; in `pr` mode, return the options and token."""
    if not request.commit_message.strip():
        raise ConfigurationError("Self-update commit message must not be empty.")
    if mode is not Mode.PR:
        return None
    if request.pr is None:
        raise ConfigurationError("Self-update in `pr` mode needs pull request options.")
    if not request.pr.github_token:
        raise ConfigurationError("Self-update in `pr` mode needs a GitHub token (github_token= or GITHUB_TOKEN).")
    return request.pr, request.pr.github_token


async def self_update(
    request: SelfUpdateRequest,
    *,
    git: GitCollaborator,
    pulls: Callable[[str], PullRequestCollaborator] = GitHubPulls,
) -> Outcome:
    mode = Mode.parse(request.mode)
    target = _pull_request_target(request, mode)

    await git.require_clean()
    await request.update()

    if not await git.is_dirty():
        logger.info("Self-update: nothing changed")
        return Outcome.NOOP

    if mode is Mode.NOOP:
        logger.info("Self-update: changes detected (mode=noop, not committing)")
        return Outcome.SUPPRESSED

    if mode is Mode.COMMIT:
        await git.commit(request.commit_message)
        logger.info("Self-update: committed changes")
        return Outcome.COMMITTED

    if target is None:
        raise ConfigurationError(f"Unhandled self-update mode: {mode.value}")
    pr, token = target
    await git.checkout_branch(pr.branch_name, base=pr.base_branch)
    await git.commit(request.commit_message)
    await git.push(pr.branch_name, force=True)
    pull = await pulls(token).create_or_update_pull(
        owner=pr.owner,
        repo=pr.repo,
        branch=pr.branch_name,
        base=pr.base_branch,
        title=pr.title,
        body=pr.body,
    )
    logger.info("Self-update: pull request #%s %s", pull.number, "opened" if pull.created else "updated")
    return Outcome.PR_OPENED
