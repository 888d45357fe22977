import asyncio
import dataclasses

import pytest

from chores.errors import CommandError, ConfigurationError, PreconditionError
from chores.github_client import PullRequest
from chores.self_update import Mode, Outcome, PullRequestOptions, SelfUpdateRequest, self_update


class FakeGit:
    """A working tree reduced to: committed content vs. current content."""

    def __init__(self, dirty: bool = False, fail_on: str | None = None) -> None:
        self.committed = {"release.sbt": "v1"}
        self.tree = dict(self.committed)
        if dirty:
            self.tree["stray.txt"] = "x"
        self.fail_on = fail_on
        self.calls: list[tuple] = []

    def _record(self, *call) -> None:
        self.calls.append(call)
        if call[0] == self.fail_on:
            raise CommandError(["git", call[0]], 1, stage=call[0])

    async def require_clean(self) -> None:
        if self.tree != self.committed:
            raise PreconditionError("Working tree is not clean")

    async def is_dirty(self) -> bool:
        return self.tree != self.committed

    async def checkout_branch(self, branch: str, *, base: str | None = None) -> None:
        self._record("checkout", branch, base)

    async def commit(self, message: str) -> None:
        self._record("commit", message)
        self.committed = dict(self.tree)

    async def push(self, branch: str, *, force: bool = False) -> None:
        self._record("push", branch, force)


class FakePulls:
    def __init__(self) -> None:
        self.open: dict[str, int] = {}
        self.calls: list[dict] = []

    def __call__(self, token: str) -> "FakePulls":
        assert token == "t0ken"
        return self

    async def create_or_update_pull(self, **kwargs) -> PullRequest:
        self.calls.append(kwargs)
        number = self.open.get(kwargs["branch"])
        if number is None:
            number = self.open[kwargs["branch"]] = 7
            return PullRequest(number, "https://example.invalid/pull/7", created=True)
        return PullRequest(number, "https://example.invalid/pull/7", created=False)


def _request(git: FakeGit, mode: str, new_content: str = "v2", **kwargs) -> SelfUpdateRequest:
    async def update() -> None:
        await asyncio.sleep(0)
        git.tree["release.sbt"] = new_content

    return SelfUpdateRequest(
        mode=Mode.parse(mode),
        update=update,
        pr=PullRequestOptions(owner="acme", repo="demo", github_token="t0ken"),
        **kwargs,
    )


def _run(request: SelfUpdateRequest, git: FakeGit, pulls: FakePulls | None = None) -> Outcome:
    return asyncio.run(self_update(request, git=git, pulls=pulls or FakePulls()))


@pytest.mark.parametrize("mode", ["noop", "commit", "pr"])
def test_nothing_changed_is_noop_in_every_mode(mode: str) -> None:
    git = FakeGit()
    assert _run(_request(git, mode, new_content="v1"), git) is Outcome.NOOP
    assert git.calls == []


def test_noop_mode_only_reports() -> None:
    git = FakeGit()
    assert _run(_request(git, "noop"), git) is Outcome.SUPPRESSED
    assert git.calls == []


def test_commit_mode_is_idempotent() -> None:
    git = FakeGit()
    assert _run(_request(git, "commit"), git) is Outcome.COMMITTED
    assert git.calls == [("commit", "chore: update")]

    assert _run(_request(git, "commit"), git) is Outcome.NOOP
    assert git.calls == [("commit", "chore: update")]


def test_pr_mode_opens_then_noops() -> None:
    git = FakeGit()
    pulls = FakePulls()
    assert _run(_request(git, "pr"), git, pulls) is Outcome.PR_OPENED
    assert git.calls == [
        ("checkout", "self-update", "main"),
        ("commit", "chore: update"),
        ("push", "self-update", True),
    ]
    assert pulls.calls == [
        {
            "owner": "acme",
            "repo": "demo",
            "branch": "self-update",
            "base": "main",
            "title": "[bot] self-update",
            "body": ":robot:",
        }
    ]

    assert _run(_request(git, "pr"), git, pulls) is Outcome.NOOP
    assert len(pulls.calls) == 1


def test_pr_mode_updates_existing_pull_request() -> None:
    pulls = FakePulls()
    pulls.open["self-update"] = 3
    git = FakeGit()
    assert _run(_request(git, "pr"), git, pulls) is Outcome.PR_OPENED
    assert pulls.open == {"self-update": 3}


def test_custom_commit_message() -> None:
    git = FakeGit()
    _run(_request(git, "commit", commit_message="build: regenerate"), git)
    assert git.calls == [("commit", "build: regenerate")]


def test_dirty_tree_aborts_before_update() -> None:
    git = FakeGit(dirty=True)
    ran: list[bool] = []

    async def update() -> None:
        ran.append(True)

    with pytest.raises(PreconditionError):
        _run(SelfUpdateRequest(mode=Mode.COMMIT, update=update), git)
    assert ran == []


def test_push_failure_is_fatal_and_skips_the_pull_request() -> None:
    git = FakeGit(fail_on="push")
    pulls = FakePulls()
    with pytest.raises(CommandError):
        _run(_request(git, "pr"), git, pulls)
    assert pulls.calls == []


def test_pr_mode_without_token_fails_before_touching_the_tree() -> None:
    git = FakeGit()
    ran: list[bool] = []

    async def update() -> None:
        ran.append(True)

    request = SelfUpdateRequest(mode=Mode.PR, update=update, pr=PullRequestOptions(owner="acme", repo="demo"))
    with pytest.raises(ConfigurationError):
        _run(request, git)
    assert ran == []


def test_unknown_mode() -> None:
    with pytest.raises(ConfigurationError):
        Mode.parse("yolo")


def test_pr_mode_branches_from_the_configured_base() -> None:
    git = FakeGit()
    request = dataclasses.replace(
        _request(git, "pr"),
        pr=PullRequestOptions(owner="acme", repo="demo", github_token="t0ken", base_branch="develop"),
    )
    pulls = FakePulls()
    assert _run(request, git, pulls) is Outcome.PR_OPENED
    assert git.calls[0] == ("checkout", "self-update", "develop")
    assert pulls.calls[0]["base"] == "develop"


def test_pr_mode_without_pull_request_options_fails_before_touching_the_tree() -> None:
    git = FakeGit()
    ran: list[bool] = []

    async def update() -> None:
        ran.append(True)

    with pytest.raises(ConfigurationError):
        _run(SelfUpdateRequest(mode=Mode.PR, update=update), git)
    assert ran == []
    assert git.calls == []
