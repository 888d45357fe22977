import asyncio
import io
from pathlib import Path

import pytest

from chores import scala
from chores.errors import CommandError, ConfigurationError
from chores.options import options_from_mapping
from chores.scala import CiOptions, DockerLoginOptions, ScalaChores, SelfUpdateOptions
from chores.self_update import Outcome


class RecordingCmd:
    def __init__(self, fail: tuple[str, ...] = ()) -> None:
        self.calls: list[list[str]] = []
        self.fail = fail

    async def run(self, args, **kwargs) -> int:
        await asyncio.sleep(0)
        self.calls.append(list(args))
        if tuple(args[: len(self.fail)]) == self.fail and self.fail:
            raise CommandError(list(args), 1, stage=kwargs.get("stage"))
        return 0


class CleanGit:
    async def require_clean(self) -> None:
        return None

    async def is_dirty(self) -> bool:
        return False


def test_ci_renders_even_when_tests_fail(monkeypatch, tmp_path: Path) -> None:
    recorder = RecordingCmd(fail=("sbt",))
    monkeypatch.setattr(scala.cmd, "run", recorder.run)
    chores = ScalaChores(options_from_mapping({"repo": "demo"}), root=tmp_path)

    with pytest.raises(CommandError):
        asyncio.run(chores.ci(CiOptions()))
    assert recorder.calls == [["sbt", "strict compile", "test"]]
    assert (tmp_path / "release.sbt").exists()


def test_docker_login_pipes_token(monkeypatch, tmp_path: Path) -> None:
    seen: dict = {}

    async def fake_run(args, **kwargs):
        seen["args"] = list(args)
        seen.update(kwargs)
        return 0

    monkeypatch.setattr(scala.cmd, "run", fake_run)
    chores = ScalaChores(options_from_mapping({"repo": "demo"}), root=tmp_path)
    asyncio.run(chores.docker_login(DockerLoginOptions(user="me", token="secret")))
    assert seen["args"] == ["docker", "login", "ghcr.io", "-u", "me", "--password-stdin"]
    assert seen["stdin"] == "secret"

    with pytest.raises(ConfigurationError):
        asyncio.run(chores.docker_login(DockerLoginOptions(user="me")))


def test_self_update_on_up_to_date_tree_is_noop(monkeypatch, tmp_path: Path) -> None:
    async def no_new_release(root):
        return False

    monkeypatch.setattr(scala, "pin_latest", no_new_release)
    out = io.StringIO()
    chores = ScalaChores(options_from_mapping({"repo": "demo"}), root=tmp_path, git=CleanGit(), out=out)
    outcome = asyncio.run(chores.self_update(SelfUpdateOptions(mode="commit")))
    assert outcome is Outcome.NOOP
    assert out.getvalue() == "self-update: no-op\n"


def test_registry_without_pypi() -> None:
    registry = ScalaChores(options_from_mapping({"repo": "demo"})).registry()
    assert "pypi.build" not in registry.names()
    assert registry.resolve("docker").name == "build"
