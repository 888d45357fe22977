import asyncio
from pathlib import Path

import pytest

from chores import bump as bump_module
from chores.errors import ChoreError


class FakeResponse:
    def __init__(self, status_code: int, payload) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


def test_bump_pins_latest_release_once(monkeypatch, tmp_path: Path) -> None:
    urls: list[str] = []

    def fake_get(url, timeout):
        urls.append(url)
        return FakeResponse(200, {"info": {"version": "1.2.3"}})

    monkeypatch.setattr(bump_module.requests, "get", fake_get)
    monkeypatch.setenv("CHORES_PYPI_URL", "https://index.example/pypi/")

    assert asyncio.run(bump_module.bump(tmp_path)) is True
    assert (tmp_path / ".chores" / "requirements.txt").read_text(encoding="utf-8") == "chores==1.2.3\n"
    assert urls == ["https://index.example/pypi/chores/json"]

    assert asyncio.run(bump_module.bump(tmp_path)) is False


def test_bump_index_errors(monkeypatch) -> None:
    monkeypatch.setattr(bump_module.requests, "get", lambda url, timeout: FakeResponse(503, {}))
    with pytest.raises(ChoreError) as info:
        bump_module.latest_version()
    assert info.value.stage == "bump"

    monkeypatch.setattr(bump_module.requests, "get", lambda url, timeout: FakeResponse(200, {"info": {}}))
    with pytest.raises(ChoreError):
        bump_module.latest_version()
