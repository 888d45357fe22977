"""
tasks.py

Responsibility: Name -> operation lookup, option merging, and task composition.

- `Task`: an async operation plus the frozen dataclass describing its options.
- `Module`: a named group of tasks addressed as `module.task`; a bare module
  name runs its default task.
- `Registry`: the immutable lookup table built once per process.
- `dispatch`: resolve, merge options, await.
- `gather_all`: run operations concurrently; every one runs to completion and
  the first failure (in argument order) is raised afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping, Union

from chores.errors import ConfigurationError, ResolutionError
from chores.options import merge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoOptions:
    pass


@dataclass(frozen=True)
class Task:
    name: str
    operation: Callable[[Any], Awaitable[Any]]
    options: type = NoOptions

    def merge(self, raw: Mapping[str, Any] | None, *, text: bool = False) -> Any:
        return merge(self.options(), raw, text=text)


@dataclass(frozen=True)
class Module:
    name: str
    tasks: Mapping[str, Task] = field(default_factory=dict)
    default: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tasks", MappingProxyType(dict(self.tasks)))
        if self.default is not None and self.default not in self.tasks:
            raise ConfigurationError(f"Module {self.name!r} has no task {self.default!r} to use as default")

    @classmethod
    def of(cls, name: str, tasks: Iterable[Task], default: str | None = None) -> Module:
        return cls(name, {t.name: t for t in tasks}, default)


Entry = Union[Task, Module]


class Registry:
    def __init__(self, entries: Iterable[Entry]) -> None:
        table: dict[str, Entry] = {}
        for entry in entries:
            if entry.name in table:
                raise ConfigurationError(f"Task {entry.name!r} is registered twice")
            table[entry.name] = entry
        self._entries: Mapping[str, Entry] = MappingProxyType(table)

    @property
    def entries(self) -> Mapping[str, Entry]:
        return self._entries

    def resolve(self, name: str) -> Task:
        head, sep, rest = name.partition(".")
        entry = self._entries.get(head)
        if entry is None:
            raise ResolutionError(f"Unknown task: {name}")

        if isinstance(entry, Task):
            if sep:
                raise ResolutionError(f"{head!r} is a task, not a module: {name}")
            return entry

        if not sep:
            if entry.default is None:
                raise ResolutionError(f"Module {head!r} has no default task; pick one of: {', '.join(entry.tasks)}")
            return entry.tasks[entry.default]
        task = entry.tasks.get(rest)
        if task is None:
            raise ResolutionError(f"Unknown task {rest!r} in module {head!r}")
        return task

    def names(self) -> list[str]:
        out: list[str] = []
        for name, entry in self._entries.items():
            if isinstance(entry, Task):
                out.append(name)
            else:
                out.extend(f"{name}.{t}" for t in entry.tasks)
        return sorted(out)


async def dispatch(
    registry: Registry,
    name: str,
    raw_options: Mapping[str, Any] | None = None,
    *,
    text: bool = False,
) -> Any:
    task = registry.resolve(name)
    opts = task.merge(raw_options, text=text)
    logger.info("Running %s", name)
    return await task.operation(opts)


async def gather_all(*operations: Awaitable[Any]) -> list[Any]:
    """
    Await all `operations` together and fail only once every one has finished.
    """
    results = await asyncio.gather(*operations, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    for extra in errors[1:]:
        logger.error("Concurrent operation also failed: %s", extra)
    if errors:
        raise errors[0]
    return list(results)
