"""
workflow.py

Responsibility: Build GitHub Actions workflow documents that invoke chores.

A workflow step is a task invocation `(module?, name, options)`. Option values
may be `${{ }}` expressions; secrets are routed through the step environment so
they never appear on a command line.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

PIN_FILE = ".chores/requirements.txt"

Workflow = dict[str, Any]


@dataclass(frozen=True)
class Expr:
    expression: str

    def __str__(self) -> str:
        return "${{ " + self.expression + " }}"


@dataclass(frozen=True)
class Secret:
    name: str

    def __str__(self) -> str:
        return str(Expr(f"secrets.{self.name}"))


def expr(expression: str) -> Expr:
    return Expr(expression)


def secret(name: str) -> Secret:
    return Secret(name)


@dataclass(frozen=True)
class Invocation:
    name: str
    module: str | None = None
    opts: Mapping[str, Any] = field(default_factory=dict)

    @property
    def task(self) -> str:
        return f"{self.module}.{self.name}" if self.module else self.name


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_format_value(v) for v in value) + "]"
    return str(value)


def chore_step(invocation: Invocation) -> dict[str, Any]:
    args = [shlex.quote(a) for a in ("chores", invocation.task)]
    env: dict[str, str] = {}
    for key, value in invocation.opts.items():
        if isinstance(value, Secret):
            var = f"CHORES_SECRET_{value.name}"
            env[var] = str(value)
            args.append(f'{shlex.quote(key + "=")}"${var}"')
        else:
            args.append(shlex.quote(f"{key}={_format_value(value)}"))
    step: dict[str, Any] = {"name": invocation.task, "run": " ".join(args)}
    if env:
        step["env"] = env
    return step


def chores(
    invocations: Iterable[Invocation],
    *,
    python_version: str = "3.11",
    setup: Iterable[dict[str, Any]] = (),
) -> list[dict[str, Any]]:
    """Checkout + toolchain setup, then one step per invocation, in order."""
    steps: list[dict[str, Any]] = [
        {"uses": "actions/checkout@v4"},
        {"uses": "actions/setup-python@v5", "with": {"python-version": python_version}},
        {
            "name": "install chores",
            "run": f"if [ -f {PIN_FILE} ]; then pip install -r {PIN_FILE}; else pip install chores; fi",
        },
    ]
    steps.extend(setup)
    steps.extend(chore_step(i) for i in invocations)
    return steps


def ci_workflow(steps: list[dict[str, Any]], *, branch: str = "main") -> Workflow:
    return {
        "on": {
            "push": {"branches": [branch]},
            "pull_request": {},
        },
        "jobs": {
            "build": {
                "runs-on": "ubuntu-latest",
                "steps": steps,
            },
        },
    }


def scheduled_workflow(
    job: str,
    steps: list[dict[str, Any]],
    *,
    cron: str,
    permissions: Mapping[str, str] | None = None,
) -> Workflow:
    body: dict[str, Any] = {"runs-on": "ubuntu-latest"}
    if permissions:
        body["permissions"] = dict(permissions)
    body["steps"] = steps
    return {
        "on": {
            "workflow_dispatch": {},
            "schedule": [{"cron": cron}],
        },
        "jobs": {job: body},
    }
