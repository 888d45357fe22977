"""
docker.py

Responsibility: Describe multi-stage container builds and hand them to docker.

- `Step`, `Stage`, `BuildSpec`: an in-memory build graph. Step order within a
  stage is the cache key: identical steps in identical order reuse layers.
- `build_spec`: the builder stage for a project, phases ordered from least to
  most volatile (init, update, build-deps, build-app).
- `dockerfile`: deterministic Dockerfile text for a spec.
- `standard_build` / `run_image`: the container collaborator (shells out to docker).

Building a `BuildSpec` is pure; only the last two functions touch the outside world.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from chores import cmd
from chores.errors import ConfigurationError
from chores.options import JDK_VERSION, SBT_VERSION, DockerBuildOptions, ProjectOptions

logger = logging.getLogger(__name__)

LAST = "last"


@dataclass(frozen=True)
class Step:
    """A single build instruction: copy a path, or run a command vector."""

    kind: str
    args: tuple[str, ...]

    @classmethod
    def copy(cls, source: str, dest: str) -> Step:
        return cls("copy", (source, dest))

    @classmethod
    def run(cls, command: Sequence[str]) -> Step:
        return cls("run", tuple(command))

    def instruction(self) -> str:
        if self.kind == "copy":
            return f"COPY {json.dumps(list(self.args))}"
        return f"RUN {json.dumps(list(self.args))}"


@dataclass(frozen=True)
class Stage:
    name: str
    base: str
    workdir: str | None = None
    steps: tuple[Step, ...] = ()
    cmd: tuple[str, ...] = ()

    def push_all(self, steps: Iterable[Step]) -> Stage:
        return Stage(self.name, self.base, self.workdir, self.steps + tuple(steps), self.cmd)


@dataclass(frozen=True)
class BuildSpec:
    """Target image URL plus ordered stages; stage names are unique."""

    url: str
    stages: tuple[Stage, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for stage in self.stages:
            if stage.name == LAST:
                raise ConfigurationError(f"`{LAST}` is reserved and cannot name a stage.")
            if stage.name in seen:
                raise ConfigurationError(f"Duplicate stage name in build spec: {stage.name}")
            seen.add(stage.name)

    def stage(self, name: str) -> Stage:
        if not self.stages:
            raise ConfigurationError(f"Build spec for {self.url} has no stages.")
        if name == LAST:
            return self.stages[-1]
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise ConfigurationError(f"Unknown stage {name!r} in build spec for {self.url}")


def image(name: str, tag: str) -> str:
    return f"{name}:{tag}"


def image_for_stage(spec: BuildSpec, name: str) -> str:
    """Image reference of a stage's output, `last` meaning the final stage."""
    return f"{spec.url}:{spec.stage(name).name}"


def _phase(requires: Sequence[str], targets: Sequence[str]) -> list[Step]:
    # A phase without targets contributes no steps, its copies included.
    if not targets:
        return []
    steps = [Step.copy(p, p) for p in requires]
    steps.append(Step.run(["sbt", *targets]))
    return steps


def builder_steps(opts: DockerBuildOptions) -> list[Step]:
    steps = list(opts.builder_setup)
    steps += _phase(opts.init_requires, opts.init_targets)
    steps += _phase(opts.update_requires, opts.update_targets)
    steps += _phase(opts.deps_requires, opts.deps_targets)
    steps += _phase(opts.build_requires, opts.build_targets)
    return steps


def build_spec(project: ProjectOptions) -> BuildSpec:
    opts = project.docker_options()
    base = image(
        "hseeberger/scala-sbt",
        f"{JDK_VERSION}_{SBT_VERSION}_{project.primary_scala_version}",
    )
    builder = Stage("builder", base, workdir=opts.workdir, cmd=opts.cmd).push_all(builder_steps(opts))
    return BuildSpec(url=f"ghcr.io/{project.owner}/{project.repo}", stages=(builder,))


def dockerfile(spec: BuildSpec) -> str:
    lines: list[str] = []
    defined: set[str] = set()
    for stage in spec.stages:
        if stage.base in {s.name for s in spec.stages} and stage.base not in defined:
            raise ConfigurationError(f"Stage {stage.name!r} refers to later stage {stage.base!r}")
        if lines:
            lines.append("")
        lines.append(f"FROM {stage.base} AS {stage.name}")
        if stage.workdir:
            lines.append(f"WORKDIR {stage.workdir}")
        lines.extend(step.instruction() for step in stage.steps)
        if stage.cmd:
            lines.append(f"CMD {json.dumps(list(stage.cmd))}")
        defined.add(stage.name)
    return "\n".join(lines) + "\n"


async def standard_build(spec: BuildSpec, *, push: bool = False, context: str | Path = ".") -> str:
    """
    Build every stage in order, reusing the registry's cached layers.

    Each stage is tagged `<url>:<stage>` and built with inline cache metadata so
    the next run (on any machine) can use it via `--cache-from`.
    Returns the image reference of the last stage.
    """
    text = dockerfile(spec)
    for stage in spec.stages:
        tag = image_for_stage(spec, stage.name)
        # A missing cache image is normal on a first build.
        await cmd.run(["docker", "pull", tag], check=False, stage="build")
        await cmd.run(
            [
                "docker",
                "build",
                "--target",
                stage.name,
                "--tag",
                tag,
                "--cache-from",
                tag,
                "--build-arg",
                "BUILDKIT_INLINE_CACHE=1",
                "--file",
                "-",
                str(context),
            ],
            stdin=text,
            env={"DOCKER_BUILDKIT": "1"},
            stage="build",
        )
        if push:
            await cmd.run(["docker", "push", tag], stage="build")
    built = image_for_stage(spec, LAST)
    logger.info("Built %s", built)
    return built


@dataclass(frozen=True)
class BindMount:
    path: str
    container_path: str
    readonly: bool = False


async def run_image(
    image_ref: str,
    command: Sequence[str] | None = None,
    *,
    workdir: str | None = None,
    bind_mounts: Sequence[BindMount] = (),
) -> None:
    args = ["docker", "run", "--rm"]
    for mount in bind_mounts:
        mount_arg = f"type=bind,source={mount.path},target={mount.container_path}"
        if mount.readonly:
            mount_arg += ",readonly"
        args += ["--mount", mount_arg]
    if workdir:
        args += ["--workdir", workdir]
    args.append(image_ref)
    args += list(command or [])
    await cmd.run(args, stage="build")
