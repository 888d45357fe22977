"""
scala.py

Responsibility: The chore set for an sbt-based Scala project.

- `files`: every generated artifact for a project, as a pure function of
  `ProjectOptions` (same options -> byte-identical output).
- `ScalaChores`: the operations (render, bump, ci, release, docker.*, selfUpdate)
  wired to the git / docker / GitHub collaborators.
- `build_registry`: the task table the CLI dispatches against.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, TextIO

from chores import cmd, workflow
from chores.bump import bump as pin_latest
from chores.docker import BindMount, build_spec, dockerfile, image_for_stage, run_image, standard_build
from chores.errors import ConfigurationError
from chores.git import Git
from chores.options import SBT_VERSION, ProjectOptions
from chores.pypi import pypi_module
from chores.render import RenderedFile, WriteResult, template_file, text_file, write_files, yaml_file
from chores.self_update import (
    GitCollaborator,
    GitHubPulls,
    Mode,
    Outcome,
    PullRequestCollaborator,
    PullRequestOptions,
    SelfUpdateRequest,
    self_update,
)
from chores.tasks import Module, NoOptions, Registry, Task, gather_all

logger = logging.getLogger(__name__)

SBT_TEST_COMMAND = ("sbt", "strict compile", "test")
DEFAULT_STRICT_PLUGIN = 'addSbtPlugin("net.gfxmonk" % "sbt-strict-scope" % "3.1.0")'


def _ci_workflow() -> workflow.Workflow:
    return workflow.ci_workflow(
        workflow.chores(
            [
                workflow.Invocation(
                    "login",
                    module="docker",
                    opts={"user": workflow.expr("github.actor"), "token": workflow.secret("GITHUB_TOKEN")},
                ),
                workflow.Invocation("ci", opts={"docker": True}),
                workflow.Invocation("requireClean"),
            ]
        )
    )


def _self_update_workflow() -> workflow.Workflow:
    git_identity = {
        "name": "git identity",
        "run": 'git config user.name "github-actions[bot]" && '
        'git config user.email "github-actions[bot]@users.noreply.github.com"',
    }
    return workflow.scheduled_workflow(
        "self-update",
        workflow.chores(
            [
                workflow.Invocation(
                    "selfUpdate",
                    opts={"mode": "pr", "github_token": workflow.secret("GITHUB_TOKEN")},
                ),
            ],
            setup=[git_identity],
        ),
        cron="0 0 * * 1,4",
        permissions={"contents": "write", "pull-requests": "write"},
    )


def files(opts: ProjectOptions) -> list[RenderedFile]:
    versions = [v for _major, v in opts.resolve_scala_versions()]
    return [
        template_file(
            "project/sonatype.sbt",
            """
            addSbtPlugin("com.jsuereth" % "sbt-pgp" % "2.0.1")
            addSbtPlugin("org.xerial.sbt" % "sbt-sonatype" % "3.9.7")
            """,
        ),
        template_file(
            "project/src/main/scala/PublishSettings.scala",
            """
            import sbt._
            import Keys._
            import xerial.sbt.Sonatype.SonatypeKeys._

            object ScalaProject {
              val hiddenProjectSettings = Seq(
                publish / skip := true,
              )

              def publicProjectSettings = Seq(
                publishTo := sonatypePublishToBundle.value,
                publishMavenStyle := true,
                Test / publishArtifact := false,
              )
            }
            """,
        ),
        template_file(
            "release.sbt",
            """
            ThisBuild / scalaVersion := "{{ versions[0] }}"
            {% if versions | length > 1 -%}
            ThisBuild / crossScalaVersions := Seq({% for v in versions %}"{{ v }}"{{ ", " if not loop.last else "" }}{% endfor %})
            {% endif -%}
            ThisBuild / organization := "{{ organization }}"
            ThisBuild / homepage := Some(url(s"https://github.com/{{ owner }}/{{ repo }}"))
            ThisBuild / scmInfo := Some(
              ScmInfo(
                url("https://github.com/{{ owner }}/{{ repo }}"),
                s"scm:git@github.com:{{ owner }}/{{ repo }}.git"
              )
            )
            """,
            versions=versions,
            organization=opts.organization,
            owner=opts.owner,
            repo=opts.repo,
        ),
        template_file(
            "project/strict.sbt",
            """
            addSbtPlugin("io.github.davidgregory084" % "sbt-tpolecat" % "0.1.20")
            {{ strict_plugin }}
            """,
            strict_plugin=opts.strict_plugin_override or DEFAULT_STRICT_PLUGIN,
        ),
        template_file("project/build.properties", "sbt.version={{ sbt_version }}", sbt_version=SBT_VERSION),
        text_file(".dockerignore", ".git\ntarget/\n"),
        yaml_file(".github/workflows/ci.yml", _ci_workflow()),
        yaml_file(".github/workflows/self-update.yml", _self_update_workflow()),
    ]


@dataclass(frozen=True)
class CiOptions:
    docker: bool = False


@dataclass(frozen=True)
class SelfUpdateOptions:
    mode: str = "noop"
    github_token: str | None = None
    commit_message: str = "chore: update"
    pr_title: str = "[bot] self-update"
    pr_body: str = ":robot:"
    base_branch: str = "main"
    branch: str = "self-update"


@dataclass(frozen=True)
class DockerBuildTaskOptions:
    push: bool = False


@dataclass(frozen=True)
class DockerRunOptions:
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class DockerLoginOptions:
    user: str = ""
    token: str = ""


class ScalaChores:
    def __init__(
        self,
        project: ProjectOptions,
        *,
        root: str | Path = ".",
        git: GitCollaborator | None = None,
        pulls: Callable[[str], PullRequestCollaborator] = GitHubPulls,
        out: TextIO | None = None,
    ) -> None:
        self.project = project
        self.root = Path(root)
        self.spec = build_spec(project)
        self.git = git if git is not None else Git(self.root)
        self.pulls = pulls
        self.out = out

    async def render(self, _: NoOptions | None = None) -> WriteResult:
        result = write_files(files(self.project), self.root)
        logger.info("Rendered %d file(s), %d unchanged", result.written, result.unchanged)
        return result

    async def bump(self, _: NoOptions | None = None) -> bool:
        return await pin_latest(self.root)

    async def require_clean(self, _: NoOptions | None = None) -> None:
        await self.git.require_clean()

    async def release(self, _: NoOptions | None = None) -> None:
        await cmd.run(["sbt", "publishSigned", "sonatypeBundleRelease"], cwd=self.root, stage="release")

    async def ci(self, opts: CiOptions) -> None:
        """Run the test suite and re-render concurrently; both always finish."""
        await gather_all(self._run_tests(docker=opts.docker), self.render())

    async def _run_tests(self, *, docker: bool) -> None:
        if docker:
            await self.docker_build(DockerBuildTaskOptions())
            await self.docker_run(DockerRunOptions(args=SBT_TEST_COMMAND))
        else:
            await cmd.run(list(SBT_TEST_COMMAND), cwd=self.root, stage="test")

    async def _update(self) -> None:
        await self.bump()
        await self.render()

    async def self_update(self, opts: SelfUpdateOptions) -> Outcome:
        request = SelfUpdateRequest(
            mode=Mode.parse(opts.mode),
            update=self._update,
            commit_message=opts.commit_message,
            pr=PullRequestOptions(
                owner=self.project.owner,
                repo=self.project.repo,
                github_token=opts.github_token or os.environ.get("GITHUB_TOKEN"),
                base_branch=opts.base_branch,
                branch_name=opts.branch,
                title=opts.pr_title,
                body=opts.pr_body,
            ),
        )
        outcome = await self_update(request, git=self.git, pulls=self.pulls)
        print(f"self-update: {outcome.value}", file=self.out or sys.stdout)
        return outcome

    async def docker_login(self, opts: DockerLoginOptions) -> None:
        if not opts.user or not opts.token:
            raise ConfigurationError("docker.login needs both `user` and `token`.")
        await cmd.run(
            ["docker", "login", "ghcr.io", "-u", opts.user, "--password-stdin"],
            stdin=opts.token,
            stage="build",
        )

    async def docker_build(self, opts: DockerBuildTaskOptions) -> str:
        return await standard_build(self.spec, push=opts.push, context=self.root)

    async def docker_run(self, opts: DockerRunOptions) -> None:
        await run_image(
            image_for_stage(self.spec, "last"),
            opts.args,
            workdir="/workspace",
            bind_mounts=[BindMount(str(self.root.resolve()), "/workspace")],
        )

    async def docker_print(self, _: NoOptions | None = None) -> None:
        print(dockerfile(self.spec), end="", file=self.out or sys.stdout)

    def registry(self) -> Registry:
        entries: list[Task | Module] = [
            Task("render", self.render),
            Task("bump", self.bump),
            Task("ci", self.ci, CiOptions),
            Task("release", self.release),
            Task("requireClean", self.require_clean),
            Task("selfUpdate", self.self_update, SelfUpdateOptions),
            Module.of(
                "docker",
                [
                    Task("build", self.docker_build, DockerBuildTaskOptions),
                    Task("run", self.docker_run, DockerRunOptions),
                    Task("print", self.docker_print),
                    Task("login", self.docker_login, DockerLoginOptions),
                ],
                default="build",
            ),
        ]
        if self.project.pypi:
            entries.append(pypi_module(self.root))
        return Registry(entries)


def build_registry(project: ProjectOptions, *, root: str | Path = ".") -> Registry:
    return ScalaChores(project, root=root).registry()
