import pytest

from chores.docker import BuildSpec, Stage, Step, build_spec, builder_steps, dockerfile, image_for_stage
from chores.errors import ConfigurationError
from chores.options import DEFAULT_DOCKER_OPTIONS, DockerBuildOptions, ProjectOptions, merge, parse_steps


def test_default_builder_steps_follow_phase_order() -> None:
    assert builder_steps(DEFAULT_DOCKER_OPTIONS) == [
        Step.copy("project", "project"),
        Step.run(["sbt", "about"]),
        Step.copy("build.sbt", "build.sbt"),
        Step.copy("release.sbt", "release.sbt"),
        Step.run(["sbt", "update"]),
    ]


def test_all_four_phases_in_fixed_order() -> None:
    opts = DockerBuildOptions(
        init_requires=("project",),
        init_targets=("about",),
        update_requires=("build.sbt",),
        update_targets=("update",),
        deps_requires=("deps.sbt",),
        deps_targets=("compile",),
        build_requires=("src",),
        build_targets=("stage", "test"),
        builder_setup=(Step.run(["apt-get", "update"]),),
    )
    runs = [s.args for s in builder_steps(opts) if s.kind == "run"]
    assert runs == [
        ("apt-get", "update"),
        ("sbt", "about"),
        ("sbt", "update"),
        ("sbt", "compile"),
        ("sbt", "stage", "test"),
    ]


def test_empty_targets_emit_no_copy() -> None:
    opts = merge(DEFAULT_DOCKER_OPTIONS, {"buildRequires": ["src", "build.sbt"], "buildTargets": []})
    steps = builder_steps(opts)
    assert steps == builder_steps(DEFAULT_DOCKER_OPTIONS)
    assert Step.copy("src", "src") not in steps


def test_every_phase_empty_leaves_only_setup() -> None:
    setup = (Step.copy("setup.sh", "/setup.sh"),)
    opts = DockerBuildOptions(init_targets=(), update_targets=(), builder_setup=setup)
    assert builder_steps(opts) == list(setup)


def test_single_field_override_keeps_other_defaults() -> None:
    merged = merge(DEFAULT_DOCKER_OPTIONS, {"workdir": "/src"})
    assert merged.workdir == "/src"
    assert merged.init_requires == DEFAULT_DOCKER_OPTIONS.init_requires
    assert merged.update_targets == DEFAULT_DOCKER_OPTIONS.update_targets
    assert merged.cmd == DEFAULT_DOCKER_OPTIONS.cmd


def test_unknown_docker_option_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        merge(DEFAULT_DOCKER_OPTIONS, {"buildTarget": ["oops"]})


def test_parse_steps() -> None:
    assert parse_steps([{"copy": ["a", "b"]}, {"run": ["echo", "hi"]}]) == (
        Step.copy("a", "b"),
        Step.run(["echo", "hi"]),
    )
    with pytest.raises(ConfigurationError):
        parse_steps([{"add": ["a", "b"]}])


def test_build_spec_for_project() -> None:
    spec = build_spec(ProjectOptions(repo="demo", docker={"cmd": ["sbt", "run"]}))
    assert spec.url == "ghcr.io/timbertson/demo"
    (stage,) = spec.stages
    assert stage.name == "builder"
    assert stage.base == "hseeberger/scala-sbt:11.0.13_1.5.7_2.13.7"
    assert stage.workdir == "/app"
    assert stage.cmd == ("sbt", "run")
    assert image_for_stage(spec, "last") == "ghcr.io/timbertson/demo:builder"


def test_dockerfile_text() -> None:
    spec = build_spec(ProjectOptions(repo="demo"))
    assert dockerfile(spec) == (
        "FROM hseeberger/scala-sbt:11.0.13_1.5.7_2.13.7 AS builder\n"
        "WORKDIR /app\n"
        'COPY ["project", "project"]\n'
        'RUN ["sbt", "about"]\n'
        'COPY ["build.sbt", "build.sbt"]\n'
        'COPY ["release.sbt", "release.sbt"]\n'
        'RUN ["sbt", "update"]\n'
    )


def test_duplicate_stage_names_rejected() -> None:
    with pytest.raises(ConfigurationError):
        BuildSpec("img", (Stage("a", "alpine"), Stage("a", "alpine")))


def test_later_stage_can_build_from_earlier_one() -> None:
    spec = BuildSpec("img", (Stage("builder", "alpine"), Stage("runtime", "builder")))
    assert "FROM builder AS runtime" in dockerfile(spec)
    assert image_for_stage(spec, "last") == "img:runtime"
    assert image_for_stage(spec, "builder") == "img:builder"


def test_stage_cannot_refer_to_a_later_stage() -> None:
    spec = BuildSpec("img", (Stage("runtime", "builder"), Stage("builder", "alpine")))
    with pytest.raises(ConfigurationError):
        dockerfile(spec)


def test_unknown_stage_lookup() -> None:
    spec = build_spec(ProjectOptions(repo="demo"))
    with pytest.raises(ConfigurationError):
        image_for_stage(spec, "runtime")
