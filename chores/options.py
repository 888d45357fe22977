"""
options.py

Responsibility: Load a project description into typed, immutable options.

- `ProjectOptions` is the single source of truth for rendering and for the
  container build graph.
- `DockerBuildOptions` carries the build-graph knobs; user overrides are merged
  over the defaults field by field (an override never replaces the record).
- `merge` is the explicit field-wise merge used for every options record,
  including per-task options coming from the command line.

Malformed options raise `ConfigurationError` at load time, never later.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping, TypeVar

import yaml

from chores.errors import ConfigurationError

if TYPE_CHECKING:
    from chores.docker import Step

T = TypeVar("T")

JDK_VERSION = "11.0.13"
SBT_VERSION = "1.5.7"

DEFAULT_SCALA_VERSIONS: Mapping[str, str] = MappingProxyType(
    {
        "2.12": "2.12.15",
        "2.13": "2.13.7",
        "3": "3.1.0",
    }
)


def _freeze(value: Any) -> Any:
    """Read-only copy of parsed data: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class DockerBuildOptions:
    """Knobs for the builder stage. Each (requires, targets) pair is one cache phase."""

    cmd: tuple[str, ...] = ()
    workdir: str = "/app"
    init_requires: tuple[str, ...] = ("project",)
    init_targets: tuple[str, ...] = ("about",)
    update_requires: tuple[str, ...] = ("build.sbt", "release.sbt")
    update_targets: tuple[str, ...] = ("update",)
    deps_requires: tuple[str, ...] = ()
    deps_targets: tuple[str, ...] = ()
    build_requires: tuple[str, ...] = ()
    build_targets: tuple[str, ...] = ()
    builder_setup: tuple[Step, ...] = ()


DEFAULT_DOCKER_OPTIONS = DockerBuildOptions()


@dataclass(frozen=True)
class ProjectOptions:
    """Parsed project description."""

    repo: str
    owner: str = "timbertson"
    organization: str = "net.gfxmonk"
    scala_majors: tuple[str, ...] = ("2.13",)
    scala_versions: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    docker: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    strict_plugin_override: str | None = None
    pypi: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "scala_versions", _freeze(self.scala_versions))
        object.__setattr__(self, "docker", _freeze(self.docker))

    def resolve_scala_versions(self) -> list[tuple[str, str]]:
        """
        Resolve every requested major to exactly one version string.

        An explicit `scala_versions` entry wins over the built-in default; a major
        with neither is a configuration error.
        """
        if not self.scala_majors:
            raise ConfigurationError("At least one Scala major version is required.")
        resolved: list[tuple[str, str]] = []
        for major in self.scala_majors:
            version = self.scala_versions.get(major) or DEFAULT_SCALA_VERSIONS.get(major)
            if not version:
                raise ConfigurationError(
                    f"No Scala version known for major {major!r} (set scala_versions.{major})"
                )
            resolved.append((major, version))
        return resolved

    @property
    def primary_scala_version(self) -> str:
        return self.resolve_scala_versions()[0][1]

    def docker_options(self) -> DockerBuildOptions:
        return merge(DEFAULT_DOCKER_OPTIONS, self.docker, parsers={"builder_setup": parse_steps})


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def normalize_key(key: str) -> str:
    """`buildTargets` -> `build_targets`; snake_case keys pass through."""
    return _CAMEL_BOUNDARY.sub(r"_\1", str(key)).lower()


def _read_text(name: str, value: str) -> Any:
    try:
        return yaml.safe_load(value)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"`{name}`: could not read {value!r}: {e}") from e


def _coerce(name: str, current: Any, value: Any, *, text: bool = False) -> Any:
    # The default's type decides what an override may be.
    if text and isinstance(value, str) and current is not None and not isinstance(current, str):
        value = _read_text(name, value)
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ConfigurationError(f"`{name}` must be true or false, got {value!r}")
        return value
    if isinstance(current, tuple):
        if isinstance(value, str) or not isinstance(value, (list, tuple)):
            raise ConfigurationError(f"`{name}` must be a list, got {value!r}")
        items = []
        for v in value:
            # An unquoted 2.10 reads as the float 2.1.
            if not isinstance(v, (str, int)) or isinstance(v, bool):
                raise ConfigurationError(f"`{name}` entries must be strings (quote {v!r}), got {value!r}")
            items.append(str(v))
        return tuple(items)
    if isinstance(current, Mapping):
        if not isinstance(value, Mapping):
            raise ConfigurationError(f"`{name}` must be a mapping, got {value!r}")
        return _freeze(value)
    if current is None or isinstance(current, str):
        if value is None and current is None:
            return None
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return str(value)
        raise ConfigurationError(f"`{name}` must be a string, got {value!r}")
    return value


def merge(
    defaults: T,
    overrides: Mapping[str, Any] | None,
    *,
    parsers: Mapping[str, Callable[[Any], Any]] | None = None,
    text: bool = False,
) -> T:
    """
    Merge `overrides` over the dataclass instance `defaults`, one field at a time.

    Fields absent from `overrides` keep their default. Unknown keys are rejected.
    `parsers` supplies custom conversion for fields that are not plain data.
    With `text`, overrides are command-line strings: string fields keep them
    verbatim, other fields read them as YAML (`true`, `[sbt, test]`).
    """
    if not overrides:
        return defaults
    if not isinstance(overrides, Mapping):
        raise ConfigurationError(f"Options for {type(defaults).__name__} must be a mapping.")

    known = {f.name for f in dataclasses.fields(defaults)}  # type: ignore[arg-type]
    changes: dict[str, Any] = {}
    for raw_key, value in overrides.items():
        key = normalize_key(raw_key)
        if key not in known:
            raise ConfigurationError(f"Unknown option `{raw_key}` for {type(defaults).__name__}")
        if parsers and key in parsers:
            changes[key] = parsers[key](value)
        else:
            changes[key] = _coerce(key, getattr(defaults, key), value, text=text)
    return dataclasses.replace(defaults, **changes)  # type: ignore[type-var]


def parse_steps(raw: Any) -> tuple[Step, ...]:
    """
    Parse pre-setup steps written as `{copy: [src, dst]}` or `{run: [argv...]}`.
    """
    from chores.docker import Step

    if isinstance(raw, tuple) and all(isinstance(s, Step) for s in raw):
        return raw
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError("`builder_setup` must be a list of steps.")

    steps: list[Step] = []
    for item in raw:
        if isinstance(item, Step):
            steps.append(item)
            continue
        if not isinstance(item, Mapping) or len(item) != 1:
            raise ConfigurationError(f"Each builder_setup step must be a single-key mapping, got {item!r}")
        ((kind, args),) = item.items()
        if not isinstance(args, (list, tuple)) or not args:
            raise ConfigurationError(f"`{kind}` step needs a non-empty list, got {args!r}")
        if kind == "copy":
            if len(args) != 2:
                raise ConfigurationError(f"`copy` step takes [source, dest], got {args!r}")
            steps.append(Step.copy(str(args[0]), str(args[1])))
        elif kind == "run":
            steps.append(Step.run([str(a) for a in args]))
        else:
            raise ConfigurationError(f"Unknown builder_setup step kind: {kind!r}")
    return tuple(steps)


def _major_of(version: str) -> str:
    parts = version.split(".")
    return parts[0] if parts[0] == "3" else ".".join(parts[:2])


def options_from_mapping(data: Mapping[str, Any]) -> ProjectOptions:
    """
    Build `ProjectOptions` from a parsed project mapping and validate it eagerly.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError("Project description must be a mapping at the top level.")

    fields = {normalize_key(k): v for k, v in data.items()}
    repo = str(fields.pop("repo", "") or "").strip()
    if not repo:
        raise ConfigurationError("Project must define `repo`.")

    # Legacy single-version pin: it names the primary major.
    legacy_version = fields.pop("scala_version", None)
    if legacy_version is not None:
        legacy_version = str(legacy_version)
        major = _major_of(legacy_version)
        versions = dict(fields.get("scala_versions") or {})
        versions[major] = legacy_version
        fields["scala_versions"] = versions
        fields.setdefault("scala_majors", [major])

    if "scala_versions" in fields and isinstance(fields["scala_versions"], Mapping):
        fields["scala_versions"] = {str(k): str(v) for k, v in fields["scala_versions"].items()}

    opts = merge(ProjectOptions(repo=repo), fields)
    opts.resolve_scala_versions()
    opts.docker_options()
    return opts


def load_options(path: str | Path) -> ProjectOptions:
    """
    Load a YAML project file (e.g. `chores.yml`).

    Recognised keys (camelCase or snake_case):
    - repo: str (required)
    - owner, organization: str
    - scala_majors: list[str]; scala_versions: {major: version}; scala_version: str
    - docker: partial DockerBuildOptions
    - strict_plugin_override: str
    - pypi: bool
    """
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Project file does not exist: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Project file is not valid YAML: {p}") from e
    return options_from_mapping(data)
