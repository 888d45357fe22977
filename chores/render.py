"""
render.py

Responsibility: Represent generated files and persist them deterministically.

Rules:
- A `RenderedFile` is fully computed when constructed; serializing it is pure.
- Templates are rendered with Jinja2 and `StrictUndefined`, so a missing value is
  an error instead of an empty string.
- YAML output keeps insertion order; it never depends on dict hashing or time.
- Writing goes through a temp file + `os.replace`, and unchanged files are not
  rewritten at all.

This module does NOT know which files a project has; see `chores.scala`.
"""

from __future__ import annotations

import enum
import logging
import os
import tempfile
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from jinja2 import Environment, StrictUndefined
from jinja2.exceptions import TemplateError

from chores.errors import RenderError

logger = logging.getLogger(__name__)

GENERATED_NOTICE = "generated by chores; do not edit"


class Kind(enum.Enum):
    TEXT = "text"
    YAML = "yaml"
    TEMPLATE = "template"


@dataclass(frozen=True)
class RenderedFile:
    path: str
    kind: Kind
    content: Any


@dataclass(frozen=True)
class WriteResult:
    written: int
    unchanged: int


_env = Environment(
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def text_file(path: str, content: str) -> RenderedFile:
    return RenderedFile(path, Kind.TEXT, content)


def yaml_file(path: str, data: Mapping[str, Any]) -> RenderedFile:
    return RenderedFile(path, Kind.YAML, data)


def template_file(path: str, template: str, **context: Any) -> RenderedFile:
    """
    Render an (indented, triple-quoted) Jinja2 template into a file.
    """
    source = textwrap.dedent(template).strip("\n")
    try:
        content = _env.from_string(source).render(**context)
    except TemplateError as e:
        raise RenderError(f"Failed rendering template for {path}") from e
    return RenderedFile(path, Kind.TEMPLATE, content)


def _comment_prefix(path: str) -> str:
    if path.endswith((".sbt", ".scala", ".java")):
        return "//"
    return "#"


def serialize(file: RenderedFile) -> str:
    if file.kind is Kind.TEXT:
        body = str(file.content)
    elif file.kind is Kind.YAML:
        body = f"# {GENERATED_NOTICE}\n" + yaml.safe_dump(
            file.content, sort_keys=False, default_flow_style=False, width=1000
        )
    else:
        body = f"{_comment_prefix(file.path)} {GENERATED_NOTICE}\n{file.content}"
    return body.rstrip("\n") + "\n"


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as tmp:
            tmp.write(text)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)


def write_files(files: Iterable[RenderedFile], root: str | Path = ".") -> WriteResult:
    """
    Write each file under `root`, in order, creating parent directories.
    """
    root_dir = Path(root)
    written = 0
    unchanged = 0
    for file in files:
        rel = Path(file.path)
        if rel.is_absolute() or ".." in rel.parts:
            raise RenderError(f"Generated file path must stay inside the project: {file.path}")
        dst = root_dir / rel
        text = serialize(file)
        if dst.is_file() and dst.read_text(encoding="utf-8") == text:
            unchanged += 1
            continue
        try:
            _atomic_write_text(dst, text)
        except OSError as e:
            raise RenderError(f"Failed writing {dst}") from e
        logger.debug("Wrote %s", dst)
        written += 1
    return WriteResult(written=written, unchanged=unchanged)
