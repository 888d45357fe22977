"""
chores package

Project automation for sbt-based Scala repositories, driven from a single
project file (`chores.yml`).

Key responsibilities are split across modules:
- `options.py`: parse the project file into typed, immutable options
- `render.py`: deterministic generated files and the atomic file writer
- `docker.py`: the staged container build graph and the docker collaborator
- `tasks.py`: the task registry, dispatcher and fail-together composition
- `self_update.py`: regenerate -> diff -> noop / commit / pull request
- `scala.py`: the concrete chore set and file set for a Scala project
- `cli.py`: CLI entrypoint (`chores TASK key=value ...`)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
