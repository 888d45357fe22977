"""
bump.py

Responsibility: Refresh the pinned chores version a project's CI installs.

The pin lives in `.chores/requirements.txt` and is resolved against the PyPI
JSON API. Re-running with no new release leaves the file untouched.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import requests

from chores.errors import ChoreError
from chores.render import text_file, write_files
from chores.workflow import PIN_FILE

logger = logging.getLogger(__name__)

DISTRIBUTION = "chores"
DEFAULT_INDEX_URL = "https://pypi.org/pypi"


def index_url() -> str:
    return os.environ.get("CHORES_PYPI_URL", DEFAULT_INDEX_URL).rstrip("/")


def latest_version(distribution: str = DISTRIBUTION, *, index: str | None = None) -> str:
    url = f"{index or index_url()}/{distribution}/json"
    try:
        r = requests.get(url, timeout=30)
    except requests.RequestException as e:
        raise ChoreError(f"Could not reach package index: {url}", stage="bump") from e
    if r.status_code >= 400:
        raise ChoreError(f"Package index returned {r.status_code} for {url}", stage="bump")
    try:
        return str(r.json()["info"]["version"])
    except (ValueError, KeyError, TypeError) as e:
        raise ChoreError(f"Unexpected package index response from {url}", stage="bump") from e


async def bump(root: str | Path = ".") -> bool:
    """Pin the latest release; returns True if the pin file changed."""
    version = await asyncio.to_thread(latest_version)
    result = write_files([text_file(PIN_FILE, f"{DISTRIBUTION}=={version}")], root)
    if result.written:
        logger.info("Pinned %s==%s", DISTRIBUTION, version)
    return bool(result.written)
