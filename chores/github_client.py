"""
github_client.py

Responsibility: Isolate all direct GitHub REST API interaction.

This module must be the only place that:
- Constructs GitHub REST endpoints
- Sends HTTP requests to api.github.com
- Interprets GitHub API responses / error payloads

Everything else (rendering, git commands, the self-update loop) uses this client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from chores.errors import GitHubError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PullRequest:
    number: int
    html_url: str
    created: bool


class GitHubClient:
    def __init__(self, token: str, api_base: str = "https://api.github.com") -> None:
        if not token.strip():
            raise GitHubError("GitHub token is required.")
        self._token = token
        self._api_base = api_base.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "chores",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        url = f"{self._api_base}{path}"
        try:
            r = requests.request(method, url, headers=self._headers(), json=json_body, params=params, timeout=30)
        except requests.RequestException as e:
            raise GitHubError(f"GitHub API request failed: {method} {path}") from e
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = {"message": r.text}
            raise GitHubError(f"GitHub API error {r.status_code} {method} {path}: {payload.get('message', payload)}")
        if r.status_code == 204:
            return None
        return r.json()

    def find_open_pull(self, owner: str, repo: str, *, branch: str, base: str) -> int | None:
        """
        Return the number of the open pull request from `branch` into `base`, if any.
        """
        data = self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls",
            params={"state": "open", "head": f"{owner}:{branch}", "base": base},
        )
        for pull in data or []:
            return int(pull["number"])
        return None

    def create_or_update_pull(
        self,
        *,
        owner: str,
        repo: str,
        branch: str,
        base: str,
        title: str,
        body: str,
    ) -> PullRequest:
        """
        Open a pull request for `branch`, or refresh the open one in place.

        Repeated scheduled runs therefore converge on a single pull request.
        """
        existing = self.find_open_pull(owner, repo, branch=branch, base=base)
        if existing is None:
            data = self._request(
                "POST",
                f"/repos/{owner}/{repo}/pulls",
                json_body={"title": title, "body": body, "head": branch, "base": base},
            )
            logger.info("Opened pull request %s", data["html_url"])
            return PullRequest(number=int(data["number"]), html_url=data["html_url"], created=True)

        data = self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/pulls/{existing}",
            json_body={"title": title, "body": body},
        )
        logger.info("Updated pull request %s", data["html_url"])
        return PullRequest(number=int(data["number"]), html_url=data["html_url"], created=False)
