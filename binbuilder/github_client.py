"""
github_client.py

Responsibility: Isolate all direct GitHub REST API interaction.

Only used when a plan names its source as a GitHub `owner/name` pair: the
repository is looked up to find its clone URL and default branch. Cloning
itself is plain git and happens in `cli.py`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests


class GitHubError(RuntimeError):
    pass


@dataclass(frozen=True)
class RepoInfo:
    owner: str
    name: str
    html_url: str
    clone_url: str
    default_branch: str


class GitHubClient:
    def __init__(self, token: str | None = None, api_base: str = "https://api.github.com") -> None:
        # Public repositories can be read anonymously.
        self._token = (token or "").strip() or None
        self._api_base = api_base.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "binbuilder",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _request(self, method: str, path: str) -> Any:
        url = f"{self._api_base}{path}"
        try:
            r = requests.request(method, url, headers=self._headers(), timeout=30)
        except requests.RequestException as e:
            raise GitHubError(f"GitHub API request failed {method} {path}: {e}") from e
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = {"message": r.text}
            raise GitHubError(f"GitHub API error {r.status_code} {method} {path}: {payload.get('message', payload)}")
        return r.json()

    def get_repo(self, owner: str, name: str) -> RepoInfo:
        """Look up a repository; raises GitHubError if it is missing or inaccessible."""
        data = self._request("GET", f"/repos/{owner}/{name}")
        return RepoInfo(
            owner=owner,
            name=name,
            html_url=data["html_url"],
            clone_url=data["clone_url"],
            default_branch=data.get("default_branch") or "main",
        )
