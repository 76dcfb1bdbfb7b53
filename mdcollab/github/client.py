"""Anonymous GitHub REST client for public repository contents."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from mdcollab.exceptions import UpstreamError

if TYPE_CHECKING:
    from mdcollab.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentEntry:
    """One entry of a contents API directory listing."""

    name: str
    path: str
    type: str  # "file", "dir", "symlink", "submodule"
    size: int = 0
    sha: str | None = None
    download_url: str | None = None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> ContentEntry:
        return cls(
            name=str(item.get("name", "")),
            path=str(item.get("path", "")),
            type=str(item.get("type", "")),
            size=int(item.get("size") or 0),
            sha=item.get("sha"),
            download_url=item.get("download_url"),
        )


class GitHubClient:
    """Thin wrapper over the three GitHub endpoints the mirror needs.

    Every request carries the configured ``User-Agent``; no token is sent, so
    calls count against the anonymous rate limit. Non-2xx responses and
    transport failures are raised as UpstreamError.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._api_url = settings.github_api_url.rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.github_timeout_seconds)
        self._headers = {"User-Agent": settings.github_user_agent}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _get(
        self, url: str, *, api: bool, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        headers = dict(self._headers)
        if api:
            headers["Accept"] = "application/vnd.github.v3+json"
        try:
            response = await self._http.get(url, headers=headers, params=params)
        except httpx.HTTPError as exc:
            logger.warning("GitHub request to %s failed: %s", url, exc)
            raise UpstreamError(f"GitHub request failed: {exc}") from exc
        if response.status_code == 404:
            raise UpstreamError("Resource not found on GitHub", status_code=404)
        if not response.is_success:
            raise UpstreamError(
                f"GitHub API error: {response.status_code}", status_code=response.status_code
            )
        return response

    def _repo_url(self, owner: str, repo: str) -> str:
        return f"{self._api_url}/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    async def list_contents(self, owner: str, repo: str, path: str = "") -> list[ContentEntry]:
        """List a repository directory. A file path yields a one-entry list."""
        url = f"{self._repo_url(owner, repo)}/contents"
        if path.strip("/"):
            url = f"{url}/{quote(path.strip('/'))}"
        response = await self._get(url, api=True)
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError("GitHub returned an invalid contents listing") from exc
        items = payload if isinstance(payload, list) else [payload]
        return [ContentEntry.from_api(item) for item in items if isinstance(item, dict)]

    async def latest_commit_sha(self, owner: str, repo: str) -> str | None:
        """SHA of the newest commit on the default branch, or None for an empty repo."""
        url = f"{self._repo_url(owner, repo)}/commits"
        response = await self._get(url, api=True, params={"per_page": 1})
        try:
            commits = response.json()
        except ValueError as exc:
            raise UpstreamError("GitHub returned an invalid commit listing") from exc
        if isinstance(commits, list) and commits and isinstance(commits[0], dict):
            sha = commits[0].get("sha")
            return str(sha) if sha else None
        return None

    async def fetch_raw(self, download_url: str) -> str:
        """Fetch raw file content through its download URL."""
        response = await self._get(download_url, api=False)
        return response.text
