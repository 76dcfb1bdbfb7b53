"""Shared test fixtures for mdcollab."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mdcollab.config import Settings
from mdcollab.database import create_engine, init_schema
from mdcollab.github.client import GitHubClient
from mdcollab.models.user import Role
from mdcollab.services.access import Actor
from mdcollab.services.coordination import SubtreeLocks
from mdcollab.services.notification_service import NotificationHub
from mdcollab.services.user_service import create_user

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

RAW_HOST = "raw.githubusercontent.com"


@dataclass
class FakeGitHub:
    """In-memory stand-in for the GitHub contents, commits and raw endpoints.

    ``files`` maps repository paths to content; directories are implied by the
    paths. Paths listed in ``failing`` answer with HTTP 500 both when listed as
    a directory and when fetched raw. ``commits_failing`` makes the commits
    endpoint answer with HTTP 500.
    """

    owner: str = "octo"
    repo: str = "docs-repo"
    files: dict[str, str] = field(default_factory=dict)
    commit_sha: str | None = "sha-1"
    commits_failing: bool = False
    failing: set[str] = field(default_factory=set)
    requests: list[httpx.Request] = field(default_factory=list)

    def download_url(self, path: str) -> str:
        return f"https://{RAW_HOST}/{self.owner}/{self.repo}/main/{path}"

    def _dirs(self) -> set[str]:
        dirs: set[str] = set()
        for path in self.files:
            parts = path.split("/")[:-1]
            for i in range(1, len(parts) + 1):
                dirs.add("/".join(parts[:i]))
        return dirs

    def _listing(self, directory: str) -> list[dict[str, object]] | None:
        dirs = self._dirs()
        if directory and directory not in dirs:
            return None
        prefix = f"{directory}/" if directory else ""
        entries: list[dict[str, object]] = []
        for path in sorted(dirs):
            if path.startswith(prefix) and "/" not in path[len(prefix) :]:
                entries.append(
                    {
                        "name": path.rsplit("/", 1)[-1],
                        "path": path,
                        "type": "dir",
                        "size": 0,
                        "sha": f"tree-{path}",
                        "download_url": None,
                    }
                )
        for path, content in sorted(self.files.items()):
            if path.startswith(prefix) and "/" not in path[len(prefix) :]:
                entries.append(
                    {
                        "name": path.rsplit("/", 1)[-1],
                        "path": path,
                        "type": "file",
                        "size": len(content),
                        "sha": f"blob-{path}",
                        "download_url": self.download_url(path),
                    }
                )
        return entries

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url_path = request.url.path
        if request.url.host == RAW_HOST:
            path = url_path.split("/main/", 1)[-1]
            if path in self.failing:
                return httpx.Response(500)
            if path not in self.files:
                return httpx.Response(404, text="404: Not Found")
            return httpx.Response(200, text=self.files[path])

        repo_prefix = f"/repos/{self.owner}/{self.repo}"
        if not url_path.startswith(repo_prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        rest = url_path[len(repo_prefix) :]
        if rest == "/commits":
            if self.commits_failing:
                return httpx.Response(500, json={"message": "Server Error"})
            commits = [] if self.commit_sha is None else [{"sha": self.commit_sha}]
            return httpx.Response(200, json=commits)
        if rest == "/contents" or rest.startswith("/contents/"):
            directory = rest[len("/contents") :].strip("/")
            if directory in self.failing:
                return httpx.Response(500, json={"message": "Server Error"})
            listing = self._listing(directory)
            if listing is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=listing)
        return httpx.Response(404, json={"message": "Not Found"})

    def count(self, fragment: str) -> int:
        return sum(1 for r in self.requests if fragment in str(r.url))


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    db_path = tmp_path / "test.db"
    return Settings(
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        github_api_url="https://api.github.com",
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine, _ = create_engine(test_settings)
    await init_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


async def _actor(session: AsyncSession, name: str, role: Role) -> Actor:
    user = await create_user(session, name=name, email=f"{name}@example.com", role=role)
    return Actor.from_user(user)


@pytest.fixture
async def admin(db_session: AsyncSession) -> Actor:
    return await _actor(db_session, "admin", Role.ADMIN)


@pytest.fixture
async def editor(db_session: AsyncSession) -> Actor:
    return await _actor(db_session, "editor", Role.EDITOR)


@pytest.fixture
async def other_editor(db_session: AsyncSession) -> Actor:
    return await _actor(db_session, "other", Role.EDITOR)


@pytest.fixture
async def viewer(db_session: AsyncSession) -> Actor:
    return await _actor(db_session, "viewer", Role.VIEWER)


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub(queue_size=10)


@pytest.fixture
def locks() -> SubtreeLocks:
    return SubtreeLocks()


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub(
        files={
            "README.md": "# Docs\n",
            "docs/guide.md": "# Guide\n",
            "docs/logo.png": "not markdown",
        }
    )


@pytest.fixture
async def github_client(
    test_settings: Settings, fake_github: FakeGitHub
) -> AsyncGenerator[GitHubClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_github.handler))
    client = GitHubClient(test_settings, http_client=http)
    yield client
    await http.aclose()
