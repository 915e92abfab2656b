"""
Pytest Configuration and Fixtures

Shared fixtures for unit and integration tests: an in-memory database, a
fake GitHub served through ``httpx.MockTransport`` and seeded users.
"""

import itertools
import json
import re
from typing import Any, AsyncGenerator, Dict, Generator, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gitfarm.main import app
from gitfarm.db.base import Base
from gitfarm.db.models import Account, User
from gitfarm.api.deps import get_db, get_github_factory, get_redis, get_session_maker
from gitfarm.api.routes.commits import get_job_dispatcher
from gitfarm.core.github.client import GitHubClient

TEST_DATABASE_URL = "sqlite+aiosqlite://"
GITHUB_URL = "https://api.github.test"


class FakeGitHub:
    """
    In-memory stand-in for the GitHub git data API.

    Repositories map to ``{"branch", "head", "empty"}``; commit objects keep
    their tree and parents so fast-forward checks behave like GitHub's.
    """

    def __init__(self):
        self.repos: Dict[str, Dict[str, Any]] = {}
        self.commits: Dict[str, Dict[str, Any]] = {}
        self.requests: List[Tuple[str, str]] = []
        self.create_calls: List[Dict[str, Any]] = []
        self.ref_updates: List[Dict[str, Any]] = []
        self.fail_create_at: Optional[int] = None
        self.push_status: Optional[int] = None
        self._ids = itertools.count(1)

    def add_repo(self, full_name: str, branch: str = "main", empty: bool = False) -> Optional[str]:
        head = None
        if not empty:
            head = self._new_commit("tree-root", [])
        self.repos[full_name] = {"branch": branch, "head": head, "empty": empty}
        return head

    def head(self, full_name: str) -> Optional[str]:
        return self.repos[full_name]["head"]

    def _new_commit(self, tree: str, parents: List[str], body: Optional[dict] = None) -> str:
        sha = f"sha{next(self._ids):04d}"
        self.commits[sha] = {"tree": tree, "parents": parents, "body": body or {}}
        return sha

    def _descends_from(self, sha: str, ancestor: Optional[str]) -> bool:
        if ancestor is None:
            return True
        while sha:
            if sha == ancestor:
                return True
            parents = self.commits.get(sha, {}).get("parents") or [None]
            sha = parents[0]
        return False

    @property
    def write_requests(self) -> List[Tuple[str, str]]:
        return [r for r in self.requests if r[0] != "GET"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))

        if path == "/user/repos":
            return httpx.Response(200, json=[
                {
                    "id": i,
                    "name": name.split("/")[1],
                    "full_name": name,
                    "private": False,
                    "html_url": f"https://github.com/{name}",
                    "default_branch": repo["branch"],
                }
                for i, (name, repo) in enumerate(self.repos.items(), start=1)
            ])

        match = re.match(r"^/repos/([\w.-]+/[\w.-]+)(/.*)?$", path)
        if not match or match.group(1) not in self.repos:
            return httpx.Response(404, json={"message": "Not Found"})
        full_name, rest = match.group(1), match.group(2) or ""
        repo = self.repos[full_name]

        if rest == "" and method == "GET":
            return httpx.Response(200, json={"full_name": full_name, "default_branch": repo["branch"]})

        if rest.startswith("/git/ref/heads/") and method == "GET":
            if repo["empty"]:
                return httpx.Response(409, json={"message": "Git Repository is empty."})
            if rest.rsplit("/", 1)[1] != repo["branch"]:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"object": {"sha": repo["head"], "type": "commit"}})

        if rest.startswith("/git/commits/") and method == "GET":
            commit = self.commits.get(rest.rsplit("/", 1)[1])
            if commit is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={
                "sha": rest.rsplit("/", 1)[1],
                "tree": {"sha": commit["tree"]},
            })

        if rest == "/git/commits" and method == "POST":
            body = json.loads(request.content)
            index = len(self.create_calls)
            self.create_calls.append(body)
            if self.fail_create_at is not None and index == self.fail_create_at:
                return httpx.Response(500, json={"message": "Server Error"})
            sha = self._new_commit(body["tree"], body["parents"], body)
            return httpx.Response(201, json={"sha": sha})

        if rest.startswith("/git/refs/heads/") and method == "PATCH":
            body = json.loads(request.content)
            self.ref_updates.append(body)
            if self.push_status is not None:
                return httpx.Response(self.push_status, json={"message": "Push failed"})
            if not body.get("force") and not self._descends_from(body["sha"], repo["head"]):
                return httpx.Response(422, json={"message": "Update is not a fast forward"})
            repo["head"] = body["sha"]
            return httpx.Response(200, json={"object": {"sha": body["sha"]}})

        if rest.startswith("/contents/") and method == "PUT":
            body = json.loads(request.content)
            sha = self._new_commit("tree-readme", [repo["head"]] if repo["head"] else [], body)
            repo["head"] = sha
            repo["empty"] = False
            return httpx.Response(201, json={"commit": {"sha": sha}})

        if rest == "/commits" and method == "GET":
            count, sha = 0, repo["head"]
            while sha:
                count += 1
                sha = (self.commits[sha]["parents"] or [None])[0]
            link = f'<{GITHUB_URL}{path}?per_page=1&page=2>; rel="next", ' \
                   f'<{GITHUB_URL}{path}?per_page=1&page={count}>; rel="last"'
            return httpx.Response(200, json=[{"sha": repo["head"]}], headers={"Link": link})

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def github_factory(fake_github: FakeGitHub):
    """Builds clients whose traffic is served by ``fake_github``."""
    def factory(token: str) -> GitHubClient:
        transport = httpx.MockTransport(fake_github.handler)
        return GitHubClient(token, client=httpx.AsyncClient(transport=transport), base_url=GITHUB_URL)
    return factory


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def user(test_db: AsyncSession) -> User:
    """A user with 10 credits and a linked GitHub account."""
    user = User(name="Octo Cat", email="octo@example.com", credits=10)
    test_db.add(user)
    await test_db.flush()
    test_db.add(Account(
        user_id=user.id,
        provider="github",
        provider_account_id="583231",
        access_token="gho_test_token",
    ))
    await test_db.commit()
    return user


@pytest.fixture
def mock_redis() -> MagicMock:
    mock = MagicMock()
    mock.set = AsyncMock(return_value=True)
    mock.eval = AsyncMock(return_value=1)
    mock.exists = AsyncMock(return_value=0)
    mock.ping = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def dispatched_jobs() -> List[str]:
    return []


@pytest.fixture
def dependency_overrides(
    session_maker: async_sessionmaker,
    mock_redis: MagicMock,
    github_factory,
    dispatched_jobs: List[str],
) -> Generator[None, None, None]:
    """Replace the database, Redis, GitHub and Celery dependencies."""

    async def override_get_db():
        async with session_maker() as session:
            yield session

    async def override_get_redis():
        yield mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_github_factory] = lambda: github_factory
    app.dependency_overrides[get_job_dispatcher] = lambda: dispatched_jobs.append

    yield

    app.dependency_overrides.clear()


@pytest.fixture
def test_client(dependency_overrides) -> TestClient:
    """Synchronous client; not entered as a context manager so lifespan does not run."""
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client(dependency_overrides) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async client sharing the test's event loop with the database fixtures."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(user: User) -> Dict[str, str]:
    return {"X-User-Id": str(user.id)}
