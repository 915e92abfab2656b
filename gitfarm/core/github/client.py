"""
GitHub REST Client

Thin async wrapper over the GitHub REST endpoints used to build commit
chains: repository metadata, git refs, git commits and the contents API.
No retry and no caching.
"""

import base64
import logging
import re
import time
from typing import Any, Dict, List, Optional

import httpx

from gitfarm.config import settings
from gitfarm.core.github.errors import GitHubAPIError, GitHubAuthError
from gitfarm.monitoring.metrics import github_request_duration, github_requests_counter

logger = logging.getLogger(__name__)

_LAST_PAGE_RE = re.compile(r'[?&]page=(\d+)>; rel="last"')


class GitHubClient:
    """
    Bearer-token authenticated GitHub client.

    Pass ``client`` to reuse an existing ``httpx.AsyncClient`` (tests use one
    backed by ``httpx.MockTransport``); otherwise one is created lazily and
    closed by ``aclose``.
    """

    def __init__(
        self,
        token: str,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ):
        if not token:
            raise GitHubAuthError("GitHub not connected")
        self.base_url = (base_url or settings.github_api_url).rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.github_timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Issue a request and return the raw response.

        Transport failures become ``GitHubAPIError``; a 401 becomes
        ``GitHubAuthError``. Other status codes are left to the caller.
        """
        url = f"{self.base_url}{path}"
        start = time.monotonic()
        try:
            resp = await self.client.request(method, url, headers=self.headers, **kwargs)
        except httpx.HTTPError as e:
            github_requests_counter.labels(method=method, status_code="error").inc()
            raise GitHubAPIError(f"{method} {path} failed: {e}") from e
        finally:
            github_request_duration.labels(method=method).observe(time.monotonic() - start)

        github_requests_counter.labels(method=method, status_code=str(resp.status_code)).inc()
        logger.debug(f"GitHub {method} {path} -> {resp.status_code}")

        if resp.status_code == 401:
            raise GitHubAuthError("GitHub access token is invalid or was revoked")
        return resp

    @staticmethod
    def error_message(resp: httpx.Response) -> str:
        """Extract GitHub's error message from a response body."""
        try:
            data = resp.json()
        except ValueError:
            return resp.text or resp.reason_phrase
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return resp.text

    def _raise_for_status(self, resp: httpx.Response, action: str) -> None:
        if resp.is_success:
            return
        raise GitHubAPIError(
            f"{action}: {resp.status_code} {self.error_message(resp)}",
            status_code=resp.status_code,
        )

    # Repositories

    async def get_repository(self, repository: str) -> httpx.Response:
        return await self.request("GET", f"/repos/{repository}")

    async def list_repositories(self, per_page: int = 100) -> List[Dict[str, Any]]:
        resp = await self.request(
            "GET",
            "/user/repos",
            params={"per_page": per_page, "sort": "updated"},
        )
        self._raise_for_status(resp, "Failed to fetch repositories")
        return resp.json()

    async def count_commits(self, repository: str, branch: str) -> int:
        """Count commits on ``branch`` using the ``per_page=1`` Link header trick."""
        resp = await self.request(
            "GET",
            f"/repos/{repository}/commits",
            params={"per_page": 1, "sha": branch},
        )
        if not resp.is_success:
            return 0
        match = _LAST_PAGE_RE.search(resp.headers.get("Link", ""))
        if match:
            return int(match.group(1))
        return len(resp.json())

    # Git data

    async def get_ref(self, repository: str, branch: str) -> httpx.Response:
        return await self.request("GET", f"/repos/{repository}/git/ref/heads/{branch}")

    async def get_commit(self, repository: str, sha: str) -> Dict[str, Any]:
        resp = await self.request("GET", f"/repos/{repository}/git/commits/{sha}")
        self._raise_for_status(resp, "Failed to fetch parent commit")
        return resp.json()

    async def create_commit(
        self,
        repository: str,
        message: str,
        tree: str,
        parents: List[str],
        author: Optional[Dict[str, str]] = None,
        committer: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": message, "tree": tree, "parents": parents}
        if author:
            payload["author"] = author
        if committer:
            payload["committer"] = committer
        resp = await self.request("POST", f"/repos/{repository}/git/commits", json=payload)
        self._raise_for_status(resp, "Failed to create commit")
        return resp.json()

    async def update_ref(
        self,
        repository: str,
        branch: str,
        sha: str,
        force: bool = False,
    ) -> httpx.Response:
        return await self.request(
            "PATCH",
            f"/repos/{repository}/git/refs/heads/{branch}",
            json={"sha": sha, "force": force},
        )

    # Contents

    async def put_file(
        self,
        repository: str,
        path: str,
        content: str,
        message: str,
    ) -> Dict[str, Any]:
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        resp = await self.request(
            "PUT",
            f"/repos/{repository}/contents/{path}",
            json={"message": message, "content": encoded},
        )
        self._raise_for_status(resp, "Failed to initialize")
        return resp.json()
