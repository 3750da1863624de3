"""Async client for the hosted git data API (trees, blobs, commits).

Example:
    ```python
    config = RemoteConfig(owner="keymanapp", repo="keyboards", token="...")
    async with GitHubClient(config) as client:
        commit_sha, tree_sha = await client.get_commit("9fb0379")
        tree = await materialize(client, tree_sha, "release/s/shan")
    ```
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import RemoteError, WaitTimeoutError
from .tree import Tree

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_WEB_URL = "https://github.com"


@dataclass(frozen=True)
class RemoteConfig:
    """Where and as whom to talk to the hosted repository."""
    owner: str
    repo: str
    token: str | None = None
    api_url: str = DEFAULT_API_URL
    web_url: str = DEFAULT_WEB_URL
    timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> RemoteConfig:
        """Build a config from ``TREEPATCH_*`` environment variables."""
        env = os.environ if environ is None else environ
        try:
            owner = env["TREEPATCH_OWNER"]
            repo = env["TREEPATCH_REPO"]
        except KeyError as exc:
            raise RemoteError(f"Environment variable {exc.args[0]} is not set") from None
        return cls(
            owner=owner,
            repo=repo,
            token=env.get("TREEPATCH_TOKEN") or None,
            api_url=env.get("TREEPATCH_API_URL") or DEFAULT_API_URL,
        )

    @property
    def repo_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/repos/{self.owner}/{self.repo}"


class GitHubClient:
    """Reads and writes git objects of one repository.

    Implements both the ``TreeReader`` protocol used by
    :func:`treepatch.fetch.materialize` and the ``TreeWriter`` protocol used
    by :func:`treepatch.submit.submit`.  Pass *transport* to route requests
    somewhere other than the network (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: RemoteConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def config(self) -> RemoteConfig:
        return self._config

    async def connect(self) -> httpx.AsyncClient:
        """Open the connection pool and return it. Safe to call multiple times."""
        if self._client is not None:
            return self._client
        headers = {"Accept": "application/vnd.github+json"}
        if self._config.token:
            headers["Authorization"] = f"token {self._config.token}"
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(self._config.timeout),
            transport=self._transport,
        )
        logger.debug("Connected to %s", self._config.repo_url)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GitHubClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self.connect()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} {url} failed: {exc}") from exc
        if response.is_error:
            raise RemoteError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    # -- git data ----------------------------------------------------------

    async def get_tree(self, sha: str) -> Tree:
        response = await self._request("GET", f"{self._config.repo_url}/git/trees/{sha}")
        return Tree.from_json(response.json())

    async def get_commit(self, sha: str) -> tuple[str, str]:
        """Return ``(commit_sha, tree_sha)`` of commit *sha*."""
        response = await self._request("GET", f"{self._config.repo_url}/git/commits/{sha}")
        data = response.json()
        try:
            return data["sha"], data["tree"]["sha"]
        except (KeyError, TypeError):
            raise RemoteError(f"Malformed commit response for {sha}") from None

    async def create_tree(self, payload: dict[str, Any]) -> Tree:
        response = await self._request(
            "POST", f"{self._config.repo_url}/git/trees", json=payload
        )
        tree = Tree.from_json(response.json())
        logger.debug("Created tree %s (%d entries)", tree.sha, len(tree))
        return tree

    async def create_blob(self, content: str, encoding: str = "utf-8") -> str:
        """Upload a blob and return its sha."""
        response = await self._request(
            "POST", f"{self._config.repo_url}/git/blobs",
            json={"content": content, "encoding": encoding},
        )
        try:
            return response.json()["sha"]
        except (KeyError, TypeError):
            raise RemoteError("Malformed blob response") from None

    # -- repository existence ---------------------------------------------

    async def repo_exists(self, owner: str, repo: str) -> bool:
        try:
            await self._request("GET", f"{self._config.web_url.rstrip('/')}/{owner}/{repo}")
        except RemoteError:
            return False
        return True

    async def wait_for_repo(
        self, owner: str, repo: str, attempts: int = 300, interval: float = 1.0,
    ) -> None:
        """Poll until ``owner/repo`` exists.

        A freshly created fork is not visible right away.  Checks once per
        *interval* seconds and raises :class:`WaitTimeoutError` after
        *attempts* unsuccessful checks.
        """
        for attempt in range(attempts):
            if await self.repo_exists(owner, repo):
                logger.debug("%s/%s exists after %d check(s)", owner, repo, attempt + 1)
                return
            if attempt + 1 < attempts:
                await asyncio.sleep(interval)
        raise WaitTimeoutError(
            f"{owner}/{repo} did not appear after {attempts} check(s)"
        )
