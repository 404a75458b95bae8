"""Async GitHub REST client for the repository operations the scenarios need."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from cmsprobe.errors import BackendUnreachable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentFile:
    path: str
    sha: str
    text: str


@dataclass(frozen=True)
class CommitInfo:
    sha: str
    message: str
    author: Optional[str] = None
    date: Optional[str] = None


@dataclass(frozen=True)
class BranchInfo:
    name: str
    sha: str
    message: Optional[str] = None


class GitHubClient:
    """Thin wrapper around ``httpx.AsyncClient`` for one repository."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str],
        *,
        base_url: str = "https://api.github.com",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._prefix = f"/repos/{owner}/{repo}"

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Reads ---

    async def get_content(self, path: str, ref: Optional[str] = None) -> Optional[ContentFile]:
        """Fetch and decode a file; ``None`` when it does not exist at ``ref``."""
        params = {"ref": ref} if ref else None
        data = await self._request("GET", f"/contents/{path}", params=params, allow_missing=True)
        if data is None:
            return None
        raw = base64.b64decode(data.get("content", "")).decode("utf-8")
        return ContentFile(path=data.get("path", path), sha=data["sha"], text=raw)

    async def list_commits(self, branch: str, per_page: int = 5) -> List[CommitInfo]:
        data = await self._request("GET", "/commits", params={"sha": branch, "per_page": per_page})
        return [self._commit_info(item) for item in data]

    async def get_commit(self, ref: str) -> Optional[CommitInfo]:
        data = await self._request("GET", f"/commits/{ref}", allow_missing=True)
        if data is None:
            return None
        return self._commit_info(data)

    async def list_branches(self, per_page: int = 100) -> List[str]:
        data = await self._request("GET", "/branches", params={"per_page": per_page})
        return [item["name"] for item in data]

    async def get_branch(self, branch: str) -> Optional[BranchInfo]:
        data = await self._request("GET", f"/branches/{branch}", allow_missing=True)
        if data is None:
            return None
        commit = data.get("commit") or {}
        message = (commit.get("commit") or {}).get("message")
        return BranchInfo(name=data["name"], sha=commit.get("sha", ""), message=message)

    # --- Writes ---

    async def create_branch(self, name: str, sha: str) -> str:
        """Create ``refs/heads/<name>`` at ``sha`` and return the new ref's SHA."""
        data = await self._request("POST", "/git/refs", json={"ref": f"refs/heads/{name}", "sha": sha})
        return data["object"]["sha"]

    async def delete_branch(self, name: str) -> None:
        await self._request("DELETE", f"/git/refs/heads/{name}")

    async def put_file(self, path: str, text: str, message: str, branch: str, sha: Optional[str] = None) -> str:
        """Create or update a file and return the SHA of the resulting commit."""
        payload: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha
        data = await self._request("PUT", f"/contents/{path}", json=payload)
        return data["commit"]["sha"]

    async def delete_file(self, path: str, message: str, branch: str) -> None:
        existing = await self.get_content(path, ref=branch)
        if existing is None:
            raise BackendUnreachable(f"{path} not found on {branch}", status_code=404)
        await self._request(
            "DELETE",
            f"/contents/{path}",
            json={"message": message, "sha": existing.sha, "branch": branch},
        )

    # --- Internals ---

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Any:
        url = f"{self._prefix}{path}"
        try:
            response = await self._client.request(method, url, params=params, json=json)
        except httpx.HTTPError as exc:
            raise BackendUnreachable(f"GitHub {method} {path} failed: {exc}") from exc

        if allow_missing and response.status_code == 404:
            return None
        if response.status_code >= 400:
            message = self._error_message(response)
            logger.debug("GitHub %s %s -> %s: %s", method, path, response.status_code, message)
            raise BackendUnreachable(
                f"GitHub {method} {path} returned {response.status_code}: {message}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.reason_phrase

    @staticmethod
    def _commit_info(item: Dict[str, Any]) -> CommitInfo:
        commit = item.get("commit") or {}
        author = commit.get("author") or {}
        return CommitInfo(
            sha=item["sha"],
            message=commit.get("message", ""),
            author=author.get("name"),
            date=author.get("date"),
        )
