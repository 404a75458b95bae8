"""Async client for the CMS content layer (page fetch and GraphQL queries)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from cmsprobe.errors import BackendUnreachable

logger = logging.getLogger(__name__)


PAGE_BY_BRANCH_QUERY = """
query getPage($relativePath: String!, $branch: String) {
  page(relativePath: $relativePath, branch: $branch) {
    __typename
    title
    branch
    _sys {
      filename
      path
      relativePath
    }
  }
}
"""


@dataclass
class QueryResult:
    data: Optional[Dict[str, Any]] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.data is not None and not self.errors


class CMSClient:
    """Read content through the CMS site and its GraphQL endpoint."""

    def __init__(
        self,
        base_url: str,
        api_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_url = api_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "CMSClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_page(self, path: str = "/") -> str:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = await self._client.get(url, headers={"Accept": "text/html"})
        except httpx.HTTPError as exc:
            raise BackendUnreachable(f"CMS read failed: {exc}") from exc
        if response.status_code >= 400:
            raise BackendUnreachable(f"CMS read failed: HTTP {response.status_code}", status_code=response.status_code)
        return response.text

    async def execute_query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Run a GraphQL query; GraphQL-level errors are returned, not raised."""
        try:
            response = await self._client.post(
                self.api_url,
                json={"query": query, "variables": variables or {}},
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise BackendUnreachable(f"CMS query failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise BackendUnreachable(
                f"CMS query returned non-JSON body (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc

        if not isinstance(body, dict):
            raise BackendUnreachable("CMS query returned an unexpected payload", status_code=response.status_code)
        errors = body.get("errors") or []
        if response.status_code >= 400 and not errors:
            raise BackendUnreachable(f"CMS query failed: HTTP {response.status_code}", status_code=response.status_code)
        return QueryResult(data=body.get("data"), errors=list(errors))

    async def page_on_branch(self, relative_path: str, branch: str) -> QueryResult:
        return await self.execute_query(
            PAGE_BY_BRANCH_QUERY,
            {"relativePath": relative_path, "branch": branch},
        )

    async def check_site(self) -> bool:
        try:
            response = await self._client.get(self.base_url)
        except httpx.HTTPError as exc:
            logger.debug("CMS site unreachable: %s", exc)
            return False
        return response.is_success

    async def check_api(self) -> bool:
        try:
            response = await self._client.post(self.api_url, json={"query": "{ __typename }"})
        except httpx.HTTPError as exc:
            logger.debug("CMS GraphQL API unreachable: %s", exc)
            return False
        return response.status_code != 404
