"""Async client for the Notion REST API."""

from typing import Any, Optional

import httpx

from notion_agent.models.config import NotionConfig
from notion_agent.models.document import rich_text_plain
from notion_agent.services.exceptions import (
    PermanentExternalError,
    TransientExternalError,
    raise_for_status,
)
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)

MAX_PAGE_SIZE = 100
MAX_CHILDREN_PER_REQUEST = 100


def page_title(page: dict[str, Any]) -> str:
    """
    Title of a page object.

    The title lives in whichever property has type "title"; its name varies
    ("title" for plain pages, "Name" for database rows).
    """
    for prop in page.get("properties", {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            return rich_text_plain(prop.get("title", []))
    return ""


class NotionClient:
    """
    Thin async wrapper over the endpoints the agent needs.

    Every non-2xx status is translated into TransientExternalError or
    PermanentExternalError; timeouts and network errors are transient.
    Pagination is followed for list endpoints so callers always see full,
    ordered results.
    """

    def __init__(
        self,
        config: NotionConfig,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Notion client.

        Args:
            config: Notion configuration (token, API version, base URL)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.config = config
        self.timeout = httpx.Timeout(timeout, connect=10.0)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily created shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=str(self.config.base_url).rstrip("/") + "/",
                headers={
                    "Authorization": f"Bearer {self.config.api_token}",
                    "Notion-Version": self.config.api_version,
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "NotionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        logger.debug("notion_request", method=method, path=path)
        try:
            response = await self.client.request(method, path.lstrip("/"), json=json, params=params)
        except httpx.TimeoutException as e:
            logger.warning("notion_request_timeout", method=method, path=path, error=str(e))
            raise TransientExternalError("notion", f"timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("notion_request_network_error", method=method, path=path, error=str(e))
            raise TransientExternalError("notion", str(e)) from e

        if not response.is_success:
            logger.warning("notion_request_failed", method=method, path=path, status=response.status_code)
        raise_for_status(response, "notion")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.warning("notion_response_not_json", method=method, path=path, status=response.status_code)
            raise PermanentExternalError(
                "notion", f"response is not JSON: {response.text[:200]}", status_code=response.status_code
            ) from e

    async def search_pages(self, query: str) -> list[dict[str, Any]]:
        """
        Search pages by title text.

        Args:
            query: Search text; empty string lists every shared page

        Returns:
            [{"id": ..., "title": ...}] in the order the API returns them
        """
        pages: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            body: dict[str, Any] = {
                "filter": {"property": "object", "value": "page"},
                "page_size": MAX_PAGE_SIZE,
            }
            if query:
                body["query"] = query
            if cursor:
                body["start_cursor"] = cursor

            data = await self._request("POST", "search", json=body)
            for result in data.get("results", []):
                if result.get("object") != "page" or result.get("archived"):
                    continue
                pages.append({"id": result["id"], "title": page_title(result)})

            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]

        logger.debug("notion_search_completed", query=query, results=len(pages))
        return pages

    async def create_page(
        self,
        title: str,
        parent_id: Optional[str] = None,
        children: Optional[list[dict[str, Any]]] = None,
    ) -> dict[str, Any]:
        """
        Create a page.

        Args:
            title: Page title
            parent_id: Parent page id; None creates a workspace-level page
            children: Optional initial blocks (at most 100)

        Returns:
            {"id": ..., "title": ..., "url": ...}
        """
        parent = {"page_id": parent_id} if parent_id else {"workspace": True}
        body: dict[str, Any] = {
            "parent": parent,
            "properties": {
                "title": {"title": [{"type": "text", "text": {"content": title}}]},
            },
        }
        if children:
            body["children"] = children[:MAX_CHILDREN_PER_REQUEST]

        data = await self._request("POST", "pages", json=body)
        logger.info("notion_page_created", page_id=data.get("id"), title=title, parent_id=parent_id)
        return {"id": data["id"], "title": page_title(data) or title, "url": data.get("url")}

    async def list_block_children(self, block_id: str) -> list[dict[str, Any]]:
        """All children of a block or page, in document order."""
        blocks: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            params: dict[str, Any] = {"page_size": MAX_PAGE_SIZE}
            if cursor:
                params["start_cursor"] = cursor
            data = await self._request("GET", f"blocks/{block_id}/children", params=params)
            blocks.extend(data.get("results", []))
            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]
        return blocks

    async def append_block_children(
        self,
        block_id: str,
        children: list[dict[str, Any]],
        after: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        Append blocks under a parent, optionally after a given sibling.

        Requests are chunked at the API's 100-children limit; later chunks are
        placed after the last block of the previous one so order is kept.

        Returns:
            The created blocks, in order
        """
        created: list[dict[str, Any]] = []
        for start in range(0, len(children), MAX_CHILDREN_PER_REQUEST):
            chunk = children[start:start + MAX_CHILDREN_PER_REQUEST]
            body: dict[str, Any] = {"children": chunk}
            if after:
                body["after"] = after
            data = await self._request("PATCH", f"blocks/{block_id}/children", json=body)
            results = data.get("results", [])
            created.extend(results)
            if after and results:
                after = results[-1]["id"]
        logger.info("notion_blocks_appended", parent_id=block_id, count=len(created), after=after)
        return created

    async def update_block(self, block_id: str, block: dict[str, Any]) -> dict[str, Any]:
        """
        Replace a block's content.

        Args:
            block_id: Block to update
            block: Block dict; only its type payload is sent, without children
        """
        block_type = block["type"]
        payload = {k: v for k, v in block[block_type].items() if k != "children"}
        data = await self._request("PATCH", f"blocks/{block_id}", json={block_type: payload})
        logger.info("notion_block_updated", block_id=block_id, block_type=block_type)
        return data

    async def delete_block(self, block_id: str) -> None:
        """Archive a block."""
        await self._request("DELETE", f"blocks/{block_id}")
        logger.info("notion_block_deleted", block_id=block_id)
