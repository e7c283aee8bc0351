"""Shared test fixtures for all test modules."""

import itertools
import json
from typing import Any, Optional

import httpx
import pytest

from notion_agent.models.config import AgentConfig, LLMConfig, NotionConfig
from notion_agent.models.document import block_plain_text
from notion_agent.services.retry import RetryPolicy


def text_block(block_type: str, text: str, block_id: str, has_children: bool = False) -> dict[str, Any]:
    """Raw block dict in the shape the Notion API returns."""
    return {
        "object": "block",
        "id": block_id,
        "type": block_type,
        "has_children": has_children,
        block_type: {"rich_text": [{"type": "text", "plain_text": text, "text": {"content": text}}]},
    }


class FakeWorkspace:
    """
    In-memory stand-in for NotionClient.

    Pages and blocks live in dicts. Errors queued in `failures` are raised,
    one per call, by the next write operations (append, create, update, delete).
    """

    def __init__(self):
        self.pages: list[dict[str, Any]] = []
        self.children: dict[str, list[dict[str, Any]]] = {}
        self.failures: list[Exception] = []
        self.calls: list[tuple] = []
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def add_page(self, title: str, blocks: Optional[list[tuple[str, str]]] = None) -> str:
        page_id = self._next_id("page")
        self.pages.append({"id": page_id, "title": title})
        self.children[page_id] = [
            text_block(block_type, text, self._next_id("block")) for block_type, text in (blocks or [])
        ]
        return page_id

    def texts(self, page_id: str) -> list[str]:
        return [block_plain_text(block) for block in self.children[page_id]]

    def _maybe_fail(self) -> None:
        if self.failures:
            raise self.failures.pop(0)

    async def search_pages(self, query: str) -> list[dict[str, Any]]:
        self.calls.append(("search_pages", query))
        if not query:
            return list(self.pages)
        return [p for p in self.pages if query.lower() in p["title"].lower()]

    async def create_page(self, title, parent_id=None, children=None):
        self.calls.append(("create_page", title, parent_id))
        self._maybe_fail()
        page_id = self._next_id("page")
        self.pages.append({"id": page_id, "title": title})
        self.children[page_id] = []
        if children:
            await self.append_block_children(page_id, children)
        return {"id": page_id, "title": title, "url": None}

    async def list_block_children(self, block_id):
        self.calls.append(("list_block_children", block_id))
        return list(self.children.get(block_id, []))

    async def append_block_children(self, block_id, children, after=None):
        self.calls.append(("append_block_children", block_id, after, len(children)))
        self._maybe_fail()
        siblings = self.children.setdefault(block_id, [])
        created = []
        for child in children:
            block = dict(child)
            block["id"] = self._next_id("block")
            block.setdefault("has_children", False)
            created.append(block)
        if after is None:
            siblings.extend(created)
        else:
            position = next(i for i, b in enumerate(siblings) if b["id"] == after) + 1
            siblings[position:position] = created
        return created

    async def update_block(self, block_id, block):
        self.calls.append(("update_block", block_id))
        self._maybe_fail()
        for siblings in self.children.values():
            for existing in siblings:
                if existing["id"] == block_id:
                    existing[block["type"]] = dict(existing[block["type"]], **block[block["type"]])
                    return existing
        raise KeyError(block_id)

    async def delete_block(self, block_id):
        self.calls.append(("delete_block", block_id))
        self._maybe_fail()
        for siblings in self.children.values():
            for index, existing in enumerate(siblings):
                if existing["id"] == block_id:
                    del siblings[index]
                    return
        raise KeyError(block_id)


class FakeNotionAPI:
    """
    Request handler for httpx.MockTransport emulating the Notion endpoints the client uses.

    `page_size` caps every listing so pagination can be exercised. Responses
    queued in `failures` as (status, body) are returned, one per request,
    before any routing happens.
    """

    def __init__(self, page_size: int = 100):
        self.page_size = page_size
        self.pages: dict[str, dict[str, Any]] = {}
        self.children: dict[str, list[dict[str, Any]]] = {}
        self.failures: list[tuple[int, dict[str, Any]]] = []
        self.requests: list[httpx.Request] = []
        self._ids = itertools.count(1)

    def add_page(self, title: str, blocks: Optional[list[tuple[str, str]]] = None, archived: bool = False) -> str:
        page_id = f"page-{next(self._ids)}"
        self.pages[page_id] = {"title": title, "archived": archived}
        self.children[page_id] = [
            text_block(block_type, text, f"block-{next(self._ids)}") for block_type, text in (blocks or [])
        ]
        return page_id

    def texts(self, page_id: str) -> list[str]:
        return [block_plain_text(block) for block in self.children[page_id]]

    def page_object(self, page_id: str) -> dict[str, Any]:
        return {
            "object": "page",
            "id": page_id,
            "archived": self.pages[page_id]["archived"],
            "url": f"https://www.notion.so/{page_id}",
            "properties": {
                "title": {"type": "title", "title": [{"plain_text": self.pages[page_id]["title"]}]},
            },
        }

    def _listing(self, items: list[dict[str, Any]], cursor: Optional[str], size: Optional[int]) -> dict[str, Any]:
        start = int(cursor) if cursor else 0
        end = start + min(size or self.page_size, self.page_size)
        more = end < len(items)
        return {
            "object": "list",
            "results": items[start:end],
            "has_more": more,
            "next_cursor": str(end) if more else None,
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures:
            status, body = self.failures.pop(0)
            return httpx.Response(status, json=body)

        path = request.url.path.removeprefix("/v1/").strip("/")
        parts = path.split("/")
        body = json.loads(request.content) if request.content else {}

        if request.method == "POST" and path == "search":
            query = body.get("query", "").lower()
            matches = [
                self.page_object(page_id) for page_id, page in self.pages.items()
                if query in page["title"].lower()
            ]
            return httpx.Response(200, json=self._listing(matches, body.get("start_cursor"), body.get("page_size")))

        if request.method == "POST" and path == "pages":
            page_id = f"page-{next(self._ids)}"
            title = body["properties"]["title"]["title"][0]["text"]["content"]
            self.pages[page_id] = {"title": title, "archived": False, "parent": body["parent"]}
            self.children[page_id] = []
            self._insert(page_id, body.get("children", []), None)
            return httpx.Response(200, json=self.page_object(page_id))

        if parts[0] == "blocks" and len(parts) == 3 and request.method == "GET":
            params = request.url.params
            size = int(params["page_size"]) if "page_size" in params else None
            items = self.children.get(parts[1], [])
            return httpx.Response(200, json=self._listing(items, params.get("start_cursor"), size))

        if parts[0] == "blocks" and len(parts) == 3 and request.method == "PATCH":
            created = self._insert(parts[1], body["children"], body.get("after"))
            return httpx.Response(200, json={"object": "list", "results": created, "has_more": False})

        if parts[0] == "blocks" and len(parts) == 2:
            for siblings in self.children.values():
                for index, block in enumerate(siblings):
                    if block["id"] != parts[1]:
                        continue
                    if request.method == "DELETE":
                        del siblings[index]
                        return httpx.Response(200, json=dict(block, archived=True))
                    block[block["type"]] = dict(block[block["type"]], **body[block["type"]])
                    return httpx.Response(200, json=block)

        return httpx.Response(404, json={"object": "error", "status": 404, "message": f"No route for {path}"})

    def _insert(self, parent_id: str, children: list[dict[str, Any]], after: Optional[str]) -> list[dict[str, Any]]:
        siblings = self.children.setdefault(parent_id, [])
        created = []
        for child in children:
            block = dict(child, id=f"block-{next(self._ids)}", has_children=False)
            created.append(block)
        if after is None:
            siblings.extend(created)
        else:
            position = next(i for i, b in enumerate(siblings) if b["id"] == after) + 1
            siblings[position:position] = created
        return created


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def workspace():
    """Empty in-memory workspace."""
    return FakeWorkspace()


@pytest.fixture
def agent_config():
    """Pipeline settings with fast retries."""
    return AgentConfig(default_page="Inbox", offline=True, backoff_base=0.0, call_timeout=5.0)


@pytest.fixture
def fast_retry():
    """Retry policy that never actually sleeps."""
    return RetryPolicy(max_attempts=3, backoff_base=1.0, sleep=no_sleep)


@pytest.fixture
def notion_config():
    return NotionConfig(api_token="secret-token")


@pytest.fixture
def llm_config():
    return LLMConfig(endpoint="https://llm.test/v1", api_key="test-key", model="test-model")


@pytest.fixture
def notion_api():
    """Fake Notion REST API for httpx.MockTransport."""
    return FakeNotionAPI()
