"""Unit tests for NotionClient using httpx.MockTransport."""

import json

import httpx
import pytest

from notion_agent.services.exceptions import PermanentExternalError, TransientExternalError
from notion_agent.services.notion_client import NotionClient, page_title


@pytest.fixture
def client(notion_config, notion_api):
    return NotionClient(notion_config, transport=httpx.MockTransport(notion_api))


def sent_json(request):
    return json.loads(request.content)


class TestPageTitle:
    def test_title_property_name_varies(self):
        page = {"properties": {"Name": {"type": "title", "title": [{"plain_text": "Row"}]}}}

        assert page_title(page) == "Row"

    def test_no_title(self):
        assert page_title({"properties": {}}) == ""


class TestSearch:
    """Test page search and pagination."""

    @pytest.mark.asyncio
    async def test_headers(self, client, notion_api):
        notion_api.add_page("Inbox")

        await client.search_pages("Inbox")

        request = notion_api.requests[0]
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["Notion-Version"] == "2022-06-28"
        assert request.url.path == "/v1/search"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_follows_cursor(self, client, notion_api):
        """Test every result page is fetched, in order."""
        notion_api.page_size = 2
        for title in ("Alpha", "Beta", "Gamma"):
            notion_api.add_page(title)

        pages = await client.search_pages("")

        assert [p["title"] for p in pages] == ["Alpha", "Beta", "Gamma"]
        assert len(notion_api.requests) == 2
        assert "query" not in sent_json(notion_api.requests[0])
        assert sent_json(notion_api.requests[1])["start_cursor"] == "2"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_skips_archived(self, client, notion_api):
        notion_api.add_page("Old Notes", archived=True)
        live = notion_api.add_page("Notes")

        pages = await client.search_pages("notes")

        assert pages == [{"id": live, "title": "Notes"}]
        await client.aclose()


class TestWrites:
    """Test page creation and block operations."""

    @pytest.mark.asyncio
    async def test_create_workspace_page(self, client, notion_api):
        page = await client.create_page("Ideas")

        assert page["title"] == "Ideas"
        assert page["url"].endswith(page["id"])
        assert sent_json(notion_api.requests[0])["parent"] == {"workspace": True}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_create_child_page(self, client, notion_api):
        parent = notion_api.add_page("Travel")

        page = await client.create_page("Trip Notes", parent_id=parent)

        assert notion_api.pages[page["id"]]["parent"] == {"page_id": parent}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_list_children_paginated(self, client, notion_api):
        notion_api.page_size = 2
        page = notion_api.add_page("Journal", [("paragraph", str(i)) for i in range(5)])

        blocks = await client.list_block_children(page)

        assert [b["paragraph"]["rich_text"][0]["plain_text"] for b in blocks] == ["0", "1", "2", "3", "4"]
        assert len(notion_api.requests) == 3
        await client.aclose()

    @pytest.mark.asyncio
    async def test_append_chunks_keep_order(self, client, notion_api):
        """Test more than 100 children are sent in chunks that stay in order after an anchor."""
        page = notion_api.add_page("Log", [("paragraph", "first"), ("paragraph", "last")])
        anchor = notion_api.children[page][0]["id"]
        children = [
            {"object": "block", "type": "paragraph", "paragraph": {"rich_text": [{"text": {"content": str(i)}}]}}
            for i in range(150)
        ]

        created = await client.append_block_children(page, children, after=anchor)

        assert len(created) == 150
        bodies = [sent_json(r) for r in notion_api.requests]
        assert [len(b["children"]) for b in bodies] == [100, 50]
        assert bodies[0]["after"] == anchor
        assert bodies[1]["after"] == created[99]["id"]
        texts = notion_api.texts(page)
        assert texts[0] == "first"
        assert texts[1:151] == [str(i) for i in range(150)]
        assert texts[-1] == "last"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_update_strips_children(self, client, notion_api):
        page = notion_api.add_page("Log", [("toggle", "old")])
        block_id = notion_api.children[page][0]["id"]
        block = {"type": "toggle", "toggle": {"rich_text": [{"text": {"content": "new"}}], "children": []}}

        await client.update_block(block_id, block)

        request = notion_api.requests[0]
        assert request.method == "PATCH"
        assert sent_json(request) == {"toggle": {"rich_text": [{"text": {"content": "new"}}]}}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_delete(self, client, notion_api):
        page = notion_api.add_page("Log", [("paragraph", "gone")])

        await client.delete_block(notion_api.children[page][0]["id"])

        assert notion_api.texts(page) == []
        await client.aclose()


class TestErrors:
    """Test status mapping onto the error taxonomy."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    async def test_transient_statuses(self, client, notion_api, status):
        notion_api.failures.append((status, {"message": "try later"}))

        with pytest.raises(TransientExternalError) as exc_info:
            await client.search_pages("x")

        assert exc_info.value.status_code == status
        assert exc_info.value.service == "notion"
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    async def test_permanent_statuses(self, client, notion_api, status):
        notion_api.failures.append((status, {"object": "error", "message": "nope"}))

        with pytest.raises(PermanentExternalError) as exc_info:
            await client.delete_block("block-1")

        assert exc_info.value.detail == "nope"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_success_without_json_is_permanent(self, notion_config):
        """Test a 2xx reply that is not JSON (a proxy page, say) is reported, not raised raw."""
        def gateway(request):
            return httpx.Response(200, text="<html>gateway</html>")

        client = NotionClient(notion_config, transport=httpx.MockTransport(gateway))

        with pytest.raises(PermanentExternalError) as exc_info:
            await client.search_pages("Inbox")

        assert exc_info.value.status_code == 200
        assert "<html>gateway</html>" in exc_info.value.detail
        await client.aclose()

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self, notion_config):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = NotionClient(notion_config, transport=httpx.MockTransport(refuse))

        with pytest.raises(TransientExternalError):
            await client.list_block_children("page-1")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, notion_config, notion_api):
        async with NotionClient(notion_config, transport=httpx.MockTransport(notion_api)) as client:
            await client.search_pages("")
            assert client._client is not None

        assert client._client is None
