"""End-to-end tests: instruction in, blocks written through the real Notion client."""

import json

import httpx
import pytest

from notion_agent.config import ConfigManager
from notion_agent.models.config import AgentConfig, Config, LLMConfig, NotionConfig
from notion_agent.services.agent import CONFIRMATION_PROMPT, NotionAgent


def manager(llm=None, **agent):
    config = Config(
        llm=llm,
        notion=NotionConfig(api_token="secret-token"),
        agent=AgentConfig(backoff_base=0.0, call_timeout=5.0, **agent),
    )
    return ConfigManager(config)


@pytest.fixture
def make_agent(notion_api):
    def make(config_manager=None, llm_transport=None):
        agent = NotionAgent.from_config(
            config_manager or manager(),
            notion_transport=httpx.MockTransport(notion_api),
            llm_transport=llm_transport,
        )
        return agent

    return make


async def confirmed(agent, text):
    """Send an instruction, expect the confirmation prompt, then confirm."""
    prompt = await agent.chat(text)
    assert prompt.content == CONFIRMATION_PROMPT
    return await agent.chat("yes")


class TestPipeline:
    """Test complete turns against the fake Notion API."""

    @pytest.mark.asyncio
    async def test_checklist_items(self, make_agent, notion_api):
        shopping = notion_api.add_page("Shopping List")
        agent = make_agent()

        reply = await confirmed(agent, "add milk in checklist and eggs in checklist too in Shopping List")

        assert reply.content == 'Added to-do "milk" to "Shopping List"\nAnd added to-do "eggs" to "Shopping List"'
        assert notion_api.texts(shopping) == ["milk", "eggs"]
        assert {b["type"] for b in notion_api.children[shopping]} == {"to_do"}
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_nothing_written_before_confirmation(self, make_agent, notion_api):
        shopping = notion_api.add_page("Shopping List")
        agent = make_agent()

        await agent.chat("add milk to Shopping List")
        await agent.chat("no")

        assert notion_api.texts(shopping) == []
        assert not [r for r in notion_api.requests if r.method in ("PATCH", "DELETE")]
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_section_placement(self, make_agent, notion_api):
        journal = notion_api.add_page("Journal", [
            ("heading_2", "Tasks"),
            ("to_do", "email Sam"),
            ("heading_2", "My Day"),
            ("paragraph", "standup"),
        ])
        agent = make_agent()

        reply = await confirmed(agent, "write call the bank under the day section of Journal")

        assert reply.content == 'Added text "call the bank" to the "My Day" section of "Journal"'
        assert notion_api.texts(journal) == ["Tasks", "email Sam", "My Day", "call the bank", "standup"]
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_create_then_add(self, make_agent, notion_api):
        """Test content for a page created in the same turn reaches that page."""
        travel = notion_api.add_page("Travel")
        agent = make_agent()

        reply = await confirmed(agent, "create a page called Trip Notes in Travel and add pack charger as checklist")

        assert reply.content == (
            'Created a new page named "Trip Notes" in "Travel"\n'
            'And added to-do "pack charger" to "Trip Notes"'
        )
        trip = next(pid for pid, page in notion_api.pages.items() if page["title"] == "Trip Notes")
        assert notion_api.pages[trip]["parent"] == {"page_id": travel}
        assert notion_api.texts(trip) == ["pack charger"]
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_exact_title_wins(self, make_agent, notion_api):
        notion_api.add_page("Brunch Ideas")
        bruh = notion_api.add_page("Bruh")
        agent = make_agent()

        reply = await confirmed(agent, "add hello to bruh")

        assert reply.content == 'Added text "hello" to "Bruh"'
        assert notion_api.texts(bruh) == ["hello"]
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_transient_error_retried(self, make_agent, notion_api):
        inbox = notion_api.add_page("Inbox")
        agent = make_agent()
        await agent.chat("add hello to Inbox")
        notion_api.failures.append((503, {"message": "busy"}))

        reply = await agent.chat("yes")

        assert reply.content == 'Added text "hello" to "Inbox"'
        assert notion_api.texts(inbox) == ["hello"]
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_unshared_page(self, make_agent, notion_api):
        agent = make_agent()

        reply = await confirmed(agent, "add hello to Secret Plans")

        assert reply.content.startswith('Could not find a page named "Secret Plans".')
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_llm_tier(self, make_agent, notion_api):
        """Test commands extracted by the model are executed."""
        shopping = notion_api.add_page("Shopping List")
        extracted = {"commands": [
            {"action": "write", "primaryTarget": "Shopping List", "content": "oat milk", "formatType": "checklist"},
        ]}

        def llm(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": json.dumps(extracted)}}]})

        llm_config = LLMConfig(endpoint="https://llm.test/v1", api_key="k", model="m")
        agent = make_agent(manager(llm=llm_config), llm_transport=httpx.MockTransport(llm))

        reply = await confirmed(agent, "put oat milk on the shopping list")

        assert reply.content == 'Added to-do "oat milk" to "Shopping List"'
        assert notion_api.texts(shopping) == ["oat milk"]
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_llm_outage_falls_back(self, make_agent, notion_api):
        inbox = notion_api.add_page("Inbox")

        def llm(request):
            return httpx.Response(503, json={"error": {"message": "overloaded"}})

        llm_config = LLMConfig(endpoint="https://llm.test/v1", api_key="k", model="m")
        agent = make_agent(manager(llm=llm_config), llm_transport=httpx.MockTransport(llm))

        reply = await confirmed(agent, "add hello to Inbox")

        assert reply.content == 'Added text "hello" to "Inbox"'
        assert notion_api.texts(inbox) == ["hello"]
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_garbled_success_reply_is_isolated(self):
        """Test a 2xx body that is not JSON fails each command without ending the turn."""
        def gateway(request):
            return httpx.Response(200, text="<html>gateway</html>")

        agent = NotionAgent.from_config(
            manager(), require_confirm=False, notion_transport=httpx.MockTransport(gateway)
        )

        reply = await agent.chat("add milk to Shopping List and add eggs to Journal")

        first, second = reply.content.split("\nAnd ")
        assert first.startswith('Could not write in "Shopping List": response is not JSON')
        assert second.startswith('could not write in "Journal": response is not JSON')
        await agent.aclose()
