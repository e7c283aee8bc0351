"""Unit tests for CommandExecutor against an in-memory workspace."""

import pytest

from notion_agent.models.command import Command, PlacementType
from notion_agent.models.config import AgentConfig
from notion_agent.services.exceptions import PermanentExternalError, TransientExternalError
from notion_agent.services.executor import CommandExecutor, TurnContext, help_message, summarize


@pytest.fixture
def executor(workspace, fast_retry, agent_config):
    return CommandExecutor(workspace, retry_policy=fast_retry, agent_config=agent_config)


@pytest.fixture
def journal(workspace):
    return workspace.add_page("Journal", [
        ("heading_2", "Tasks"),
        ("to_do", "email Sam"),
        ("heading_2", "My Day"),
        ("paragraph", "standup"),
    ])


def write(content, target, **kwargs):
    return Command(action="write", primary_target=target, content=content, **kwargs)


class TestHelpers:
    def test_summarize_truncates(self):
        text = "word " * 40

        summary = summarize(text)

        assert len(summary) <= 60
        assert summary.endswith("...")

    def test_help_message_is_deterministic(self):
        assert help_message("hello") == help_message("hello")
        assert help_message("hello").startswith('I couldn\'t determine what action to take with "hello".')
        assert "Try:" in help_message("hello")


class TestWrite:
    """Test writes to pages and sections."""

    @pytest.mark.asyncio
    async def test_append_to_page(self, executor, workspace):
        page_id = workspace.add_page("Shopping List")

        result = await executor.execute(write("milk", "Shopping List", format_type="to_do"))

        assert result.success
        assert result.attempts == 1
        assert result.page_id == page_id
        assert result.message == 'Added to-do "milk" to "Shopping List"'
        assert workspace.texts(page_id) == ["milk"]

    @pytest.mark.asyncio
    async def test_multi_item_label(self, executor, workspace):
        workspace.add_page("Shopping List")

        result = await executor.execute(write("milk, eggs", "Shopping List", format_type="to_do"))

        assert result.message == 'Added 2 to-dos "milk, eggs" to "Shopping List"'

    @pytest.mark.asyncio
    async def test_bookmark_label(self, executor, workspace):
        workspace.add_page("Links")

        result = await executor.execute(write("https://example.com", "Links", is_url=True))

        assert result.message.startswith("Added bookmark")

    @pytest.mark.asyncio
    async def test_section_writes_keep_order(self, executor, workspace, journal):
        """Test two writes into one section land in textual order right under the heading."""
        turn = TurnContext(instruction="add call the bank and buy milk to the day section of Journal")

        first = await executor.execute(write("call the bank", "Journal", section_target="day"), turn)
        await executor.execute(write("buy milk", "Journal", section_target="day"), turn)

        assert first.message == 'Added text "call the bank" to the "My Day" section of "Journal"'
        assert workspace.texts(journal) == ["Tasks", "email Sam", "My Day", "call the bank", "buy milk", "standup"]

    @pytest.mark.asyncio
    async def test_below_section(self, executor, workspace, journal):
        """Test below places content after the section's last block."""
        command = write("review PRs", "Journal", section_target="Tasks", placement_type=PlacementType.BELOW)

        result = await executor.execute(command)

        assert result.message == 'Added text "review PRs" after the "Tasks" section of "Journal"'
        assert workspace.texts(journal)[:4] == ["Tasks", "email Sam", "review PRs", "My Day"]

    @pytest.mark.asyncio
    async def test_advisory_section(self, executor, workspace):
        workspace.add_page("Log", [("heading_1", "Reading"), ("heading_1", "Workouts")])
        turn = TurnContext(instruction="add a 5k run to fitness, workouts are fun")

        result = await executor.execute(write("5k run", "Log", section_target="fitness"), turn)

        assert result.success
        assert result.message.endswith('(closest match for "fitness")')

    @pytest.mark.asyncio
    async def test_missing_section_appends(self, executor, workspace, journal):
        """Test the default fallback appends to the end of the page."""
        result = await executor.execute(write("5k run", "Journal", section_target="Fitness"))

        assert result.success
        assert 'no "Fitness" section found' in result.message
        assert workspace.texts(journal)[-1] == "5k run"

    @pytest.mark.asyncio
    async def test_missing_section_error(self, workspace, fast_retry, journal):
        """Test the strict fallback reports available sections instead of writing."""
        executor = CommandExecutor(
            workspace,
            retry_policy=fast_retry,
            agent_config=AgentConfig(section_fallback="error"),
        )

        result = await executor.execute(write("5k run", "Journal", section_target="Fitness"))

        assert not result.success
        assert result.message.startswith('Could not find a "Fitness" section in "Journal".')
        assert '"My Day"' in result.message
        assert workspace.texts(journal)[-1] == "standup"

    @pytest.mark.asyncio
    async def test_unknown_page(self, executor, workspace):
        workspace.add_page("Journal")

        result = await executor.execute(write("milk", "Zzz"))

        assert not result.success
        assert result.message.startswith('Could not find a page named "Zzz".')


class TestCreate:
    """Test page creation and the per-turn page cache."""

    @pytest.mark.asyncio
    async def test_create_then_write_uses_cache(self, executor, workspace):
        turn = TurnContext()

        created = await executor.execute(Command(action="create", primary_target="Trip Notes"), turn)
        written = await executor.execute(write("pack charger", "Trip Notes", format_type="to_do"), turn)

        assert created.message == 'Created a new page named "Trip Notes"'
        assert written.success
        assert written.page_id == created.page_id
        assert not any(call[0] == "search_pages" for call in workspace.calls)

    @pytest.mark.asyncio
    async def test_create_under_parent(self, executor, workspace):
        travel = workspace.add_page("Travel")

        result = await executor.execute(Command(action="create", primary_target="Trip Notes", secondary_target="Travel"))

        assert result.message == 'Created a new page named "Trip Notes" in "Travel"'
        assert ("create_page", "Trip Notes", travel) in workspace.calls

    @pytest.mark.asyncio
    async def test_create_under_root_page(self, workspace, fast_retry):
        executor = CommandExecutor(workspace, retry_policy=fast_retry, root_page_id="root-1")

        await executor.execute(Command(action="create", primary_target="Ideas"))

        assert ("create_page", "Ideas", "root-1") in workspace.calls


class TestEditDeleteMove:
    """Test actions that locate an existing block by its text."""

    @pytest.mark.asyncio
    async def test_edit(self, executor, workspace):
        page = workspace.add_page("Work Log", [("paragraph", "old text here")])
        command = Command(action="edit", primary_target="Work Log", old_content="old text", new_content="new text")

        result = await executor.execute(command)

        assert result.message == 'Edited "old text" to "new text" in "Work Log"'
        assert workspace.texts(page) == ["new text here"]

    @pytest.mark.asyncio
    async def test_edit_missing_text(self, executor, workspace):
        workspace.add_page("Work Log", [("paragraph", "hello")])
        command = Command(action="edit", primary_target="Work Log", old_content="zzz", new_content="new")

        result = await executor.execute(command)

        assert not result.success
        assert result.message == 'Could not find "zzz" in "Work Log".'

    @pytest.mark.asyncio
    async def test_delete(self, executor, workspace):
        page = workspace.add_page("Shopping List", [("to_do", "buy milk"), ("to_do", "eggs")])

        result = await executor.execute(Command(action="delete", primary_target="Shopping List", old_content="Buy Milk"))

        assert result.message == 'Deleted "buy milk" from "Shopping List"'
        assert workspace.texts(page) == ["eggs"]

    @pytest.mark.asyncio
    async def test_move(self, executor, workspace):
        inbox = workspace.add_page("Inbox", [("to_do", "call mom")])
        journal = workspace.add_page("Journal")
        command = Command(action="move", primary_target="Inbox", secondary_target="Journal", old_content="call mom")

        result = await executor.execute(command)

        assert result.message == 'Moved "call mom" from "Inbox" to "Journal"'
        assert workspace.texts(inbox) == []
        assert workspace.texts(journal) == ["call mom"]
        assert workspace.children[journal][0]["type"] == "to_do"

    @pytest.mark.asyncio
    async def test_move_needs_destination(self, executor, workspace):
        workspace.add_page("Inbox", [("to_do", "call mom")])

        result = await executor.execute(Command(action="move", primary_target="Inbox", old_content="call mom"))

        assert not result.success
        assert result.message == 'Tell me which page to move "call mom" to.'


class TestReadDebugUnknown:
    @pytest.mark.asyncio
    async def test_read(self, executor, journal):
        result = await executor.execute(Command(action="read", primary_target="Journal"))

        assert result.success
        assert result.message.startswith('Contents of "Journal":\n')
        assert "email Sam" in result.message

    @pytest.mark.asyncio
    async def test_read_empty(self, executor, workspace):
        workspace.add_page("Empty")

        result = await executor.execute(Command(action="read", primary_target="Empty"))

        assert result.message == '"Empty" is empty'

    @pytest.mark.asyncio
    async def test_debug(self, executor):
        result = await executor.execute(Command(action="debug", primary_target="Inbox"))

        assert result.message.startswith("Agent status:")
        assert "- default page: Inbox" in result.message
        assert "disabled (offline)" in result.message

    @pytest.mark.asyncio
    async def test_unknown(self, executor):
        result = await executor.execute(Command(action="unknown", primary_target="Inbox"), TurnContext(instruction="hello"))

        assert not result.success
        assert result.message == help_message("hello")


class TestFailures:
    """Test retries and failure messages."""

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, executor, workspace):
        page = workspace.add_page("Inbox")
        workspace.failures = [TransientExternalError("notion", "busy", 503)]

        result = await executor.execute(write("hello", "Inbox"))

        assert result.success
        assert result.attempts == 2
        assert workspace.texts(page) == ["hello"]

    @pytest.mark.asyncio
    async def test_transient_failure_exhausted(self, executor, workspace):
        workspace.add_page("Inbox")
        workspace.failures = [TransientExternalError("notion", "busy", 503) for _ in range(3)]

        result = await executor.execute(write("hello", "Inbox"))

        assert not result.success
        assert result.attempts == 3
        assert result.message == 'Could not write in "Inbox": Notion is not responding (busy) after 3 attempts.'

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, executor, workspace):
        workspace.add_page("Inbox")
        workspace.failures = [PermanentExternalError("notion", "unauthorized", 401)]

        result = await executor.execute(write("hello", "Inbox"))

        assert not result.success
        assert result.attempts == 1
        assert result.message.startswith("Notion rejected the request.")

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_result(self, executor, workspace):
        workspace.add_page("Inbox")
        workspace.failures = [RuntimeError("bad payload")]

        result = await executor.execute(write("hello", "Inbox"))

        assert not result.success
        assert result.attempts == 1
        assert result.message == 'Could not write in "Inbox": bad payload'
