"""Execution step: carry out one Command against the workspace."""

import asyncio
import zlib
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

from notion_agent.models.command import Action, Command, PlacementType
from notion_agent.models.config import AgentConfig
from notion_agent.models.document import Block, DocumentStructure
from notion_agent.models.results import CommandResult, PageMatch
from notion_agent.services.block_synthesizer import blocks_for_command, rich_text, synthesize
from notion_agent.services.exceptions import (
    AgentError,
    ContentNotFoundError,
    ExternalServiceError,
    PermanentExternalError,
    SectionNotFoundError,
    TargetNotFoundError,
    TransientExternalError,
)
from notion_agent.services.retry import RetryPolicy
from notion_agent.services.section_resolver import SectionResolver
from notion_agent.services.target_resolver import TargetResolver
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

SUMMARY_LENGTH = 60

FORMAT_LABELS = {
    "paragraph": "text",
    "to_do": "to-do",
    "bulleted_list_item": "bullet",
    "numbered_list_item": "numbered item",
    "quote": "quote",
    "callout": "callout",
    "toggle": "toggle",
    "code": "code block",
    "heading_1": "heading",
    "heading_2": "heading",
    "heading_3": "heading",
}

HELP_EXAMPLES = (
    "Try: 'Write \"Meeting notes for today\" in Work Log'",
    "Try: 'Create a new page called Project Ideas'",
    "Try: 'Add milk and eggs to checklist in Shopping List'",
    "Try: 'Edit \"old text\" to \"new text\" in Work Log'",
    "Try: 'Add call the bank under the day section of Journal'",
)

# Block types whose text lives in a rich_text array and can be edited in place
TEXT_BLOCK_TYPES = frozenset({
    "paragraph", "to_do", "bulleted_list_item", "numbered_list_item", "quote",
    "callout", "toggle", "code", "heading_1", "heading_2", "heading_3",
})


class WorkspaceClient(Protocol):
    async def search_pages(self, query: str) -> list[dict[str, Any]]: ...
    async def create_page(self, title: str, parent_id: Optional[str] = None,
                          children: Optional[list[dict[str, Any]]] = None) -> dict[str, Any]: ...
    async def list_block_children(self, block_id: str) -> list[dict[str, Any]]: ...
    async def append_block_children(self, block_id: str, children: list[dict[str, Any]],
                                    after: Optional[str] = None) -> list[dict[str, Any]]: ...
    async def update_block(self, block_id: str, block: dict[str, Any]) -> dict[str, Any]: ...
    async def delete_block(self, block_id: str) -> None: ...


@dataclass
class TurnContext:
    """
    State shared by the commands of one conversation turn.

    Attributes:
        instruction: Raw text of the turn
        placements: Last block written per (page, heading, placement), so
            consecutive writes into one section keep textual order
        created_pages: Pages created earlier in the turn, by lowercased title
    """

    instruction: str = ""
    placements: dict[tuple[str, str, str], str] = field(default_factory=dict)
    created_pages: dict[str, PageMatch] = field(default_factory=dict)


@dataclass
class _Execution:
    command: Command
    turn: TurnContext
    attempts: int = 1

    def note_attempt(self, attempt: int) -> None:
        self.attempts = max(self.attempts, attempt)


def summarize(text: str) -> str:
    text = " ".join(text.split())
    if len(text) <= SUMMARY_LENGTH:
        return text
    return text[:SUMMARY_LENGTH - 3].rstrip() + "..."


def help_message(instruction: str) -> str:
    """Deterministic hint for instructions that map to no action."""
    example = HELP_EXAMPLES[zlib.crc32(instruction.encode("utf-8")) % len(HELP_EXAMPLES)]
    if not instruction.strip():
        return f"Tell me what to write and where. {example}"
    return f'I couldn\'t determine what action to take with "{instruction.strip()}". {example}'


def failure_message(command: Command, error: BaseException, attempts: int) -> str:
    """User-facing text for a command that could not be completed."""
    if isinstance(error, (TargetNotFoundError, SectionNotFoundError, ContentNotFoundError)):
        return error.user_message()
    if isinstance(error, asyncio.TimeoutError):
        return f"Could not {command.action.value} in \"{command.primary_target}\": the request timed out after {attempts} attempts."
    if isinstance(error, TransientExternalError):
        return (
            f"Could not {command.action.value} in \"{command.primary_target}\": "
            f"{error.service.capitalize()} is not responding ({error.detail}) after {attempts} attempts."
        )
    if isinstance(error, PermanentExternalError):
        if error.status_code in (401, 403):
            return (
                f"{error.service.capitalize()} rejected the request. "
                f"Check that the integration token is valid and the page is shared with it."
            )
        if error.status_code == 404:
            return f'"{command.primary_target}" is not accessible. Check that it is shared with your integration.'
        return f"Could not {command.action.value} in \"{command.primary_target}\": {error.detail}"
    return f"Could not {command.action.value} in \"{command.primary_target}\": {error}"


class CommandExecutor:
    """
    Runs one Command: resolve target, resolve section, synthesize, write.

    Every external call goes through the retry policy. Failures are turned
    into an unsuccessful CommandResult here so one failing command never
    aborts the rest of the queue.
    """

    def __init__(
        self,
        notion: WorkspaceClient,
        target_resolver: Optional[TargetResolver] = None,
        section_resolver: Optional[SectionResolver] = None,
        retry_policy: Optional[RetryPolicy] = None,
        agent_config: Optional[AgentConfig] = None,
        llm_enabled: bool = False,
        root_page_id: Optional[str] = None,
    ):
        self.notion = notion
        self.agent_config = agent_config or AgentConfig()
        self.target_resolver = target_resolver or TargetResolver(notion, self.agent_config.match_threshold)
        self.section_resolver = section_resolver or SectionResolver()
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.agent_config.retry_attempts,
            backoff_base=self.agent_config.backoff_base,
            timeout=self.agent_config.call_timeout,
        )
        self.llm_enabled = llm_enabled
        self.root_page_id = root_page_id

        self._handlers: dict[Action, Callable[[_Execution], Awaitable[CommandResult]]] = {
            Action.WRITE: self._write,
            Action.APPEND: self._write,
            Action.CREATE: self._create,
            Action.EDIT: self._edit,
            Action.DELETE: self._delete,
            Action.MOVE: self._move,
            Action.READ: self._read,
            Action.DEBUG: self._debug,
            Action.UNKNOWN: self._unknown,
        }

    async def execute(self, command: Command, turn: Optional[TurnContext] = None) -> CommandResult:
        """
        Execute one command.

        Args:
            command: Command to run
            turn: Context shared with the other commands of the turn

        Returns:
            CommandResult; failures are reported, not raised
        """
        run = _Execution(command=command, turn=turn or TurnContext())
        logger.info("command_started", action=command.action.value, target=command.primary_target)
        try:
            result = await self._handlers[command.action](run)
        except (AgentError, asyncio.TimeoutError) as e:
            logger.error(
                "command_failed",
                action=command.action.value,
                target=command.primary_target,
                error_type=type(e).__name__,
                error=str(e),
                attempts=run.attempts,
            )
            return CommandResult(success=False, message=failure_message(command, e, run.attempts), attempts=run.attempts)
        except Exception as e:
            logger.exception(
                "command_crashed",
                action=command.action.value,
                target=command.primary_target,
                error_type=type(e).__name__,
            )
            return CommandResult(success=False, message=failure_message(command, e, run.attempts), attempts=run.attempts)

        logger.info(
            "command_succeeded",
            action=command.action.value,
            target=command.primary_target,
            attempts=result.attempts,
        )
        return result

    async def _call(self, run: _Execution, operation: Callable[[], Awaitable[T]]) -> T:
        return await self.retry_policy.run(operation, on_attempt=run.note_attempt)

    async def _resolve_page(self, run: _Execution, name: str) -> PageMatch:
        created = run.turn.created_pages.get(name.strip().lower())
        if created is not None:
            return created
        return await self._call(run, lambda: self.target_resolver.require(name))

    async def _load_document(self, run: _Execution, page: PageMatch) -> DocumentStructure:
        raw = await self._call(run, lambda: self.notion.list_block_children(page.id))
        return DocumentStructure.from_notion_blocks(page.id, raw, page.title)

    def _ok(self, run: _Execution, message: str, page_id: Optional[str] = None) -> CommandResult:
        return CommandResult(success=True, message=message, attempts=run.attempts, page_id=page_id)

    async def _write(self, run: _Execution) -> CommandResult:
        command = run.command
        page = await self._resolve_page(run, command.primary_target)
        blocks = blocks_for_command(command)
        label = self._label(command, len(blocks))

        if not command.section_target:
            await self._call(run, lambda: self.notion.append_block_children(page.id, blocks))
            return self._ok(run, f'Added {label} "{summarize(command.content)}" to "{page.title}"', page.id)

        doc = await self._load_document(run, page)
        match = self.section_resolver.find_section(doc, command.section_target, run.turn.instruction)
        if match is None:
            if self.agent_config.section_fallback == "error":
                raise SectionNotFoundError(command.section_target, page.title, doc.heading_titles)
            await self._call(run, lambda: self.notion.append_block_children(page.id, blocks))
            return self._ok(
                run,
                f'Added {label} "{summarize(command.content)}" to the end of "{page.title}" '
                f'(no "{command.section_target}" section found)',
                page.id,
            )

        section = match.section
        resolved = command.model_copy(update={"primary_target": page.title, "section_target": section.title})
        logger.debug(
            "command_backfilled",
            target=resolved.primary_target,
            section=resolved.section_target,
            match_pass=match.match_pass.value,
        )

        point = self.section_resolver.insertion_point(doc, section, command.placement_type)
        key = (page.id, section.heading.id, command.placement_type.value)
        after = run.turn.placements.get(key, point.after_id)
        created = await self._call(
            run, lambda: self.notion.append_block_children(point.parent_id, blocks, after=after)
        )
        if created:
            run.turn.placements[key] = created[-1]["id"]

        where = "to" if command.placement_type == PlacementType.IN else "after"
        message = (
            f'Added {label} "{summarize(command.content)}" {where} the "{resolved.section_target}" '
            f'section of "{resolved.primary_target}"'
        )
        if match.advisory:
            message += f' (closest match for "{command.section_target}")'
        return self._ok(run, message, page.id)

    @staticmethod
    def _label(command: Command, count: int) -> str:
        if command.is_url:
            return "bookmark"
        label = FORMAT_LABELS.get(command.format_type, "text")
        if count > 1 and command.format_type in ("to_do", "bulleted_list_item", "numbered_list_item"):
            return f"{count} {label}s"
        return label

    async def _create(self, run: _Execution) -> CommandResult:
        command = run.command
        title = command.primary_target
        parent_id = self.root_page_id
        parent_title = None
        if command.secondary_target:
            parent = await self._resolve_page(run, command.secondary_target)
            parent_id, parent_title = parent.id, parent.title

        children = blocks_for_command(command) if command.content else None
        page = await self._call(run, lambda: self.notion.create_page(title, parent_id=parent_id, children=children))
        run.turn.created_pages[title.lower()] = PageMatch(id=page["id"], title=page["title"], score=1.0)

        if parent_title:
            return self._ok(run, f'Created a new page named "{page["title"]}" in "{parent_title}"', page["id"])
        return self._ok(run, f'Created a new page named "{page["title"]}"', page["id"])

    @staticmethod
    def _find_block(doc: DocumentStructure, text: str) -> Optional[Block]:
        needle = text.strip().lower()
        if not needle:
            return None
        for block in doc.blocks:
            if block.type in TEXT_BLOCK_TYPES and needle in block.text_content.lower():
                return block
        return None

    async def _edit(self, run: _Execution) -> CommandResult:
        command = run.command
        old = command.old_content or ""
        new = command.new_content if command.new_content is not None else command.content
        page = await self._resolve_page(run, command.primary_target)
        doc = await self._load_document(run, page)
        block = self._find_block(doc, old)
        if block is None:
            raise ContentNotFoundError(old, page.title)

        start = block.text_content.lower().find(old.strip().lower())
        updated = block.text_content[:start] + new + block.text_content[start + len(old.strip()):]
        payload = {"type": block.type, block.type: {"rich_text": rich_text(updated)}}
        await self._call(run, lambda: self.notion.update_block(block.id, payload))
        return self._ok(run, f'Edited "{summarize(old)}" to "{summarize(new)}" in "{page.title}"', page.id)

    async def _delete(self, run: _Execution) -> CommandResult:
        command = run.command
        text = command.old_content or command.content
        page = await self._resolve_page(run, command.primary_target)
        doc = await self._load_document(run, page)
        block = self._find_block(doc, text)
        if block is None:
            raise ContentNotFoundError(text, page.title)

        await self._call(run, lambda: self.notion.delete_block(block.id))
        return self._ok(run, f'Deleted "{summarize(block.text_content)}" from "{page.title}"', page.id)

    async def _move(self, run: _Execution) -> CommandResult:
        command = run.command
        text = command.old_content or command.content
        if not command.secondary_target:
            return CommandResult(
                success=False,
                message=f'Tell me which page to move "{summarize(text)}" to.',
                attempts=run.attempts,
            )
        source = await self._resolve_page(run, command.primary_target)
        destination = await self._resolve_page(run, command.secondary_target)
        doc = await self._load_document(run, source)
        block = self._find_block(doc, text)
        if block is None:
            raise ContentNotFoundError(text, source.title)

        copy = synthesize(block.text_content, block.type)
        await self._call(run, lambda: self.notion.append_block_children(destination.id, [copy]))
        await self._call(run, lambda: self.notion.delete_block(block.id))
        return self._ok(
            run,
            f'Moved "{summarize(block.text_content)}" from "{source.title}" to "{destination.title}"',
            destination.id,
        )

    async def _read(self, run: _Execution) -> CommandResult:
        page = await self._resolve_page(run, run.command.primary_target)
        doc = await self._load_document(run, page)
        text = doc.render_text()
        if not text:
            return self._ok(run, f'"{page.title}" is empty', page.id)
        return self._ok(run, f'Contents of "{page.title}":\n{text}', page.id)

    async def _debug(self, run: _Execution) -> CommandResult:
        config = self.agent_config
        lines = [
            "Agent status:",
            f"- default page: {config.default_page}",
            f"- LLM parsing: {'enabled' if self.llm_enabled and not config.offline else 'disabled (offline)'}",
            f"- match threshold: {config.match_threshold}",
            f"- retry attempts: {config.retry_attempts} (backoff {config.backoff_base}s x attempt)",
            f"- call timeout: {config.call_timeout}s",
            f"- missing section: {config.section_fallback}",
        ]
        return self._ok(run, "\n".join(lines))

    async def _unknown(self, run: _Execution) -> CommandResult:
        instruction = run.turn.instruction or run.command.content
        return CommandResult(success=False, message=help_message(instruction), attempts=run.attempts)
