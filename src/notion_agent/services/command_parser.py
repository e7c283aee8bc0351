"""Tiered command parser: LLM extraction, rule battery, deterministic fallback."""

import asyncio
import re
from textwrap import dedent
from typing import Optional, Protocol

from pydantic import ValidationError

from notion_agent.models.command import Action, Command
from notion_agent.models.llm_response import LLMCommandRecord, LLMCommandResponse
from notion_agent.services.command_rules import (
    CONVERSATIONAL_PREFIX,
    WRITE_VERB,
    clean,
    extract_format,
    run_rules,
    strip_content,
)
from notion_agent.services.command_splitter import CommandSplitter
from notion_agent.services.exceptions import (
    AmbiguousCompoundInstruction,
    ExternalServiceError,
    LLMResponseError,
    ParseFailure,
)
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)


EXTRACTION_PROMPT = dedent("""
    You turn instructions for a Notion workspace into structured commands.

    Reply with ONE JSON object of the form {"commands": [...]}. List one
    command per intended action, in the order the actions appear in the text.

    Each command is an object with these fields:
    - "action": one of "create", "write", "append", "edit", "delete", "move", "read", "debug", "unknown"
    - "primaryTarget": name of the destination page, without the word "page".
      Use null when the instruction names no page.
    - "secondaryTarget": parent page for "create", destination page for "move", else null
    - "content": text to write (for "create", leave empty)
    - "oldContent": text to find, for "edit", "delete" and "move"
    - "newContent": replacement text, for "edit"
    - "formatType": one of "paragraph", "to_do", "bulleted_list_item",
      "numbered_list_item", "quote", "callout", "toggle", "code",
      "heading_1", "heading_2", "heading_3"
    - "language": programming language for "code", else null
    - "sectionTarget": heading inside the page the user names ("under the Tasks section" -> "Tasks"), else null
    - "placement": "in" to put content inside the section, "below" to put it after the section
    - "isUrl": true when the content is a single URL to bookmark
    - "commentText": comment that accompanies a URL, else null

    RULES:
    - "checklist", "todo" and "task" mean formatType "to_do".
    - "Notion" is the name of the app, never a page name.
    - "add X and Y as checklist" is two "to_do" commands, one per item.
    - Do not invent pages, sections or content that the instruction does not mention.
    - If the instruction is a greeting or a question about what you can do, return one command with action "unknown".

    EXAMPLES:
    Instruction: add milk in checklist and eggs in checklist too in Shopping List
    {"commands": [
      {"action": "write", "primaryTarget": "Shopping List", "content": "milk", "formatType": "to_do"},
      {"action": "write", "primaryTarget": "Shopping List", "content": "eggs", "formatType": "to_do"}
    ]}

    Instruction: create a page called Trip Notes in Travel and add pack charger as checklist
    {"commands": [
      {"action": "create", "primaryTarget": "Trip Notes", "secondaryTarget": "Travel", "content": ""},
      {"action": "write", "primaryTarget": "Trip Notes", "content": "pack charger", "formatType": "to_do"}
    ]}

    Instruction: write call the bank under the day section of Journal
    {"commands": [
      {"action": "write", "primaryTarget": "Journal", "content": "call the bank",
       "formatType": "paragraph", "sectionTarget": "day", "placement": "in"}
    ]}
""").strip()


HELP_REQUEST = re.compile(
    r"^\s*(?:hi|hello|hey|yo|help|help\s+me|\?+|what\s+can\s+you\s+do|how\s+do\s+(?:i|you)\s+(?:use\s+)?(?:this|you|it)"
    r"|what\s+do\s+you\s+do|who\s+are\s+you|thanks|thank\s+you)\s*[.!?]*\s*$",
    re.IGNORECASE,
)

FALLBACK_SPLIT = re.compile(r"\s*[,;]\s*(?:and\s+|then\s+)?|\s+(?:and\s+then|then|and)\s+", re.IGNORECASE)

FALLBACK_VERBS: list[tuple[re.Pattern, Optional[Action]]] = [
    (re.compile(r"^(?:create|make|start)\b\s*(?:an?\b\s*)?(?:new\b\s*)?(?:page\b\s*)?(?:called\b\s*|named\b\s*)?", re.IGNORECASE), Action.CREATE),
    (re.compile(r"^(?:delete|remove|erase)\b\s*", re.IGNORECASE), Action.DELETE),
    (re.compile(r"^(?:read|show|open|view)\b\s*", re.IGNORECASE), Action.READ),
    (re.compile(r"^append\b\s*", re.IGNORECASE), Action.APPEND),
    # Multi-operand actions are declined, never written as text
    (re.compile(r"^(?:move|edit|change|update|replace|rename)\b", re.IGNORECASE), None),
]

# Ordered: the first keyword present upgrades the whole clause
KEYWORD_FORMATS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b(?:check\s?list|to-?\s?dos?|tasks?)\b", re.IGNORECASE), "to_do"),
    (re.compile(r"\bbullet(?:ed|s)?\b", re.IGNORECASE), "bulleted_list_item"),
    (re.compile(r"\bnumbered\b", re.IGNORECASE), "numbered_list_item"),
    (re.compile(r"\btoggle\b", re.IGNORECASE), "toggle"),
    (re.compile(r"\b(?:heading|header|title)\b", re.IGNORECASE), "heading_1"),
    (re.compile(r"\b(?:code|snippet)\b", re.IGNORECASE), "code"),
    (re.compile(r"\bcall\s?out\b", re.IGNORECASE), "callout"),
    (re.compile(r"\bquote\b", re.IGNORECASE), "quote"),
]

TRAILING_PAGE_WORD = re.compile(r"\s+page\s*$", re.IGNORECASE)

NESTED_TARGET = re.compile(
    r"^(?P<section>.+?)\s+page\s+(?:in|of|inside|within|under)\s+(?:the\s+|my\s+)?(?P<page>.+)$",
    re.IGNORECASE,
)

SERVICE_NAMES = frozenset({"notion", "notion workspace", "my notion", "the notion"})


class CompletionClient(Protocol):
    async def complete_json(self, system_prompt: str, user_prompt: str, request_id: Optional[str] = None) -> dict:
        ...


def normalize_target(name: Optional[str], default_page: str) -> str:
    """
    Clean a page name produced by any tier.

    Strips quotes and a trailing "page"; the app's own name and empty names
    become the default page.
    """
    if not name:
        return default_page
    target = TRAILING_PAGE_WORD.sub("", clean(name)).strip()
    if not target or target.lower() in SERVICE_NAMES:
        return default_page
    return target


def _normalize_parent(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    parent = TRAILING_PAGE_WORD.sub("", clean(name)).strip()
    if not parent or parent.lower() in SERVICE_NAMES:
        return None
    return parent


def finalize(commands: list[Command], default_page: str) -> list[Command]:
    """
    Post-processing applied to the output of every tier.

    - normalize primary and secondary targets
    - split an "X page in Y page" target into section X of page Y
    - mark every command after the first as part of a multi-action instruction
    """
    result = []
    for index, command in enumerate(commands):
        update: dict = {"is_multi_action": index > 0}

        primary = command.primary_target
        section = command.section_target
        nested = NESTED_TARGET.match(clean(primary)) if primary else None
        if nested and section is None and command.action != Action.CREATE:
            section = clean(nested.group("section"))
            primary = nested.group("page")
        update["primary_target"] = normalize_target(primary, default_page)

        if section is not None:
            section = clean(section)
            update["section_target"] = section or None
        update["secondary_target"] = _normalize_parent(command.secondary_target)

        result.append(command.model_copy(update=update))
    return result


def command_from_record(record: LLMCommandRecord, default_page: str) -> Command:
    """Convert one LLM record into a Command, tolerating loose field values."""
    content = record.content
    if content is None and record.newContent is not None:
        content = record.newContent
    return Command(
        action=record.action,
        primary_target=record.primaryTarget or default_page,
        secondary_target=record.secondaryTarget,
        content=content,
        old_content=record.oldContent,
        new_content=record.newContent,
        format_type=record.formatType,
        code_language=record.language,
        section_target=record.sectionTarget or None,
        placement_type=record.placement,
        is_url=bool(record.isUrl),
        comment_text=record.commentText,
    )


def _keyword_format(text: str) -> Optional[str]:
    for pattern, format_type in KEYWORD_FORMATS:
        if pattern.search(text):
            return format_type
    return None


def synthesize_fallback(instruction: str, default_page: str) -> list[Command]:
    """
    Deterministic, network-free parse that always yields at least one command.

    Splits the instruction on commas, semicolons, "and" and "then"; every
    clause becomes a command against the default page, as a paragraph unless
    a format keyword upgrades it.

    Args:
        instruction: Raw instruction text
        default_page: Page assigned to every command

    Returns:
        Non-empty list of Commands
    """
    text = instruction.strip()
    if not text or HELP_REQUEST.match(text):
        return [Command(action=Action.UNKNOWN, primary_target=default_page)]

    text = CONVERSATIONAL_PREFIX.sub("", text, count=1).strip()
    commands: list[Command] = []
    for clause in FALLBACK_SPLIT.split(text):
        clause = clean(clause)
        if not clause:
            continue
        command = _fallback_clause(clause, default_page)
        if command is not None:
            commands.append(command)

    if not commands:
        return [Command(action=Action.UNKNOWN, primary_target=default_page)]
    return commands


def _fallback_clause(clause: str, default_page: str) -> Optional[Command]:
    for pattern, action in FALLBACK_VERBS:
        match = pattern.match(clause)
        if not match:
            continue
        if action is None:
            return None
        rest = clean(clause[match.end():])
        if not rest:
            return None
        if action == Action.CREATE:
            return Command(action=action, primary_target=rest)
        if action == Action.READ:
            return Command(action=action, primary_target=rest)
        if action == Action.DELETE:
            return Command(action=action, primary_target=default_page, old_content=rest, content=rest)
        clause = rest
        break
    else:
        action = Action.WRITE

    body, format_type = extract_format(WRITE_VERB.sub("", clause))
    content = strip_content(body)
    if not content:
        return None
    return Command(
        action=action,
        primary_target=default_page,
        content=content,
        format_type=format_type or _keyword_format(clause) or "paragraph",
    )


class CommandParser:
    """
    Converts one instruction into an ordered, non-empty list of Commands.

    Tier A asks the LLM for a `commands` array and fails closed on any
    error. Tier B runs the deterministic rule battery. Tier C is the
    synthetic fallback and always resolves. Whatever tier wins, the
    multi-command splitter repairs missed compound actions and `finalize`
    normalizes targets.
    """

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        default_page: str = "Inbox",
        offline: bool = False,
        splitter: Optional[CommandSplitter] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize parser.

        Args:
            llm_client: Client for Tier A; None disables the tier
            default_page: Page used when an instruction names none
            offline: Skip Tier A even when a client is configured
            splitter: Multi-command splitter (default: CommandSplitter())
            timeout: Upper bound in seconds for the Tier A call
        """
        self.llm_client = llm_client
        self.default_page = default_page
        self.offline = offline or llm_client is None
        self.splitter = splitter or CommandSplitter()
        self.timeout = timeout

    async def parse(self, instruction: str) -> list[Command]:
        """
        Parse an instruction. Never raises, never returns an empty list.

        Args:
            instruction: Raw user text

        Returns:
            Ordered Commands, first one not marked multi-action
        """
        text = (instruction or "").strip()
        if not text:
            return [Command(action=Action.UNKNOWN, primary_target=self.default_page)]

        tier, commands = await self._run_tiers(text)

        try:
            commands = self.splitter.split(commands, text)
        except (AmbiguousCompoundInstruction, ValueError) as e:
            logger.warning("splitter_declined", error=str(e))

        commands = finalize(commands, self.default_page)
        logger.info(
            "instruction_parsed",
            tier=tier,
            commands=len(commands),
            actions=[c.action.value for c in commands],
        )
        return commands

    async def _run_tiers(self, text: str) -> tuple[str, list[Command]]:
        if not self.offline:
            try:
                return "llm", await self._parse_with_llm(text)
            except ParseFailure as e:
                logger.warning("parser_tier_failed", tier=e.tier, error=e.message)

        try:
            return "rules", self._parse_with_rules(text)
        except ParseFailure as e:
            logger.info("parser_tier_failed", tier=e.tier, error=e.message)

        return "fallback", synthesize_fallback(text, self.default_page)

    async def _parse_with_llm(self, text: str) -> list[Command]:
        """
        Tier A.

        Raises:
            ParseFailure: On any transport, status, or schema problem
        """
        try:
            data = await asyncio.wait_for(
                self.llm_client.complete_json(EXTRACTION_PROMPT, text),
                timeout=self.timeout,
            )
            response = LLMCommandResponse.model_validate(data)
            commands = [command_from_record(record, self.default_page) for record in response.commands]
        except asyncio.TimeoutError as e:
            raise ParseFailure("llm", text, "LLM call timed out") from e
        except (ExternalServiceError, LLMResponseError) as e:
            raise ParseFailure("llm", text, str(e)) from e
        except ValidationError as e:
            raise ParseFailure("llm", text, f"Response lacks a valid commands array: {e.error_count()} errors") from e

        if not commands:
            raise ParseFailure("llm", text, "Empty commands array")
        return commands

    def _parse_with_rules(self, text: str) -> list[Command]:
        """
        Tier B.

        Raises:
            ParseFailure: When every rule declines
        """
        try:
            result = run_rules(text, self.default_page)
        except ValueError as e:
            raise ParseFailure("rules", text, f"Rule produced an invalid command: {e}") from e
        if result is None:
            raise ParseFailure("rules", text, "No rule matched")
        rule, commands = result
        logger.debug("rule_matched", rule=rule, commands=len(commands))
        return commands
