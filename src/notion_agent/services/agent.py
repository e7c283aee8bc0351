"""Conversational surface: confirmation gate, command queue, aggregated replies."""

import asyncio
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from notion_agent.config import ConfigManager
from notion_agent.models.state import ConversationState, Phase, StateEvent
from notion_agent.services.command_parser import CommandParser
from notion_agent.services.executor import CommandExecutor, TurnContext
from notion_agent.services.llm_client import LLMClient
from notion_agent.services.notion_client import NotionClient
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)

CONFIRMATION_PROMPT = (
    "CONFIRM? This action will modify your Notion workspace. "
    "Reply 'yes' to confirm or 'no' to cancel."
)
CANCELLED_MESSAGE = "Action cancelled."
NOTHING_PENDING_MESSAGE = "There is nothing waiting for confirmation."

AFFIRMATIVE = "yes"
NEGATIVE = "no"

READ_ONLY_KEYS = frozenset({"phase"})


class ChatResponse(BaseModel):
    """One reply per turn."""

    content: str
    requires_confirmation: bool = False

    model_config = {"frozen": True}


def aggregate(messages: list[str]) -> str:
    """Join per-command outcomes in execution order with a neutral connective."""
    parts = [m.strip() for m in messages if m and m.strip()]
    if not parts:
        return ""
    joined = parts[0]
    for message in parts[1:]:
        joined += "\nAnd " + message[0].lower() + message[1:]
    return joined


class NotionAgent:
    """
    Owns one conversation: parses each turn, gates destructive actions
    behind a literal "yes", runs the queued commands one at a time and
    answers with a single aggregated message.

    Turns are serialized by a lock, so two calls to `chat` never interleave
    on the same ConversationState.
    """

    def __init__(
        self,
        parser: CommandParser,
        executor: CommandExecutor,
        require_confirm: bool = True,
        notion_client: Optional[NotionClient] = None,
    ):
        self.parser = parser
        self.executor = executor
        self.state = ConversationState(require_confirm=require_confirm)
        self._notion_client = notion_client
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config_manager: ConfigManager,
        require_confirm: bool = True,
        notion_transport: Optional[httpx.AsyncBaseTransport] = None,
        llm_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "NotionAgent":
        """
        Wire an agent from configuration.

        Args:
            config_manager: Loaded configuration
            require_confirm: Gate destructive actions behind a "yes"
            notion_transport: Optional httpx transport for the Notion client (tests)
            llm_transport: Optional httpx transport for the LLM client (tests)
        """
        agent_config = config_manager.agent
        notion = NotionClient(config_manager.notion, timeout=agent_config.call_timeout, transport=notion_transport)

        llm_client = None
        if config_manager.llm is not None and not agent_config.offline:
            llm_client = LLMClient(config_manager.llm, timeout=agent_config.call_timeout, transport=llm_transport)

        parser = CommandParser(
            llm_client=llm_client,
            default_page=agent_config.default_page,
            offline=agent_config.offline,
            timeout=agent_config.call_timeout,
        )
        executor = CommandExecutor(
            notion,
            agent_config=agent_config,
            llm_enabled=llm_client is not None,
            root_page_id=config_manager.notion.root_page_id,
        )
        return cls(parser, executor, require_confirm=require_confirm, notion_client=notion)

    async def aclose(self) -> None:
        if self._notion_client is not None:
            await self._notion_client.aclose()

    async def chat(self, text: str) -> ChatResponse:
        """
        Process one user turn.

        While a confirmation is pending, a literal "yes" runs the queue and a
        literal "no" cancels it. Anything else abandons the pending action
        and is handled as a new instruction.

        Args:
            text: User input

        Returns:
            ChatResponse holding either the fixed confirmation prompt or the
            aggregated outcome of every executed command
        """
        async with self._lock:
            reply = text.strip().lower()
            state = self.state

            if state.phase == Phase.AWAITING_CONFIRMATION:
                if reply == AFFIRMATIVE:
                    state.transition(StateEvent.CONFIRM)
                    logger.info("action_confirmed", commands=len(state.queued_commands()))
                    return await self._run_queue()
                if reply == NEGATIVE:
                    state.transition(StateEvent.CANCEL)
                    logger.info("action_cancelled")
                    return ChatResponse(content=CANCELLED_MESSAGE)
                logger.info("pending_action_abandoned")
                state.transition(StateEvent.ABANDON)
            elif reply in (AFFIRMATIVE, NEGATIVE):
                return ChatResponse(content=NOTHING_PENDING_MESSAGE)

            commands = await self.parser.parse(text)
            destructive = next((c for c in commands if c.is_destructive), None)

            if state.require_confirm and destructive is not None and not state.confirmed:
                state.transition(StateEvent.REQUEST_CONFIRMATION, commands)
                state.instruction = text.strip()
                logger.info(
                    "confirmation_requested",
                    action=destructive.action.value,
                    target=destructive.primary_target,
                    commands=len(commands),
                )
                return ChatResponse(content=CONFIRMATION_PROMPT, requires_confirmation=True)

            state.transition(StateEvent.START, commands)
            state.instruction = text.strip()
            return await self._run_queue()

    async def _run_queue(self) -> ChatResponse:
        state = self.state
        turn = TurnContext(instruction=state.instruction)
        queue = state.queued_commands()
        messages = []
        try:
            for position, command in enumerate(queue):
                state.remaining_commands = queue[position + 1:]
                result = await self.executor.execute(command, turn)
                messages.append(result.message)
        finally:
            state.transition(StateEvent.FINISH)

        logger.info("turn_completed", commands=len(queue))
        return ChatResponse(content=aggregate(messages))

    def get(self, key: str) -> Any:
        """Read a named ConversationState field."""
        if key not in ConversationState.model_fields:
            raise KeyError(f"Unknown state key: {key!r}")
        return getattr(self.state, key)

    def set(self, key: str, value: Any) -> None:
        """
        Assign a named ConversationState field (validated).

        Raises:
            KeyError: For unknown or read-only keys
            ValueError: If the value does not validate for that field
        """
        if key not in ConversationState.model_fields or key in READ_ONLY_KEYS:
            raise KeyError(f"State key {key!r} cannot be set")
        setattr(self.state, key, value)
