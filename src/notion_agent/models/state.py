"""Per-session conversation state and its transition function."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from notion_agent.models.command import Command
from notion_agent.services.exceptions import InvalidTransitionError


class Phase(str, Enum):
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTING = "executing"


class StateEvent(str, Enum):
    """Events accepted by ConversationState.transition."""

    REQUEST_CONFIRMATION = "request_confirmation"  # idle -> awaiting_confirmation
    START = "start"                                # idle -> executing (no gate needed)
    CONFIRM = "confirm"                            # awaiting_confirmation -> executing
    CANCEL = "cancel"                              # awaiting_confirmation -> idle
    ABANDON = "abandon"                            # awaiting_confirmation -> idle (new instruction)
    FINISH = "finish"                              # executing -> idle


_TRANSITIONS: dict[tuple[Phase, StateEvent], Phase] = {
    (Phase.IDLE, StateEvent.REQUEST_CONFIRMATION): Phase.AWAITING_CONFIRMATION,
    (Phase.IDLE, StateEvent.START): Phase.EXECUTING,
    (Phase.AWAITING_CONFIRMATION, StateEvent.CONFIRM): Phase.EXECUTING,
    (Phase.AWAITING_CONFIRMATION, StateEvent.CANCEL): Phase.IDLE,
    (Phase.AWAITING_CONFIRMATION, StateEvent.ABANDON): Phase.IDLE,
    (Phase.EXECUTING, StateEvent.FINISH): Phase.IDLE,
}


class ConversationState(BaseModel):
    """
    Mutable state owned by one agent session.

    At most one pending action is outstanding. `remaining_commands` holds the
    rest of a decomposed instruction while the first one waits for
    confirmation or runs, and is cleared whenever the session returns to idle.
    """

    phase: Phase = Field(default=Phase.IDLE)

    pending_action: Union[Command, str, None] = Field(
        default=None,
        description="Command awaiting confirmation or execution (raw text when set directly)"
    )

    require_confirm: bool = Field(
        default=True,
        description="Whether destructive commands must be confirmed before running"
    )

    confirmed: bool = Field(
        default=False,
        description="Whether the current turn has been confirmed"
    )

    remaining_commands: list[Command] = Field(default_factory=list)

    instruction: str = Field(
        default="",
        description="Raw text of the turn that produced the queued commands"
    )

    model_config = {"frozen": False, "validate_assignment": True}

    def transition(self, event: StateEvent, commands: Optional[list[Command]] = None) -> Phase:
        """
        Apply an event and return the new phase.

        Args:
            event: The event to apply
            commands: The turn's command list, required for REQUEST_CONFIRMATION and START

        Returns:
            The phase after the transition

        Raises:
            InvalidTransitionError: If the event is not legal in the current phase
                or a command list is missing where one is required
        """
        key = (self.phase, event)
        if key not in _TRANSITIONS:
            raise InvalidTransitionError(self.phase.value, event.value)

        if event in (StateEvent.REQUEST_CONFIRMATION, StateEvent.START):
            if not commands:
                raise InvalidTransitionError(self.phase.value, event.value)
            self.pending_action = commands[0]
            self.remaining_commands = list(commands[1:])
            self.confirmed = False
        elif event == StateEvent.CONFIRM:
            self.confirmed = True
        else:
            self._drain()

        self.phase = _TRANSITIONS[key]
        return self.phase

    def queued_commands(self) -> list[Command]:
        """The pending command followed by the remaining ones, in execution order."""
        queue = []
        if isinstance(self.pending_action, Command):
            queue.append(self.pending_action)
        queue.extend(self.remaining_commands)
        return queue

    def _drain(self) -> None:
        self.pending_action = None
        self.remaining_commands = []
        self.confirmed = False
        self.instruction = ""
