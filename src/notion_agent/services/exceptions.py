"""Exception taxonomy for notion-agent services.

Failures fall into two families. Parsing-side failures (ParseFailure,
LLMResponseError, AmbiguousCompoundInstruction) are absorbed inside the
parser and splitter and never reach the user as hard errors. Execution-side
failures (TargetNotFoundError, SectionNotFoundError, TransientExternalError,
PermanentExternalError) are raised by resolvers and clients, retried or not
according to the retry policy, and finally rendered as one line of the
aggregated chat response.
"""

from typing import Optional

import httpx


class AgentError(Exception):
    """Base class for all notion-agent errors."""


class ParseFailure(AgentError):
    """Raised by a parser tier that cannot produce any command.

    Attributes:
        tier: Name of the tier that declined
        instruction: Raw instruction text
    """

    def __init__(self, tier: str, instruction: str, message: str = "Tier declined instruction"):
        self.tier = tier
        self.instruction = instruction
        self.message = message
        super().__init__(f"{message} ({tier}): {instruction!r}")


class LLMResponseError(AgentError):
    """Raised when the LLM answers with something other than a `commands` array."""

    def __init__(self, message: str, raw: Optional[str] = None):
        self.message = message
        self.raw = raw
        super().__init__(message)


class AmbiguousCompoundInstruction(AgentError):
    """Raised when compound evidence exists but the spans cannot be separated.

    Attributes:
        expected: Number of actions the detectors found evidence for
        spans: Text spans that were recovered
    """

    def __init__(self, expected: int, spans: list[str]):
        self.expected = expected
        self.spans = spans
        super().__init__(
            f"Expected {expected} actions but recovered {len(spans)} usable spans"
        )


class TargetNotFoundError(AgentError):
    """Raised when no page matches a requested name well enough.

    Attributes:
        name: The page name the user asked for
        best_title: Title of the closest candidate, if any
        best_score: Score of the closest candidate, if any
    """

    def __init__(
        self,
        name: str,
        best_title: Optional[str] = None,
        best_score: Optional[float] = None,
    ):
        self.name = name
        self.best_title = best_title
        self.best_score = best_score
        super().__init__(self.user_message())

    def user_message(self) -> str:
        message = (
            f'Could not find a page named "{self.name}". '
            f"Check that the page exists and is shared with your integration."
        )
        if self.best_title:
            message += f' The closest match was "{self.best_title}".'
        return message


class SectionNotFoundError(AgentError):
    """Raised when a requested section is absent and fallback is disabled."""

    def __init__(self, section: str, page_title: str, available: Optional[list[str]] = None):
        self.section = section
        self.page_title = page_title
        self.available = available or []
        super().__init__(self.user_message())

    def user_message(self) -> str:
        message = f'Could not find a "{self.section}" section in "{self.page_title}".'
        if self.available:
            message += " Available sections: " + ", ".join(f'"{s}"' for s in self.available) + "."
        return message


class ExternalServiceError(AgentError):
    """Base class for failures reported by an external collaborator.

    Attributes:
        service: "notion" or "llm"
        status_code: HTTP status code, None for network-level failures
        detail: Response body or exception text
    """

    def __init__(self, service: str, detail: str, status_code: Optional[int] = None):
        self.service = service
        self.detail = detail
        self.status_code = status_code
        status = f" ({status_code})" if status_code is not None else ""
        super().__init__(f"{service} request failed{status}: {detail}")


class TransientExternalError(ExternalServiceError):
    """Timeout, rate limit, or 5xx: a retry could plausibly succeed."""


class PermanentExternalError(ExternalServiceError):
    """Auth, not-found, or validation failure: retrying will not help."""


class InvalidTransitionError(AgentError):
    """Raised when the conversation state machine receives an illegal event."""

    def __init__(self, phase: str, event: str):
        self.phase = phase
        self.event = event
        super().__init__(f"Event {event!r} is not valid in phase {phase!r}")


class ContentNotFoundError(AgentError):
    """Raised when edit, delete, or move cannot find the block holding the given text."""

    def __init__(self, text: str, page_title: str):
        self.text = text
        self.page_title = page_title
        super().__init__(self.user_message())

    def user_message(self) -> str:
        if not self.text:
            return f'Tell me which text in "{self.page_title}" you mean.'
        return f'Could not find "{self.text}" in "{self.page_title}".'


TRANSIENT_STATUSES = frozenset({408, 429})


def raise_for_status(response: httpx.Response, service: str) -> None:
    """
    Map a non-2xx response onto the error taxonomy.

    Timeouts, rate limits and 5xx are transient. Auth, not-found, conflict
    and validation failures are permanent, as is any other 4xx.

    Raises:
        TransientExternalError: For statuses a retry could fix
        PermanentExternalError: For everything else outside 2xx
    """
    if response.is_success:
        return
    status = response.status_code
    detail = _error_detail(response)
    if status in TRANSIENT_STATUSES or status >= 500:
        raise TransientExternalError(service, detail, status_code=status)
    raise PermanentExternalError(service, detail, status_code=status)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, dict):
            message = message.get("message")
        if message:
            return str(message)
    return response.text[:500]
