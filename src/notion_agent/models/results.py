"""Result records produced by resolvers and the execution step."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from notion_agent.models.document import Section


class PageMatch(BaseModel):
    """A page candidate returned by the target resolver."""

    id: str = Field(..., description="Workspace page id")
    title: str = Field(..., description="Page title as stored in the workspace")
    score: float = Field(..., ge=0.0, le=1.0, description="Match confidence (1.0 = exact)")

    model_config = {"frozen": True}


class MatchPass(str, Enum):
    """Which section-resolver pass produced a match."""

    EXACT = "exact"
    SUBSTRING = "substring"
    SYNONYM = "synonym"
    ADVISORY = "advisory"


class SectionMatch(BaseModel):
    """A located section and how it was found."""

    section: Section
    match_pass: MatchPass

    model_config = {"frozen": True}

    @property
    def advisory(self) -> bool:
        """True when the match came from the best-effort keyword pass."""
        return self.match_pass == MatchPass.ADVISORY


class InsertionPoint(BaseModel):
    """
    Where new blocks go.

    `parent_id` is the block whose children are appended to (the page itself,
    or a heading that supports children). `after_id` is the sibling to insert
    after; None means append at the end of the parent's children.
    """

    parent_id: str
    after_id: Optional[str] = None
    index: int = Field(..., ge=0, description="Position in the linearized block list")

    model_config = {"frozen": True}


class CommandResult(BaseModel):
    """Outcome of executing one command."""

    success: bool
    message: str
    attempts: int = Field(default=1, ge=1)
    page_id: Optional[str] = None

    model_config = {"frozen": True}
