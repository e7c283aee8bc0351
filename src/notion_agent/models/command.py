"""Command model: the unit of work produced by the parser tiers."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Action(str, Enum):
    """What a command does to the workspace."""

    CREATE = "create"
    WRITE = "write"
    APPEND = "append"
    EDIT = "edit"
    DELETE = "delete"
    MOVE = "move"
    READ = "read"
    DEBUG = "debug"
    UNKNOWN = "unknown"


class PlacementType(str, Enum):
    """Whether content goes inside a section or directly after it."""

    IN = "in"
    BELOW = "below"


FORMAT_TYPES = (
    "paragraph",
    "to_do",
    "bulleted_list_item",
    "numbered_list_item",
    "quote",
    "callout",
    "toggle",
    "code",
    "heading_1",
    "heading_2",
    "heading_3",
)

FORMAT_ALIASES = {
    "text": "paragraph",
    "plain": "paragraph",
    "plain text": "paragraph",
    "paragraph": "paragraph",
    "checklist": "to_do",
    "check list": "to_do",
    "checkbox": "to_do",
    "todo": "to_do",
    "to-do": "to_do",
    "to do": "to_do",
    "task": "to_do",
    "tasks": "to_do",
    "todos": "to_do",
    "to dos": "to_do",
    "to_do": "to_do",
    "bullet": "bulleted_list_item",
    "bullets": "bulleted_list_item",
    "bullet point": "bulleted_list_item",
    "bulleted": "bulleted_list_item",
    "bulleted list": "bulleted_list_item",
    "list": "bulleted_list_item",
    "list item": "bulleted_list_item",
    "bulleted_list_item": "bulleted_list_item",
    "numbered": "numbered_list_item",
    "numbered list": "numbered_list_item",
    "number": "numbered_list_item",
    "ordered list": "numbered_list_item",
    "numbered_list_item": "numbered_list_item",
    "quote": "quote",
    "blockquote": "quote",
    "block quote": "quote",
    "quotation": "quote",
    "callout": "callout",
    "call out": "callout",
    "note": "callout",
    "toggle": "toggle",
    "toggle list": "toggle",
    "dropdown": "toggle",
    "code": "code",
    "code block": "code",
    "snippet": "code",
    "heading": "heading_1",
    "header": "heading_1",
    "title": "heading_1",
    "h1": "heading_1",
    "heading1": "heading_1",
    "heading 1": "heading_1",
    "heading_1": "heading_1",
    "subheading": "heading_2",
    "h2": "heading_2",
    "heading2": "heading_2",
    "heading 2": "heading_2",
    "heading_2": "heading_2",
    "h3": "heading_3",
    "heading3": "heading_3",
    "heading 3": "heading_3",
    "heading_3": "heading_3",
}


def normalize_format_type(value: Optional[str]) -> str:
    """
    Map a loose format name to its canonical block type.

    Unknown or empty values normalize to "paragraph".

    Args:
        value: Format name as produced by a parser tier or the LLM

    Returns:
        One of FORMAT_TYPES
    """
    if not value:
        return "paragraph"
    key = " ".join(value.strip().lower().replace("-", " ").split())
    if key in FORMAT_ALIASES:
        return FORMAT_ALIASES[key]
    key = key.replace(" ", "_")
    if key in FORMAT_TYPES:
        return key
    return "paragraph"


class Command(BaseModel):
    """
    One atomic, typed instruction to act on a destination page.

    Commands are frozen. Resolver back-fill produces a copy via
    `model_copy(update=...)` rather than mutating the original.
    """

    action: Action = Field(..., description="What to do")

    primary_target: str = Field(
        default="",
        description="Destination page name (empty only while pending resolution)"
    )

    secondary_target: Optional[str] = Field(
        default=None,
        description="Parent page for nested creation, or destination page for a move"
    )

    content: str = Field(default="", description="Text payload")
    old_content: Optional[str] = Field(default=None, description="Text to find (edit, delete, move)")
    new_content: Optional[str] = Field(default=None, description="Replacement text (edit)")

    format_type: str = Field(default="paragraph", description="Canonical block type")
    code_language: Optional[str] = Field(default=None, description="Language for code blocks")

    section_target: Optional[str] = Field(
        default=None,
        description="Human-named region within the destination page"
    )
    placement_type: PlacementType = Field(default=PlacementType.IN)

    is_multi_action: bool = Field(
        default=False,
        description="True for every command after the first of a decomposed instruction"
    )

    is_url: bool = Field(default=False, description="Content is a URL to bookmark")
    comment_text: Optional[str] = Field(default=None, description="Comment written after a bookmark")
    toggle_title: Optional[str] = Field(default=None, description="Title line of a toggle block")

    model_config = {"frozen": True}

    @field_validator("content", mode="before")
    @classmethod
    def content_never_none(cls, v):
        """Keep downstream code total: missing content is the empty string."""
        if v is None:
            return ""
        return str(v)

    @field_validator("primary_target", mode="before")
    @classmethod
    def target_never_none(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("format_type", mode="before")
    @classmethod
    def canonical_format(cls, v) -> str:
        return normalize_format_type(v)

    @field_validator("placement_type", mode="before")
    @classmethod
    def loose_placement(cls, v):
        if v is None:
            return PlacementType.IN
        if isinstance(v, str):
            lowered = v.strip().lower()
            if lowered in ("below", "after", "beneath"):
                return PlacementType.BELOW
            return PlacementType.IN
        return v

    @field_validator("action", mode="before")
    @classmethod
    def loose_action(cls, v):
        if isinstance(v, str):
            lowered = v.strip().lower()
            aliases = {"add": "write", "insert": "write", "put": "write", "make": "create",
                       "remove": "delete", "update": "edit", "change": "edit", "show": "read"}
            lowered = aliases.get(lowered, lowered)
            if lowered in {a.value for a in Action}:
                return lowered
            return Action.UNKNOWN
        return v

    @property
    def is_destructive(self) -> bool:
        """Whether this command mutates the workspace and needs confirmation."""
        return is_destructive_verb(self.action.value)

    def describe(self) -> str:
        """Short human-readable summary for confirmation and CLI output."""
        parts = [self.action.value]
        if self.content:
            parts.append(f'"{self.content}"')
        if self.format_type != "paragraph":
            parts.append(f"as {self.format_type}")
        if self.primary_target:
            parts.append(f"in {self.primary_target}")
        if self.section_target:
            parts.append(f"({self.placement_type.value} {self.section_target})")
        return " ".join(parts)


DESTRUCTIVE_VERBS = frozenset({
    "create", "write", "append", "edit", "delete", "move",
    "rename", "archive", "publish", "upload",
})


def is_destructive_verb(verb: str) -> bool:
    """Lexical classification of an action verb as workspace-mutating."""
    return verb.strip().lower() in DESTRUCTIVE_VERBS
