"""Read-only structural view of a page's content blocks."""

from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field


HEADING_TYPES = {"heading_1": 1, "heading_2": 2, "heading_3": 3}


def rich_text_plain(rich_text: list[dict[str, Any]]) -> str:
    """Concatenate the plain text of a Notion rich_text array."""
    parts = []
    for item in rich_text or []:
        if "plain_text" in item:
            parts.append(item["plain_text"])
        elif "text" in item:
            parts.append(item["text"].get("content", ""))
    return "".join(parts)


def block_plain_text(raw: dict[str, Any]) -> str:
    """Extract the visible text of a raw Notion block dict."""
    block_type = raw.get("type", "")
    body = raw.get(block_type) or {}
    if block_type == "child_page":
        return body.get("title", "")
    if block_type == "bookmark":
        return body.get("url", "")
    return rich_text_plain(body.get("rich_text", []))


class Block(BaseModel):
    """One node in the linearized block list."""

    id: str = Field(..., description="Workspace block id")
    type: str = Field(..., description="Workspace block type")
    heading_level: Optional[int] = Field(default=None, ge=1, le=3)
    text_content: str = Field(default="")
    start_index: int = Field(..., ge=0)
    has_children: bool = Field(default=False)

    model_config = {"frozen": True}

    @computed_field
    @property
    def end_index(self) -> int:
        return self.start_index + 1

    @property
    def is_heading(self) -> bool:
        return self.heading_level is not None


class Section(BaseModel):
    """
    A heading block plus the half-open range of content it owns.

    `start_index`/`end_index` cover the blocks between this heading and the
    next heading of any level, so sections never overlap. `extent_end_index`
    is where the heading's scope ends in outline terms: the next heading of
    equal or higher level (sub-sections included).
    """

    heading: Block
    start_index: int
    end_index: int
    extent_end_index: int

    model_config = {"frozen": True}

    @property
    def title(self) -> str:
        return self.heading.text_content

    @property
    def level(self) -> int:
        return self.heading.heading_level or 1


class DocumentStructure(BaseModel):
    """Ordered blocks of one page and the sections derived from them."""

    page_id: str
    title: str = ""
    blocks: list[Block] = Field(default_factory=list)

    model_config = {"frozen": True}

    @classmethod
    def from_notion_blocks(
        cls, page_id: str, raw_blocks: list[dict[str, Any]], title: str = ""
    ) -> "DocumentStructure":
        """
        Build a structure from the raw children list returned by the workspace API.

        Args:
            page_id: Id of the page the blocks belong to
            raw_blocks: Ordered top-level block dicts
            title: Page title, used in messages

        Returns:
            DocumentStructure with linearized blocks
        """
        blocks = []
        for index, raw in enumerate(raw_blocks):
            block_type = raw.get("type", "unsupported")
            blocks.append(
                Block(
                    id=raw.get("id", f"block-{index}"),
                    type=block_type,
                    heading_level=HEADING_TYPES.get(block_type),
                    text_content=block_plain_text(raw),
                    start_index=index,
                    has_children=bool(raw.get("has_children", False)),
                )
            )
        return cls(page_id=page_id, title=title, blocks=blocks)

    @property
    def leading_end_index(self) -> int:
        """End of the ungrouped content that precedes the first heading."""
        for block in self.blocks:
            if block.is_heading:
                return block.start_index
        return len(self.blocks)

    @property
    def sections(self) -> list[Section]:
        headings = [b for b in self.blocks if b.is_heading]
        total = len(self.blocks)
        sections = []
        for position, heading in enumerate(headings):
            next_any = headings[position + 1].start_index if position + 1 < len(headings) else total
            extent_end = total
            for later in headings[position + 1:]:
                if (later.heading_level or 1) <= (heading.heading_level or 1):
                    extent_end = later.start_index
                    break
            sections.append(
                Section(
                    heading=heading,
                    start_index=heading.start_index + 1,
                    end_index=next_any,
                    extent_end_index=extent_end,
                )
            )
        return sections

    def block_at(self, index: int) -> Optional[Block]:
        if 0 <= index < len(self.blocks):
            return self.blocks[index]
        return None

    @property
    def heading_titles(self) -> list[str]:
        return [b.text_content for b in self.blocks if b.is_heading]

    def render_text(self) -> str:
        """Plain-text rendering used by the read action."""
        lines = []
        for block in self.blocks:
            text = block.text_content
            if block.is_heading:
                lines.append("#" * (block.heading_level or 1) + " " + text)
            elif block.type == "to_do":
                lines.append(f"[ ] {text}")
            elif block.type in ("bulleted_list_item", "numbered_list_item"):
                lines.append(f"- {text}")
            elif text:
                lines.append(text)
        return "\n".join(lines)
