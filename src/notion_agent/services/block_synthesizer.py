"""Map a semantic content shape plus raw text to Notion block dicts.

Every function in this module is pure and total: any string, including the
empty string, produces a valid block.
"""

import re
from typing import Any, Optional

from notion_agent.models.command import Command, normalize_format_type


# Notion rejects rich_text items whose content exceeds this length
RICH_TEXT_LIMIT = 2000

DEFAULT_CALLOUT_ICON = "💡"

PLAIN_TEXT_LANGUAGE = "plain text"

LANGUAGE_ALIASES = {
    "js": "javascript",
    "javascript": "javascript",
    "jsx": "javascript",
    "node": "javascript",
    "ts": "typescript",
    "typescript": "typescript",
    "tsx": "typescript",
    "py": "python",
    "python": "python",
    "python3": "python",
    "html": "html",
    "css": "css",
    "sass": "sass",
    "scss": "scss",
    "bash": "bash",
    "sh": "shell",
    "shell": "shell",
    "zsh": "shell",
    "console": "shell",
    "powershell": "powershell",
    "ps1": "powershell",
    "java": "java",
    "c": "c",
    "cpp": "c++",
    "c++": "c++",
    "csharp": "c#",
    "c#": "c#",
    "cs": "c#",
    "go": "go",
    "golang": "go",
    "ruby": "ruby",
    "rb": "ruby",
    "rust": "rust",
    "rs": "rust",
    "php": "php",
    "swift": "swift",
    "kotlin": "kotlin",
    "kt": "kotlin",
    "scala": "scala",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "xml": "xml",
    "sql": "sql",
    "markdown": "markdown",
    "md": "markdown",
    "text": PLAIN_TEXT_LANGUAGE,
    "txt": PLAIN_TEXT_LANGUAGE,
    "plain": PLAIN_TEXT_LANGUAGE,
    "plaintext": PLAIN_TEXT_LANGUAGE,
}

FENCE_PATTERN = re.compile(r"```([\w+#.-]*)[ \t]*\n?(.*?)```", re.DOTALL)

LIST_MARKER_PATTERN = re.compile(
    r"^\s*(?:(?P<todo>[-*]?\s*\[(?P<check>[ xX]?)\])|(?P<bullet>[-*•])|(?P<number>\d+[.)]))\s+(?P<text>.*)$"
)

# Ordered: first matching heuristic decides the language
LANGUAGE_HEURISTICS: list[tuple[str, re.Pattern]] = [
    ("typescript", re.compile(r"\binterface\s+\w+\s*\{|:\s*(?:string|number|boolean|any)\b")),
    ("python", re.compile(r"^\s*(?:def|class)\s+\w+.*:\s*$|^\s*(?:from\s+[\w.]+\s+)?import\s+[\w.]+|\bprint\(", re.MULTILINE)),
    ("javascript", re.compile(r"\bfunction\s+\w*\s*\(|\b(?:const|let|var)\s+\w+\s*=|console\.log|=>\s*\{")),
    ("html", re.compile(r"<!DOCTYPE|<(?:html|body|div|span|p)\b", re.IGNORECASE)),
    ("java", re.compile(r"public\s+(?:static\s+)?(?:class|void)\b|System\.out\.println")),
    ("c#", re.compile(r"using\s+System|Console\.WriteLine|namespace\s+[\w.]+")),
    ("c++", re.compile(r"#include\s*[<\"]|\bint\s+main\s*\(|std::")),
    ("sql", re.compile(r"\b(?:SELECT\s+.+\s+FROM|INSERT\s+INTO|CREATE\s+TABLE|UPDATE\s+\w+\s+SET|DELETE\s+FROM)\b", re.IGNORECASE | re.DOTALL)),
    ("json", re.compile(r"^\s*[\[{]\s*\"[^\"]+\"\s*:", re.DOTALL)),
    ("shell", re.compile(r"^\s*(?:\$\s|#!/bin/(?:ba)?sh)|^\s*(?:sudo|cd|ls|mkdir|rm|cp|mv|echo|pip|npm|git)\s", re.MULTILINE)),
    ("css", re.compile(r"[\w.#-]+\s*\{[^}]*:[^}]*;[^}]*\}", re.DOTALL)),
]


def rich_text(content: str) -> list[dict[str, Any]]:
    """
    Build a rich_text array, splitting content into chunks Notion accepts.

    Empty content yields an empty array.
    """
    if not content:
        return []
    return [
        {"type": "text", "text": {"content": content[i:i + RICH_TEXT_LIMIT]}}
        for i in range(0, len(content), RICH_TEXT_LIMIT)
    ]


def _text_block(block_type: str, content: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"rich_text": rich_text(content)}
    body.update(extra)
    return {"object": "block", "type": block_type, block_type: body}


def resolve_language(tag: Optional[str]) -> Optional[str]:
    """Map a fence tag or user-supplied language name to a Notion language code."""
    if not tag:
        return None
    key = tag.strip().lower()
    if not key:
        return None
    return LANGUAGE_ALIASES.get(key, key)


def detect_language(code: str) -> str:
    """Best-effort language guess from code content."""
    for language, pattern in LANGUAGE_HEURISTICS:
        if pattern.search(code):
            return language
    return PLAIN_TEXT_LANGUAGE


def extract_code(content: str) -> tuple[str, Optional[str]]:
    """
    Strip a fenced code block down to its body.

    Returns:
        (code body, language from the fence tag or None)
    """
    match = FENCE_PATTERN.search(content)
    if match:
        body = match.group(2).strip("\n")
        return body, resolve_language(match.group(1))
    return content.replace("```", "").strip(), None


def code_block(content: str, language: Optional[str] = None) -> dict[str, Any]:
    body, fence_language = extract_code(content)
    chosen = resolve_language(language) or fence_language or detect_language(body)
    return _text_block("code", body, language=chosen)


def list_item_block(line: str) -> dict[str, Any]:
    """Turn one line with an optional list marker into a block."""
    match = LIST_MARKER_PATTERN.match(line)
    if not match:
        return _text_block("paragraph", line.strip())
    text = match.group("text").strip()
    if match.group("todo") is not None:
        return _text_block("to_do", text, checked=match.group("check") in ("x", "X"))
    if match.group("number") is not None:
        return _text_block("numbered_list_item", text)
    return _text_block("bulleted_list_item", text)


def toggle_block(content: str, title: Optional[str] = None) -> dict[str, Any]:
    """
    Build a toggle whose children come from list markers in the body.

    Without an explicit title, the first line is the title and the remaining
    lines are children. With a title and a single-line body, the body is
    treated as a comma-separated checklist.
    """
    if title is None:
        lines = content.split("\n", 1)
        title = lines[0].strip()
        body = lines[1] if len(lines) > 1 else ""
    else:
        body = content

    children = []
    if "\n" in body:
        children = [list_item_block(line) for line in body.splitlines() if line.strip()]
    elif body.strip():
        items = [item.strip() for item in body.split(",") if item.strip()]
        if len(items) > 1 or LIST_MARKER_PATTERN.match(body):
            children = [
                list_item_block(item) if LIST_MARKER_PATTERN.match(item)
                else _text_block("to_do", item, checked=False)
                for item in items
            ]
        else:
            children = [_text_block("paragraph", body.strip())]

    block = _text_block("toggle", title)
    if children:
        block["toggle"]["children"] = children
    return block


def synthesize(
    content: str,
    format_type: Optional[str] = None,
    code_language: Optional[str] = None,
    toggle_title: Optional[str] = None,
) -> dict[str, Any]:
    """
    Build one Notion block.

    Args:
        content: Raw text (may be empty)
        format_type: Canonical or alias format name; unknown maps to paragraph
        code_language: Explicit language for code blocks
        toggle_title: Explicit title for toggle blocks

    Returns:
        Notion block dict ready for the append-children endpoint
    """
    content = content or ""
    kind = normalize_format_type(format_type)

    if kind == "to_do":
        return _text_block("to_do", content, checked=False)
    if kind == "callout":
        return _text_block("callout", content, icon={"type": "emoji", "emoji": DEFAULT_CALLOUT_ICON})
    if kind == "toggle":
        return toggle_block(content, toggle_title)
    if kind == "code":
        return code_block(content, code_language)
    if kind in ("heading_1", "heading_2", "heading_3"):
        return _text_block(kind, content.strip())
    if kind in ("bulleted_list_item", "numbered_list_item", "quote"):
        return _text_block(kind, content)
    return _text_block("paragraph", content)


def split_items(content: str) -> list[str]:
    """Split list content on newlines, or on commas for single-line content."""
    if "\n" in content:
        parts = content.splitlines()
    else:
        parts = content.split(",")
    items = []
    for part in parts:
        match = LIST_MARKER_PATTERN.match(part)
        text = match.group("text") if match else part
        text = text.strip()
        if text:
            items.append(text)
    return items


def synthesize_blocks(
    content: str,
    format_type: Optional[str] = None,
    code_language: Optional[str] = None,
    toggle_title: Optional[str] = None,
) -> list[dict[str, Any]]:
    """
    Build the block list for one piece of content.

    Checklist and list formats expand comma- or newline-separated content
    into one block per item. Other formats produce a single block.
    """
    kind = normalize_format_type(format_type)
    if kind in ("to_do", "bulleted_list_item", "numbered_list_item"):
        items = split_items(content or "")
        if len(items) > 1:
            return [synthesize(item, kind) for item in items]
    return [synthesize(content, kind, code_language, toggle_title)]


def synthesize_url(url: str, comment: Optional[str] = None) -> list[dict[str, Any]]:
    """A bookmark block, followed by a paragraph holding the comment if given."""
    blocks: list[dict[str, Any]] = [
        {"object": "block", "type": "bookmark", "bookmark": {"url": url.strip()}}
    ]
    if comment and comment.strip():
        blocks.append(_text_block("paragraph", comment.strip()))
    return blocks


def blocks_for_command(command: Command) -> list[dict[str, Any]]:
    """Blocks that a write/append command should place."""
    if command.is_url:
        return synthesize_url(command.content, command.comment_text)
    return synthesize_blocks(
        command.content,
        command.format_type,
        command.code_language,
        command.toggle_title,
    )
