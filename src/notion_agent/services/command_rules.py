"""Deterministic rule battery for the pattern-based parser tier.

Each rule pairs a cheap predicate with an extractor. The extractor either
fully resolves the instruction into commands or returns None to decline.
Rules are evaluated in order, most specific first, and the first rule that
resolves wins. Every function here is pure so rules can be tested alone.

The helpers `extract_location`, `extract_format` and `parse_clause` are
shared with the multi-command splitter, which re-runs them on the text spans
of compound instructions.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from notion_agent.models.command import Action, Command, PlacementType, normalize_format_type


FORMAT_WORDS = (
    r"check\s?list(?:\s+items?)?"
    r"|to-?\s?do(?:\s+list)?(?:\s+items?)?|todos?"
    r"|tasks?"
    r"|bullet(?:ed)?(?:\s+(?:points?|list|items?))*|bullets"
    r"|numbered(?:\s+list)?(?:\s+items?)?"
    r"|block\s?quote|quotation|quote"
    r"|call\s?out|note"
    r"|toggle(?:\s+list)?|dropdown"
    r"|sub-?heading|heading(?:\s*[123])?|header|title|h[123]"
    r"|code(?:\s+(?:block|snippet))?|snippet"
    r"|paragraph|plain\s+text|text"
)

# Formats that may follow "in" ("add milk in checklist"); page names rarely collide with these
IN_FORMAT_WORDS = (
    r"check\s?list|to-?\s?do\s+list|todo\s+list|bullet(?:ed)?\s+list|bullets|numbered\s+list|toggle"
)

AS_FORMAT = re.compile(
    r"\s*\b(?:as|in\s+the\s+form\s+of)\s+(?:a\s+|an\s+|the\s+)?(?P<fmt>" + FORMAT_WORDS + r")\b(?:\s+(?:format|block|item))?",
    re.IGNORECASE,
)

IN_FORMAT = re.compile(
    r"\s*\b(?:in|into|on)\s+(?:a\s+|the\s+|my\s+)?(?P<fmt>" + IN_FORMAT_WORDS + r")\b",
    re.IGNORECASE,
)

LEAD_FORMAT = re.compile(
    r"^(?P<article>(?:a|an|the|new)\s+)?(?P<fmt>" + FORMAT_WORDS + r")\b\s*(?P<joiner>:|saying|that\s+says|which\s+says|with|called|named|titled|of)?\s*",
    re.IGNORECASE,
)

UNAMBIGUOUS_LEAD = re.compile(
    r"^(?:check\s?list|to-?\s?do|todo|bullet|numbered|callout|call\s?out|toggle|heading|sub-?heading|h[123]|quote|block\s?quote)",
    re.IGNORECASE,
)

# A run of name characters that never crosses a preposition
NAME_NO_PREP = r"(?:(?!\b(?:in|under|below|beneath|after|within|inside|to|into|of)\b)[^,.;:\"])+?"

SECTION_QUALIFIER = re.compile(
    r"\s*\b(?P<prep>in|into|to|under|below|beneath|after|within|inside)\s+(?:the\s+|my\s+)?"
    r"[\"']?(?P<section>" + NAME_NO_PREP + r")[\"']?\s+(?:section|heading|header|part|area)\b"
    r"(?:\s+(?P<tail>of|in|on|from)\b)?",
    re.IGNORECASE,
)

NESTED_PAGE = re.compile(
    r"\s*\b(?:in|to|into|on)\s+(?:the\s+|my\s+)?(?P<section>" + NAME_NO_PREP + r")\s+page\s+"
    r"(?:in|of|inside|within|under)\s+(?:the\s+|my\s+)?(?P<page>[^,.;:\"]+?)(?:\s+page)?\s*[.!?]*$",
    re.IGNORECASE,
)

# Greedy body: the last connective names the page
TRAILING_PAGE = re.compile(
    r"^(?P<body>.*)(?:,\s*|\s+)(?:in|to|into|inside)\s+(?:the\s+|my\s+)?"
    r"[\"']?(?P<page>[^,.;:!?\"]+?)[\"']?(?:\s+page)?(?:\s+(?:too|as\s+well))?\s*[.!?]*$",
    re.IGNORECASE | re.DOTALL,
)

WRITE_VERB = re.compile(
    r"^(?P<verb>add|write|put|append|insert|jot\s+down|note\s+down|log|save|type|include|place|drop)\b\s*(?:down\s+)?",
    re.IGNORECASE,
)

LEADING_FILLER = re.compile(
    r"^(?:(?:and|then|also|plus|next|finally|after\s+that|please|,)\s*)+",
    re.IGNORECASE,
)

TRAILING_FILLER = re.compile(r"(?:\s+(?:too|as\s+well|also|please))+\s*[.!?]*$", re.IGNORECASE)

QUOTED = re.compile(r"[\"“”]([^\"“”]+)[\"“”]|(?<![\w])'([^']+)'(?![\w])")

EMPTY_QUOTES = re.compile(r"(?<![\w\"“”'])(?:\"\"|“”|'')(?![\w\"“”'])")

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)

CONVERSATIONAL_PREFIX = re.compile(
    r"^(?:(?:hey|hi|ok(?:ay)?|so)\s*,?\s+)?"
    r"(?:(?:can|could|would|will)\s+you\s+(?:please\s+|kindly\s+)?|please\s+|kindly\s+|"
    r"i\s+(?:want|need|would\s+like)\s+(?:you\s+)?to\s+|i'd\s+like\s+(?:you\s+)?to\s+|"
    r"in\s+notion\s*,?\s+)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Location:
    """Destination phrases pulled out of a clause."""

    page: Optional[str] = None
    section: Optional[str] = None
    placement: PlacementType = PlacementType.IN


def clean(text: str) -> str:
    """Collapse whitespace and strip surrounding punctuation and quotes."""
    text = " ".join(text.split())
    return text.strip(" \t\n,;:.!?\"“”'")


def canonical_format(phrase: str) -> str:
    """Canonical block type for a matched format phrase."""
    key = " ".join(phrase.lower().replace("-", " ").split())
    result = normalize_format_type(key)
    while result == "paragraph" and key not in ("paragraph", "text", "plain text"):
        trimmed = re.sub(r"\s+(?:items?|points?|list|block|snippet)$", "", key)
        if trimmed == key:
            break
        key = trimmed
        result = normalize_format_type(key)
    return result


def extract_location(text: str) -> tuple[str, Location]:
    """
    Remove section and page phrases from a clause.

    Handles `in/under/below the X section`, `X page in Y page` nesting, and a
    trailing `in/to Y [page]` destination.

    Returns:
        (remaining text, Location)
    """
    section = None
    placement = PlacementType.IN
    page = None

    match = SECTION_QUALIFIER.search(text)
    if match:
        section = clean(match.group("section"))
        if match.group("prep").lower() in ("below", "beneath", "after"):
            placement = PlacementType.BELOW
        before = text[:match.start()]
        after = text[match.end():]
        # "in the Groceries section of Shopping List": what follows names the page
        if match.group("tail") and after.strip() and re.match(r"^\s*[^,.;]", after):
            page = clean(re.sub(r"^(?:the|my)\s+", "", after.strip(), flags=re.IGNORECASE))
            page = re.sub(r"\s+page$", "", page, flags=re.IGNORECASE)
            text = before
        else:
            text = before + " " + after

    if page is None:
        match = NESTED_PAGE.search(text)
        if match and section is None:
            section = clean(match.group("section"))
            page = clean(match.group("page"))
            text = text[:match.start()]

    if page is None:
        match = TRAILING_PAGE.match(" " + text.strip())
        if match and clean(match.group("page")):
            candidate = clean(match.group("page"))
            if not _looks_like_format(candidate):
                page = candidate
                text = match.group("body")

    return clean(text), Location(page=page, section=section, placement=placement)


def _looks_like_format(phrase: str) -> bool:
    return re.fullmatch(r"(?:a\s+|an\s+|the\s+)?(?:" + FORMAT_WORDS + r")", phrase.strip(), re.IGNORECASE) is not None


def extract_format(text: str) -> tuple[str, Optional[str]]:
    """
    Remove a format marker from a clause.

    Recognizes `as a F`, `in checklist`, and a leading format noun such as
    `a quote: ...` or `checklist item ...`.

    Returns:
        (remaining text, canonical format or None when no marker was found)
    """
    match = AS_FORMAT.search(text)
    if match:
        remaining = text[:match.start()] + text[match.end():]
        return clean(remaining), canonical_format(match.group("fmt"))

    match = IN_FORMAT.search(text)
    if match:
        remaining = text[:match.start()] + text[match.end():]
        return clean(remaining), canonical_format(match.group("fmt"))

    stripped = text.strip()
    match = LEAD_FORMAT.match(stripped)
    if match and stripped[match.end():].strip():
        if match.group("article") or match.group("joiner") or UNAMBIGUOUS_LEAD.match(match.group("fmt")):
            return clean(stripped[match.end():]), canonical_format(match.group("fmt"))

    return clean(text), None


def strip_content(text: str) -> str:
    """Drop filler words and a leading "this"/"that" pointer from content."""
    text = LEADING_FILLER.sub("", text.strip())
    text = TRAILING_FILLER.sub("", text)
    text = re.sub(r"^(?:this|that|these|it)\s*:\s*", "", text, flags=re.IGNORECASE)
    return clean(text)


def split_list_items(text: str) -> list[str]:
    """Split "a, b and c" into its items."""
    parts = re.split(r"\s*,\s*(?:and\s+)?|\s+and\s+", text.strip())
    return [clean(p) for p in parts if clean(p)]


def parse_clause(
    text: str,
    default_target: str,
    format_hint: Optional[str] = None,
    action: Action = Action.WRITE,
) -> Optional[Command]:
    """
    Parse one write-style clause into a Command.

    Args:
        text: One clause such as "add eggs as checklist in Shopping List"
        default_target: Page used when the clause names none
        format_hint: Format to use when the clause carries no marker
        action: Action to assign when no verb overrides it

    Returns:
        Command, or None when the clause has no content. An explicit empty
        quote ("") is empty content, not missing content.
    """
    body = LEADING_FILLER.sub("", text.strip())
    verb = WRITE_VERB.match(body)
    if verb:
        if verb.group("verb").lower() == "append":
            action = Action.APPEND
        body = body[verb.end():]

    # Pull a colon-introduced payload out first so markers inside it survive
    payload = None
    colon = re.match(r"^(?P<head>[^:]*?)\s*:\s*(?P<payload>.+)$", body, re.DOTALL)
    if colon and not URL_PATTERN.search(colon.group("head") + ":"):
        head, payload = colon.group("head"), colon.group("payload")
        payload, location = extract_location(payload)
        head, fmt = extract_format(head)
        if location.page is None:
            head, location = extract_location(head)
    else:
        body, fmt = extract_format(body)
        body, location = extract_location(body)
        if fmt is None:
            body, fmt = extract_format(body)

    content = strip_content(payload if payload is not None else body)
    quoted = QUOTED.search(content)
    if quoted and clean(quoted.group(1) or quoted.group(2) or "") == clean(content):
        content = clean(quoted.group(1) or quoted.group(2))
    if not content and not EMPTY_QUOTES.search(text):
        return None

    return Command(
        action=action,
        primary_target=location.page or default_target,
        content=content,
        format_type=fmt or format_hint or "paragraph",
        section_target=location.section,
        placement_type=location.placement,
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

Extractor = Callable[[str, str], Optional[list[Command]]]


@dataclass(frozen=True)
class Rule:
    """A named predicate+extractor pair."""

    name: str
    predicate: Callable[[str], bool]
    extract: Extractor

    def apply(self, text: str, default_target: str) -> Optional[list[Command]]:
        if not self.predicate(text):
            return None
        commands = self.extract(text, default_target)
        if not commands:
            return None
        return commands


FENCE = re.compile(r"```([\w+#.-]*)[ \t]*\n?(.*?)```", re.DOTALL)


def _code_fence(text: str, default_target: str) -> Optional[list[Command]]:
    match = FENCE.search(text)
    if not match:
        return None
    outside = text[:match.start()] + " " + text[match.end():]
    outside = re.sub(r"\b(?:(?:this|the|following)\s+)?(?:as\s+)?(?:a\s+)?code(?:\s+(?:block|snippet))?\b", " ", outside, flags=re.IGNORECASE)
    outside = WRITE_VERB.sub("", LEADING_FILLER.sub("", outside.strip()))
    _, location = extract_location(outside.rstrip(" :\n"))
    language = match.group(1) or None
    return [Command(
        action=Action.WRITE,
        primary_target=location.page or default_target,
        content=match.group(2).strip("\n"),
        format_type="code",
        code_language=language.lower() if language else None,
        section_target=location.section,
        placement_type=location.placement,
    )]


COMPLEX_TOGGLE = re.compile(
    r"toggle\s+(?:list\s+)?(?:called|named|titled)\s+[\"']?(?P<title>[^\"':,]+?)[\"']?\s*"
    r"(?:with|containing|that\s+contains|and\s+inside|:)\s*(?:(?:the\s+)?(?:items?|to-?dos?|bullets?)\s*:?\s*)?(?P<body>.+)$",
    re.IGNORECASE | re.DOTALL,
)


def _complex_toggle(text: str, default_target: str) -> Optional[list[Command]]:
    match = COMPLEX_TOGGLE.search(text)
    if not match:
        return None
    body = match.group("body")
    location = Location()
    if "\n" in body:
        lines = body.split("\n")
        body = "\n".join(lines[1:]) if not lines[0].strip() else body
    else:
        body, location = extract_location(body)
    _, head_location = extract_location(text[:match.start()].strip())
    title, title_location = extract_location(match.group("title"))
    page = location.page or title_location.page or head_location.page
    return [Command(
        action=Action.WRITE,
        primary_target=page or default_target,
        content=body.strip(),
        format_type="toggle",
        toggle_title=title,
        section_target=location.section or title_location.section or head_location.section,
        placement_type=location.placement,
    )]


CHECKLIST_PAIR = re.compile(
    r"^(?:add|put|write|insert)\s+(?P<first>.+?)\s+(?:in|to|as|on)\s+(?:a\s+|the\s+|my\s+)?check\s?list\s+"
    r"and\s+(?:add\s+)?(?P<second>.+?)\s+(?:in|to|as|on)\s+(?:a\s+|the\s+|my\s+)?check\s?list"
    r"(?:\s+too|\s+as\s+well|\s+also)?(?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL,
)


def _checklist_pair(text: str, default_target: str) -> Optional[list[Command]]:
    match = CHECKLIST_PAIR.match(text.strip())
    if not match:
        return None
    _, location = extract_location(match.group("rest").strip())
    commands = []
    for index, item in enumerate((match.group("first"), match.group("second"))):
        content = strip_content(item)
        if not content:
            return None
        commands.append(Command(
            action=Action.WRITE,
            primary_target=location.page or default_target,
            content=content,
            format_type="to_do",
            section_target=location.section,
            placement_type=location.placement,
            is_multi_action=index > 0,
        ))
    return commands


COMMA_CHECKLIST = re.compile(
    r"^(?:add|put|write|insert)\s+(?P<items>[^:]+?,[^:]+?)\s+(?:in|to|as|on|into)\s+(?:a\s+|the\s+|my\s+)?"
    r"(?:check\s?list|to-?\s?do\s+list|todo\s+list|to-?\s?dos?)(?:\s+items?)?(?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL,
)


def _comma_checklist(text: str, default_target: str) -> Optional[list[Command]]:
    match = COMMA_CHECKLIST.match(text.strip())
    if not match:
        return None
    items = split_list_items(match.group("items"))
    if len(items) < 2:
        return None
    _, location = extract_location(match.group("rest").strip())
    return [
        Command(
            action=Action.WRITE,
            primary_target=location.page or default_target,
            content=item,
            format_type="to_do",
            section_target=location.section,
            placement_type=location.placement,
            is_multi_action=index > 0,
        )
        for index, item in enumerate(items)
    ]


CREATE_THEN_ADD = re.compile(
    r"^(?:create|make|start)\s+(?:a\s+|an\s+)?(?:new\s+)?(?:sub-?)?page\s+(?:called|named|titled)?\s*"
    r"[\"']?(?P<title>[^\"',]+?)[\"']?"
    r"(?:\s+(?:in|under|inside|within)\s+(?:the\s+|my\s+)?(?P<parent>[^,\"]+?)(?:\s+page)?)?"
    r"\s*(?:,\s*)?(?:\s+and(?:\s+then)?|\s+then|,)\s+(?P<rest>(?:add|write|put|append|insert|include)\b.+)$",
    re.IGNORECASE | re.DOTALL,
)


def _create_then_add(text: str, default_target: str) -> Optional[list[Command]]:
    match = CREATE_THEN_ADD.match(text.strip())
    if not match:
        return None
    title = clean(match.group("title"))
    if not title:
        return None
    parent = clean(match.group("parent")) if match.group("parent") else None
    commands = [Command(action=Action.CREATE, primary_target=title, secondary_target=parent)]
    follow = run_rules(match.group("rest"), title)
    if not follow:
        return None
    for command in follow[1]:
        commands.append(command.model_copy(update={"is_multi_action": True}))
    return commands


NESTED_CREATE = re.compile(
    r"^(?:create|make|start|add)\s+(?:a\s+|an\s+)?(?:new\s+)?(?:sub-?)?page\s+"
    r"(?:(?:called|named|titled)\s+[\"']?(?P<title>[^\"']+?)[\"']?"
    r"(?:\s+(?:in|under|inside|within)\s+(?:the\s+|my\s+)?[\"']?(?P<parent>[^\"']+?)[\"']?(?:\s+page)?)?"
    r"|(?:in|under|inside|within)\s+(?:the\s+|my\s+)?[\"']?(?P<parent2>[^\"']+?)[\"']?(?:\s+page)?\s+"
    r"(?:called|named|titled)\s+[\"']?(?P<title2>[^\"']+?)[\"']?)"
    r"\s*[.!]?$",
    re.IGNORECASE,
)

PLAIN_CREATE = re.compile(
    r"^(?:create|make|start)\s+(?:a\s+|an\s+)?(?:new\s+)?page\s+(?:for\s+)?(?!(?:called|named|titled)\s*[.!]?$)[\"']?(?P<title>[^\"']+?)[\"']?\s*[.!]?$",
    re.IGNORECASE,
)


def _nested_create(text: str, default_target: str) -> Optional[list[Command]]:
    # Only the first action is read here; conjoined ones are left to the splitter
    segments = verb_segments(text)
    stripped = segments[0] if segments else text.strip()
    match = NESTED_CREATE.match(stripped)
    if match:
        title = clean(match.group("title") or match.group("title2") or "")
        parent_raw = match.group("parent") or match.group("parent2")
        parent = clean(parent_raw) if parent_raw else None
        if title:
            return [Command(action=Action.CREATE, primary_target=title, secondary_target=parent)]
    match = PLAIN_CREATE.match(stripped)
    if match and clean(match.group("title")):
        return [Command(action=Action.CREATE, primary_target=clean(match.group("title")))]
    return None


CLAUSE_SPLIT = re.compile(r"\s*(?:,\s*)?\b(?:and\s+then|and|then)\b\s+|\s*;\s*", re.IGNORECASE)


def format_marker_count(text: str) -> int:
    """How many `as <format>` markers an instruction carries."""
    return len(AS_FORMAT.findall(text))


def format_segments(text: str) -> list[str]:
    """
    Split an instruction at connectives so each segment carries one format marker.

    Pieces without a marker are glued to the piece before them, so content
    that itself contains "and" stays whole.
    """
    pieces = CLAUSE_SPLIT.split(text)
    segments: list[str] = []
    for piece in pieces:
        if not piece or not piece.strip():
            continue
        if segments and (AS_FORMAT.search(piece) is None or AS_FORMAT.search(segments[-1]) is None):
            segments[-1] = segments[-1] + " and " + piece
        else:
            segments.append(piece)
    return segments


def _repeated_format(text: str, default_target: str) -> Optional[list[Command]]:
    if format_marker_count(text) < 2:
        return None
    segments = format_segments(text)
    if len(segments) < 2:
        return None

    # A trailing destination applies to every segment that names none
    _, tail_location = extract_location(segments[-1])
    shared_page = tail_location.page or default_target

    commands = []
    for index, segment in enumerate(segments):
        command = parse_clause(segment, shared_page)
        if command is None:
            return None
        if command.section_target is None and tail_location.section:
            command = command.model_copy(update={
                "section_target": tail_location.section,
                "placement_type": tail_location.placement,
            })
        commands.append(command.model_copy(update={"is_multi_action": index > 0}))
    return commands


ACTION_VERBS = r"add|write|put|append|insert|create|make|delete|remove|move|edit|change|update|replace|read|show"

VERB_CONJUNCTION = re.compile(
    r"\s*(?:,\s*)?\b(?:and\s+then|and\s+also|and|then|also)\s+(?=(?:" + ACTION_VERBS + r")\b)"
    r"|\s*[,;]\s*(?=(?:" + ACTION_VERBS + r")\b)"
    r"|\s*\.\s+(?=(?:then\s+|also\s+|finally\s+)?(?:" + ACTION_VERBS + r")\b)",
    re.IGNORECASE,
)


def verb_segments(text: str) -> list[str]:
    """Split an instruction before every conjunction that introduces a new action verb."""
    return [LEADING_FILLER.sub("", p.strip()) for p in VERB_CONJUNCTION.split(text.strip()) if p and p.strip()]


def _conjoined_actions(text: str, default_target: str) -> Optional[list[Command]]:
    segments = verb_segments(text)
    if len(segments) < 2:
        return None

    parsed: list[list[Command]] = []
    for segment in segments:
        result = run_rules(segment, "")
        if result is None:
            return None
        parsed.append(result[1])

    # A segment without a destination reuses the previous one, else the next one named
    commands: list[Command] = []
    for index, group in enumerate(parsed):
        for command in group:
            if not command.primary_target:
                following = [c.primary_target for g in parsed[index + 1:] for c in g if c.primary_target]
                if commands:
                    target = commands[-1].primary_target
                elif following:
                    target = following[0]
                else:
                    target = default_target
                command = command.model_copy(update={"primary_target": target})
            commands.append(command.model_copy(update={"is_multi_action": bool(commands)}))
    return commands


URL_COMMENT = re.compile(
    r"[,.]?\s*\b(?:with|and)\s+(?:a\s+|the\s+)?(?:note|comment|description)\s*(?:saying|that\s+says|:|-)?\s*(?P<comment>.+?)\s*$",
    re.IGNORECASE | re.DOTALL,
)

URL_CHECKLIST = re.compile(
    r"[,.]?\s*\b(?:with|and)\s+(?:a\s+)?(?:check\s?list|to-?\s?do)(?:\s+item)?\s*(?:to\s+|:\s*)?(?P<todo>.+?)\s*$",
    re.IGNORECASE | re.DOTALL,
)


def _url_comment(text: str, default_target: str) -> Optional[list[Command]]:
    url_match = URL_PATTERN.search(text)
    if not url_match:
        return None
    url = url_match.group(0).rstrip(".,;)")
    rest = (text[:url_match.start()] + " " + text[url_match.end():]).strip()

    comment = None
    todo = None
    match = URL_COMMENT.search(rest)
    if match:
        comment = clean(match.group("comment"))
        rest = rest[:match.start()]
    else:
        match = URL_CHECKLIST.search(rest)
        if match:
            todo = clean(match.group("todo"))
            rest = rest[:match.start()]

    rest = re.sub(r"\b(?:this|the|a)?\s*(?:url|link|bookmark|website|site)\b", " ", rest, flags=re.IGNORECASE)
    rest = re.sub(r"\bas\s*(?=\s|$)", " ", rest, flags=re.IGNORECASE)
    rest = WRITE_VERB.sub("", LEADING_FILLER.sub("", clean(rest)))
    _, location = extract_location(rest.strip(" :"))

    page = location.page or default_target
    commands = [Command(
        action=Action.WRITE,
        primary_target=page,
        content=url,
        is_url=True,
        comment_text=comment,
        section_target=location.section,
        placement_type=location.placement,
    )]
    if todo:
        commands.append(Command(
            action=Action.WRITE,
            primary_target=page,
            content=todo,
            format_type="to_do",
            is_multi_action=True,
        ))
    return commands


EDIT_QUOTED = re.compile(
    r"^(?:edit|change|update|replace|modify|rewrite)\s+(?:the\s+(?:text|line|block)\s+)?"
    r"[\"“'](?P<old>[^\"”']+)[\"”']\s+(?:to|with|into|by)\s+[\"“'](?P<new>[^\"”']+)[\"”'](?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL,
)

EDIT_REPLACE = re.compile(
    r"^replace\s+(?P<old>.+?)\s+with\s+(?P<new>.+?)\s+(?:in|on)\s+(?:the\s+|my\s+)?(?P<page>[^,.;]+?)(?:\s+page)?\s*[.!]?$",
    re.IGNORECASE,
)


def _edit(text: str, default_target: str) -> Optional[list[Command]]:
    stripped = text.strip()
    match = EDIT_QUOTED.match(stripped)
    if match:
        _, location = extract_location(match.group("rest").strip())
        old, new = clean(match.group("old")), clean(match.group("new"))
        return [Command(
            action=Action.EDIT,
            primary_target=location.page or default_target,
            old_content=old,
            new_content=new,
            content=new,
            section_target=location.section,
        )]
    match = EDIT_REPLACE.match(stripped)
    if match:
        old, new = clean(match.group("old")), clean(match.group("new"))
        return [Command(
            action=Action.EDIT,
            primary_target=clean(match.group("page")),
            old_content=old,
            new_content=new,
            content=new,
        )]
    return None


DELETE_FROM = re.compile(
    r"^(?:delete|remove|erase|cross\s+out|get\s+rid\s+of)\s+(?:the\s+(?:text|line|block|item)\s+)?"
    r"[\"“']?(?P<text>.+?)[\"”']?\s+from\s+(?P<rest>.+?)\s*[.!]?$",
    re.IGNORECASE | re.DOTALL,
)


def _delete(text: str, default_target: str) -> Optional[list[Command]]:
    match = DELETE_FROM.match(text.strip())
    if not match:
        return None
    target = clean(match.group("text"))
    if not target:
        return None
    rest = match.group("rest")
    _, location = extract_location("in " + rest)
    return [Command(
        action=Action.DELETE,
        primary_target=location.page or default_target,
        old_content=target,
        content=target,
        section_target=location.section,
    )]


MOVE_FROM_TO = re.compile(
    r"^move\s+[\"“']?(?P<text>.+?)[\"”']?\s+from\s+(?:the\s+|my\s+)?(?P<source>[^,]+?)(?:\s+page)?\s+"
    r"to\s+(?:the\s+|my\s+)?(?P<dest>[^,]+?)(?:\s+page)?\s*[.!]?$",
    re.IGNORECASE | re.DOTALL,
)


def _move(text: str, default_target: str) -> Optional[list[Command]]:
    match = MOVE_FROM_TO.match(text.strip())
    if not match:
        return None
    moved = clean(match.group("text"))
    if not moved:
        return None
    return [Command(
        action=Action.MOVE,
        primary_target=clean(match.group("source")),
        secondary_target=clean(match.group("dest")),
        old_content=moved,
        content=moved,
    )]


READ_PAGE = re.compile(
    r"^(?:read|show|open|display|view|print|list|fetch|get)\s+(?:me\s+)?(?:what(?:'s|\s+is)\s+(?:in|on)\s+)?"
    r"(?:the\s+|my\s+)?(?:contents?\s+of\s+(?:the\s+|my\s+)?)?[\"']?(?P<page>[^\"'?]+?)[\"']?(?:\s+page)?\s*[.?!]?$"
    r"|^what(?:'s|\s+is)\s+(?:in|on)\s+(?:the\s+|my\s+)?[\"']?(?P<page2>[^\"'?]+?)[\"']?(?:\s+page)?\s*[.?!]?$",
    re.IGNORECASE,
)


def _read(text: str, default_target: str) -> Optional[list[Command]]:
    match = READ_PAGE.match(text.strip())
    if not match:
        return None
    page = clean(match.group("page") or match.group("page2") or "")
    if not page:
        return None
    return [Command(action=Action.READ, primary_target=page)]


DEBUG_REQUEST = re.compile(r"^\s*(?:debug|status|diagnostics?|show\s+config(?:uration)?)\s*[.!?]?\s*$", re.IGNORECASE)


def _debug(text: str, default_target: str) -> Optional[list[Command]]:
    if DEBUG_REQUEST.match(text):
        return [Command(action=Action.DEBUG, primary_target=default_target)]
    return None


def _quoted_content(text: str, default_target: str) -> Optional[list[Command]]:
    stripped = text.strip()
    if not WRITE_VERB.match(stripped):
        return None
    match = QUOTED.search(stripped)
    if not match:
        return None
    content = clean(match.group(1) or match.group(2) or "")
    if not content:
        return None
    verb = WRITE_VERB.match(stripped)
    action = Action.APPEND if verb.group("verb").lower() == "append" else Action.WRITE
    rest = stripped[verb.end():match.start()] + " " + stripped[match.end():]
    rest, fmt = extract_format(rest)
    _, location = extract_location(rest)
    return [Command(
        action=action,
        primary_target=location.page or default_target,
        content=content,
        format_type=fmt or "paragraph",
        section_target=location.section,
        placement_type=location.placement,
    )]


def _single_clause(text: str, default_target: str) -> Optional[list[Command]]:
    command = parse_clause(text, default_target)
    return [command] if command else None


def _write_targeting(text: str, default_target: str) -> Optional[list[Command]]:
    if not WRITE_VERB.match(text.strip()):
        return None
    return _single_clause(text, default_target)


def _conversational(text: str, default_target: str) -> Optional[list[Command]]:
    stripped = text.strip()
    match = CONVERSATIONAL_PREFIX.match(stripped)
    if not match:
        return None
    remainder = stripped[match.end():].rstrip("?").strip()
    if not remainder:
        return None
    result = run_rules(remainder, default_target)
    return result[1] if result else None


RULES: list[Rule] = [
    Rule("code_fence", lambda t: "```" in t, _code_fence),
    Rule("complex_toggle", lambda t: re.search(r"\btoggle\b", t, re.IGNORECASE) is not None, _complex_toggle),
    Rule("checklist_pair", lambda t: len(re.findall(r"check\s?list", t, re.IGNORECASE)) >= 2, _checklist_pair),
    Rule("comma_checklist", lambda t: "," in t, _comma_checklist),
    Rule("create_then_add", lambda t: re.match(r"^\s*(?:create|make|start)\b", t, re.IGNORECASE) is not None, _create_then_add),
    Rule("nested_create", lambda t: re.search(r"\bpage\b", t, re.IGNORECASE) is not None, _nested_create),
    Rule("repeated_format", lambda t: format_marker_count(t) >= 2, _repeated_format),
    Rule("url_comment", lambda t: URL_PATTERN.search(t) is not None, _url_comment),
    Rule("conjoined_actions", lambda t: len(verb_segments(t)) >= 2, _conjoined_actions),
    Rule("edit", lambda t: re.match(r"^\s*(?:edit|change|update|replace|modify|rewrite)\b", t, re.IGNORECASE) is not None, _edit),
    Rule("delete", lambda t: re.match(r"^\s*(?:delete|remove|erase|cross|get\s+rid)\b", t, re.IGNORECASE) is not None, _delete),
    Rule("move", lambda t: re.match(r"^\s*move\b", t, re.IGNORECASE) is not None, _move),
    Rule("debug", lambda t: DEBUG_REQUEST.match(t) is not None, _debug),
    Rule("read", lambda t: re.match(r"^\s*(?:read|show|open|display|view|print|list|fetch|get|what)\b", t, re.IGNORECASE) is not None, _read),
    Rule("quoted_content", lambda t: QUOTED.search(t) is not None, _quoted_content),
    Rule("conversational", lambda t: CONVERSATIONAL_PREFIX.match(t.strip()) is not None, _conversational),
    Rule("write_targeting", lambda t: WRITE_VERB.match(t.strip()) is not None, _write_targeting),
]


def run_rules(text: str, default_target: str) -> Optional[tuple[str, list[Command]]]:
    """
    Evaluate the rule battery, first resolving rule wins.

    Args:
        text: Raw instruction
        default_target: Page used when a rule finds no destination

    Returns:
        (rule name, commands), or None when every rule declines
    """
    for rule in RULES:
        commands = rule.apply(text, default_target)
        if commands:
            return rule.name, commands
    return None
