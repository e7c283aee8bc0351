"""Repair parses of compound instructions that came back with too few commands."""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from notion_agent.models.command import Command
from notion_agent.services.command_rules import (
    AS_FORMAT,
    CHECKLIST_PAIR,
    CONVERSATIONAL_PREFIX,
    COMMA_CHECKLIST,
    format_segments,
    parse_clause,
    run_rules,
    split_list_items,
    verb_segments,
)
from notion_agent.services.exceptions import AmbiguousCompoundInstruction
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class Span:
    """Text of one intended action, with the format its detector implies."""

    text: str
    format_hint: Optional[str] = None


Detector = Callable[[str], Optional[list[Span]]]

CHECKLIST_TOO_IDIOM = re.compile(r"check\s?list\b.*\band\b.*\bcheck\s?list\s+(?:too|as\s+well|also)\b", re.IGNORECASE | re.DOTALL)


def detect_checklist_too(text: str) -> Optional[list[Span]]:
    """`add A in checklist and B in checklist too in Page`"""
    if not CHECKLIST_TOO_IDIOM.search(text):
        return None
    match = CHECKLIST_PAIR.match(text.strip())
    if not match:
        raise AmbiguousCompoundInstruction(2, [])
    rest = match.group("rest")
    return [
        Span(match.group("first") + rest, "to_do"),
        Span(match.group("second") + rest, "to_do"),
    ]


def detect_comma_checklist(text: str) -> Optional[list[Span]]:
    """`add A, B and C to checklist in Page`"""
    match = COMMA_CHECKLIST.match(text.strip())
    if not match:
        return None
    items = split_list_items(match.group("items"))
    if len(items) < 2:
        return None
    rest = match.group("rest")
    return [Span(item + rest, "to_do") for item in items]


def detect_repeated_format(text: str) -> Optional[list[Span]]:
    """`add A as quote and this as checklist: B`"""
    markers = len(AS_FORMAT.findall(text))
    if markers < 2:
        return None
    segments = format_segments(text)
    if len(segments) != markers:
        raise AmbiguousCompoundInstruction(markers, segments)

    # The trailing destination belongs to every segment
    last = segments[-1]
    tail = re.search(r"\s+(?:in|to|into)\s+[^,.;:]+$", last, re.IGNORECASE)
    suffix = tail.group(0) if tail else ""
    return [Span(segment if segment is last else segment + suffix) for segment in segments]


def detect_conjoined_verbs(text: str) -> Optional[list[Span]]:
    """`add A to Page and add B`"""
    segments = verb_segments(text)
    if len(segments) < 2:
        return None
    return [Span(segment) for segment in segments]


DETECTORS: list[tuple[str, Detector]] = [
    ("checklist_too", detect_checklist_too),
    ("comma_checklist", detect_comma_checklist),
    ("repeated_format", detect_repeated_format),
    ("conjoined_verbs", detect_conjoined_verbs),
]


class CommandSplitter:
    """
    Ensures the command list reflects the number of actions an instruction asks for.

    Detectors run in order; the first one that finds compound evidence decides
    the expected count N. When fewer than N commands were parsed, the missing
    trailing ones are re-derived from the corresponding text spans and
    appended. Existing commands are never removed or reordered, so running the
    splitter on its own output changes nothing.
    """

    def __init__(self, detectors: Optional[list[tuple[str, Detector]]] = None):
        self.detectors = detectors if detectors is not None else DETECTORS

    def split(self, commands: list[Command], instruction: str) -> list[Command]:
        """
        Insert commands for detected actions the parse missed.

        Args:
            commands: Commands produced by a parser tier
            instruction: Raw instruction text

        Returns:
            The input commands, followed by any re-derived ones
        """
        if not commands:
            return commands

        text = CONVERSATIONAL_PREFIX.sub("", instruction.strip(), count=1)
        for name, detector in self.detectors:
            try:
                spans = detector(text)
                if spans is None:
                    continue
                return self._fill(commands, spans, name)
            except AmbiguousCompoundInstruction as e:
                logger.warning(
                    "compound_instruction_ambiguous",
                    detector=name,
                    expected=e.expected,
                    spans=len(e.spans),
                )
                return commands

        return commands

    def _fill(self, commands: list[Command], spans: list[Span], detector: str) -> list[Command]:
        if len(commands) >= len(spans):
            return commands

        first = commands[0]
        added = []
        for span in spans[len(commands):]:
            command = self._derive(span, first.primary_target)
            if command is None:
                raise AmbiguousCompoundInstruction(len(spans), [s.text for s in spans])
            if command.primary_target == first.primary_target and command.section_target is None:
                command = command.model_copy(update={
                    "section_target": first.section_target,
                    "placement_type": first.placement_type,
                })
            added.append(command.model_copy(update={"is_multi_action": True}))

        logger.info(
            "compound_instruction_split",
            detector=detector,
            parsed=len(commands),
            expected=len(spans),
            added=len(added),
        )
        return commands + added

    @staticmethod
    def _derive(span: Span, target: str) -> Optional[Command]:
        if span.format_hint is not None:
            return parse_clause(span.text, target, format_hint=span.format_hint)
        result = run_rules(span.text, target)
        if result is not None:
            return result[1][0]
        return parse_clause(span.text, target)
