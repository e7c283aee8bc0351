"""Locate a heading-delimited section inside a page and compute insertion points."""

import re
from typing import Optional

from notion_agent.models.command import PlacementType
from notion_agent.models.document import DocumentStructure, Section
from notion_agent.models.results import InsertionPoint, MatchPass, SectionMatch
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)

# Canonical section concepts and the phrasings that refer to them
SECTION_SYNONYMS: dict[str, tuple[str, ...]] = {
    "day": ("my day", "today", "daily", "day", "agenda"),
    "tasks": ("tasks", "task", "to do", "todo", "to-do", "to-dos", "todos", "action items"),
    "notes": ("notes", "note", "scratch", "jottings"),
    "ideas": ("ideas", "idea", "brainstorm", "thoughts"),
    "shopping": ("shopping", "groceries", "grocery", "shopping list"),
    "meetings": ("meetings", "meeting", "meeting notes", "standup"),
    "goals": ("goals", "goal", "objectives", "okrs"),
    "links": ("links", "link", "resources", "references", "bookmarks", "reading list"),
    "summary": ("summary", "overview", "tl;dr", "tldr", "abstract"),
    "questions": ("questions", "question", "open questions", "faq"),
}

_QUALIFIER_WORDS = re.compile(r"\b(?:the|section|heading|header|area|part|block)\b", re.IGNORECASE)

_STOPWORDS = frozenset({
    "a", "an", "and", "add", "also", "about", "after", "all", "as", "at", "be", "below",
    "but", "by", "can", "checklist", "could", "create", "for", "from", "have", "heading",
    "in", "into", "is", "it", "its", "list", "make", "my", "of", "on", "page", "please",
    "put", "section", "that", "the", "then", "this", "to", "too", "under", "with", "write",
    "you", "your", "notion", "item", "items", "bullet", "note", "quote", "toggle", "callout",
})


def normalize_section_name(name: str) -> str:
    """Lowercase a requested section name and drop qualifier words like "section"."""
    stripped = _QUALIFIER_WORDS.sub(" ", name.lower())
    return " ".join(stripped.split())


def _words(text: str) -> set[str]:
    return set(re.findall(r"[a-z0-9']+", text.lower()))


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(r"(?<![a-z0-9])" + re.escape(phrase) + r"(?![a-z0-9])", text) is not None


def synonym_class(text: str) -> Optional[str]:
    """The canonical concept a phrase refers to, if any."""
    lowered = text.lower().strip()
    best: Optional[str] = None
    best_len = 0
    for concept, phrases in SECTION_SYNONYMS.items():
        for phrase in phrases:
            if _contains_phrase(lowered, phrase) and len(phrase) > best_len:
                best = concept
                best_len = len(phrase)
    return best


class SectionResolver:
    """
    Three-pass section lookup.

    Pass 1 compares heading text exactly (case-insensitive). Pass 2 accepts
    substring containment in either direction, then synonym classes. Pass 3
    is advisory: a topical keyword from the instruction that appears in
    exactly one heading. The resolver never invents a section.
    """

    def find_section(
        self, doc: DocumentStructure, name: str, instruction: str = ""
    ) -> Optional[SectionMatch]:
        """
        Find the section a command refers to.

        Args:
            doc: Structure of the destination page
            name: Requested section name (e.g. "day section")
            instruction: Full instruction text, used only by the advisory pass

        Returns:
            SectionMatch, or None when no pass succeeds
        """
        sections = doc.sections
        if not sections or not name.strip():
            return None

        raw = " ".join(name.lower().split())
        query = normalize_section_name(name) or raw

        for section in sections:
            title = section.title.strip().lower()
            if title == raw or title == query:
                return self._matched(section, MatchPass.EXACT, name)

        match = self._substring_match(sections, query)
        if match is not None:
            return self._matched(match, MatchPass.SUBSTRING, name)

        concept = synonym_class(query)
        if concept is not None:
            for section in sections:
                if synonym_class(section.title) == concept:
                    return self._matched(section, MatchPass.SYNONYM, name)

        if instruction:
            match = self._advisory_match(sections, instruction)
            if match is not None:
                logger.warning(
                    "section_match_advisory",
                    query=name,
                    heading=match.title,
                    page_id=doc.page_id,
                )
                return SectionMatch(section=match, match_pass=MatchPass.ADVISORY)

        logger.info("section_not_found", query=name, page_id=doc.page_id, headings=doc.heading_titles)
        return None

    @staticmethod
    def _substring_match(sections: list[Section], query: str) -> Optional[Section]:
        # Whole-word containment first, then the longest heading inside the
        # query, then any raw substring
        for section in sections:
            if _contains_phrase(section.title.lower(), query):
                return section

        contained = [
            s for s in sections
            if s.title.strip() and _contains_phrase(query, s.title.strip().lower())
        ]
        if contained:
            return max(contained, key=lambda s: len(s.title.strip()))

        for section in sections:
            title = section.title.strip().lower()
            if title and (query in title or title in query):
                return section
        return None

    @staticmethod
    def _advisory_match(sections: list[Section], instruction: str) -> Optional[Section]:
        keywords = [w for w in _words(instruction) if len(w) > 2 and w not in _STOPWORDS]
        for keyword in sorted(keywords):
            holders = [s for s in sections if keyword in _words(s.title)]
            if len(holders) == 1:
                return holders[0]
        return None

    @staticmethod
    def _matched(section: Section, match_pass: MatchPass, query: str) -> SectionMatch:
        logger.info("section_matched", query=query, heading=section.title, match_pass=match_pass.value)
        return SectionMatch(section=section, match_pass=match_pass)

    @staticmethod
    def insertion_point(
        doc: DocumentStructure, section: Section, placement: PlacementType
    ) -> InsertionPoint:
        """
        Where content for a section goes.

        `in` places content at the section's start, directly after the
        heading, even when the heading holds children of its own. `below`
        places content after the section's last block, before the next
        heading.
        """
        heading = section.heading
        if placement == PlacementType.BELOW:
            if section.end_index > section.start_index:
                last = doc.blocks[section.end_index - 1]
                return InsertionPoint(parent_id=doc.page_id, after_id=last.id, index=section.end_index)
            return InsertionPoint(parent_id=doc.page_id, after_id=heading.id, index=section.end_index)

        return InsertionPoint(parent_id=doc.page_id, after_id=heading.id, index=section.start_index)
