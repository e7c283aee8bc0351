"""Resolve a human-supplied page name to a workspace page."""

from collections import Counter
from typing import Any, Optional, Protocol

from notion_agent.models.results import PageMatch
from notion_agent.services.exceptions import TargetNotFoundError
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.5
SUBSTRING_BONUS = 0.3
PREFIX_BONUS = 0.2


class PageSearcher(Protocol):
    async def search_pages(self, query: str) -> list[dict[str, Any]]:
        ...


def similarity(query: str, title: str) -> float:
    """
    Score how well a candidate title matches a query.

    Character-overlap ratio over the longer string, plus a bonus when the
    title contains the query and another when it starts with it. Capped at 1.0.

    Args:
        query: Requested page name
        title: Candidate page title

    Returns:
        Score in [0.0, 1.0]
    """
    q = query.strip().lower()
    t = title.strip().lower()
    if not q or not t:
        return 0.0
    if q == t:
        return 1.0

    overlap = sum((Counter(q) & Counter(t)).values())
    score = overlap / max(len(q), len(t))
    if q in t:
        score += SUBSTRING_BONUS
    if t.startswith(q):
        score += PREFIX_BONUS
    return min(score, 1.0)


def best_candidate(query: str, candidates: list[dict[str, Any]]) -> Optional[PageMatch]:
    """Highest-scoring candidate; on equal scores the earliest in listing order wins."""
    best: Optional[PageMatch] = None
    for page in candidates:
        score = similarity(query, page["title"])
        if best is None or score > best.score:
            best = PageMatch(id=page["id"], title=page["title"], score=score)
    return best


class TargetResolver:
    """
    Finds the page a command refers to.

    Exact case-insensitive title matches from a targeted search win outright.
    Otherwise every page in a broad listing is scored with `similarity` and
    the best one is returned if it clears the threshold.
    """

    def __init__(self, client: PageSearcher, threshold: float = DEFAULT_MATCH_THRESHOLD):
        self.client = client
        self.threshold = threshold

    async def resolve(self, name: str) -> Optional[PageMatch]:
        """
        Resolve a page name.

        Args:
            name: Page name from a Command

        Returns:
            Best PageMatch, or None when nothing reaches the threshold

        Raises:
            TransientExternalError, PermanentExternalError: From the workspace client
        """
        best = await self._rank(name)
        if best is None or best.score < self.threshold:
            return None
        return best

    async def require(self, name: str) -> PageMatch:
        """
        Resolve a page name or fail with an actionable error.

        Raises:
            TargetNotFoundError: When nothing reaches the threshold
        """
        best = await self._rank(name)
        if best is None or best.score < self.threshold:
            raise TargetNotFoundError(
                name,
                best_title=best.title if best and best.score > 0 else None,
                best_score=best.score if best else None,
            )
        return best

    async def _rank(self, name: str) -> Optional[PageMatch]:
        query = name.strip()
        if not query:
            return None

        searched = await self.client.search_pages(query)
        for page in searched:
            if page["title"].strip().lower() == query.lower():
                logger.info("target_resolved", query=query, page_id=page["id"], score=1.0, method="exact")
                return PageMatch(id=page["id"], title=page["title"], score=1.0)

        candidates = list(searched)
        seen = {page["id"] for page in searched}
        for page in await self.client.search_pages(""):
            if page["id"] not in seen:
                seen.add(page["id"])
                candidates.append(page)

        best = best_candidate(query, candidates)
        if best is None:
            logger.info("target_not_resolved", query=query, candidates=0)
        elif best.score < self.threshold:
            logger.info(
                "target_below_threshold",
                query=query,
                best_title=best.title,
                best_score=best.score,
                threshold=self.threshold,
            )
        else:
            logger.info("target_resolved", query=query, page_id=best.id, score=best.score, method="similarity")
        return best
