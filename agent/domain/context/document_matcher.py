from functools import lru_cache
from typing import Iterable, Optional, Tuple
from urllib.parse import urlparse
import structlog

from domain.models.agent_state import DocumentEntry, ResearchResult
from .knowledge_catalog import GETTING_STARTED, PERCIFY_DOCS

logger = structlog.get_logger(__name__)

# Best score below this falls back to the default entry
MIN_MATCH_SCORE = 2

DEFAULT_CACHE_SIZE = 256


def score_entry(query_lower: str, entry: DocumentEntry) -> int:
    """Keyword relevance of one catalog entry for a lower-cased query"""

    key = entry.key
    title = entry.title.lower()
    content = entry.content.lower()

    score = 0
    if key in query_lower:
        score += 10
    if query_lower in title:
        score += 5
    if query_lower in content:
        score += 3

    for word in query_lower.split():
        if len(word) > 2:
            if word in key:
                score += 2
            if word in content:
                score += 1

    return score


class DocumentMatcher:
    """Scores free-text queries against a static documentation catalog"""

    def __init__(
        self,
        base_url: str = "https://docs.percify.io",
        catalog: Optional[Iterable[DocumentEntry]] = None,
        fallback: DocumentEntry = GETTING_STARTED,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ):
        self.base_url = base_url.rstrip("/")
        self.catalog: Tuple[DocumentEntry, ...] = tuple(PERCIFY_DOCS if catalog is None else catalog)
        self.fallback = fallback
        self.site_name = urlparse(self.base_url).netloc or self.base_url
        self._search = lru_cache(maxsize=cache_size)(self._lookup)

    def best_match(self, query: str) -> Tuple[DocumentEntry, int]:
        """Highest scoring entry; the earliest entry wins ties"""

        query_lower = query.lower()
        best: Optional[DocumentEntry] = None
        best_score = 0

        for entry in self.catalog:
            score = score_entry(query_lower, entry)
            if score > best_score:
                best = entry
                best_score = score

        if best is None or best_score < MIN_MATCH_SCORE:
            return self.fallback, best_score
        return best, best_score

    def search(self, query: str) -> ResearchResult:
        """Resolve a query to a documentation snippet and source URL"""
        return self._search(query)

    def _lookup(self, query: str) -> ResearchResult:
        entry, score = self.best_match(query)
        result = ResearchResult(
            query=query,
            snippet=f"📚 **{entry.title}** ({self.site_name})\n\n{entry.content}",
            source_url=f"{self.base_url}{entry.path}",
        )
        logger.info("Documentation matched", query=query[:50], doc=entry.key, score=score)
        return result

