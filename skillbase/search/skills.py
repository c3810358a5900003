from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, Field

from skillbase.errors import ValidationError
from skillbase.models import KnowledgeFilter, Tier
from skillbase.search.ranker import KeywordRanker, RankedCandidate, Ranker
from skillbase.store.base import Store

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 100
TIER_ORDER: tuple[Tier, ...] = (Tier.core, Tier.extended, Tier.library)


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=10000)
    categories: list[str] | None = None
    tiers: list[Tier] = Field(default_factory=lambda: list(TIER_ORDER), min_length=1)
    limit: int = Field(default=5, ge=1, le=20)
    exclude_ids: list[str] | None = None


class SkillHit(BaseModel):
    id: str
    title: str
    content: str
    tier: Tier
    categories: list[str]
    tags: list[str]
    score: float


class SearchResponse(BaseModel):
    skills: list[SkillHit]
    search_method: Literal["keyword"] = "keyword"


def parse_search_request(data: SearchRequest | dict[str, Any]) -> SearchRequest:
    if isinstance(data, SearchRequest):
        return data
    try:
        return SearchRequest.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid search request: {exc}") from exc


async def search_skills(
    store: Store,
    request: SearchRequest | dict[str, Any],
    ranker: Ranker | None = None,
) -> SearchResponse:
    """Rank active entries in the requested tiers against ``request.query``.

    Fetches at most ``min(limit * 5, 100)`` of the most recently updated
    candidates, ranks them, and returns the non-zero hits truncated to
    ``limit``.
    """
    req = parse_search_request(request)
    ranker = ranker or KeywordRanker()

    candidates = await store.find_knowledge(
        KnowledgeFilter(
            tiers=tuple(req.tiers),
            categories=tuple(req.categories or ()),
            exclude_ids=frozenset(req.exclude_ids or ()),
            limit=min(req.limit * 5, MAX_CANDIDATES),
        )
    )
    ranked = ranker.rank(req.query, candidates)
    hits = [
        SkillHit(
            id=r.entry.id,
            title=r.entry.title,
            content=r.entry.content,
            tier=r.entry.tier,
            categories=list(r.entry.categories),
            tags=list(r.entry.tags),
            score=r.score,
        )
        for r in ranked
        if r.score > 0
    ][: req.limit]
    logger.debug(
        "Keyword search over %d candidates returned %d hits", len(candidates), len(hits)
    )
    return SearchResponse(skills=hits)


class KnowledgeRetriever:
    """Progressive tier retrieval.

    Searches the smallest tier first and widens to the next tier only
    while fewer than ``min_results`` relevant entries have been found.
    """

    def __init__(
        self,
        store: Store,
        ranker: Ranker | None = None,
        *,
        max_skills: int = 5,
        min_results: int = 1,
        candidate_limit: int = MAX_CANDIDATES,
    ) -> None:
        self._store = store
        self._ranker = ranker or KeywordRanker()
        self.max_skills = max_skills
        self.min_results = min_results
        self.candidate_limit = candidate_limit

    async def retrieve(
        self,
        question: str,
        *,
        tiers: Sequence[Tier] = TIER_ORDER,
        categories: Sequence[str] = (),
        exclude_ids: Sequence[str] = (),
    ) -> list[RankedCandidate]:
        ordered = [t for t in TIER_ORDER if t in set(tiers)]
        relevant: list[RankedCandidate] = []
        for depth in range(1, len(ordered) + 1):
            stage = tuple(ordered[:depth])
            candidates = await self._store.find_knowledge(
                KnowledgeFilter(
                    tiers=stage,
                    categories=tuple(categories),
                    exclude_ids=frozenset(exclude_ids),
                    limit=self.candidate_limit,
                )
            )
            ranked = self._ranker.rank(question, candidates)
            relevant = [r for r in ranked if r.score > 0]
            if len(relevant) >= self.min_results:
                break
            logger.debug(
                "Tiers %s yielded %d relevant entries, widening",
                [t.value for t in stage],
                len(relevant),
            )
        return relevant[: self.max_skills]
