from skillbase.search.ranker import KeywordRanker, RankedCandidate, Ranker
from skillbase.search.skills import (
    KnowledgeRetriever,
    SearchRequest,
    SearchResponse,
    SkillHit,
    search_skills,
)

__all__ = [
    "KeywordRanker",
    "KnowledgeRetriever",
    "RankedCandidate",
    "Ranker",
    "SearchRequest",
    "SearchResponse",
    "SkillHit",
    "search_skills",
]
