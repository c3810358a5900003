from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from skillbase.models import KnowledgeEntry

_PUNCTUATION = re.compile(r"[^\w\s]+")

TITLE_WEIGHT = 3.0
CONTENT_WEIGHT = 1.0
TAG_WEIGHT = 2.0
PHRASE_BONUS = 5.0


@dataclass(frozen=True)
class RankedCandidate:
    entry: KnowledgeEntry
    score: float


def normalize(text: str) -> str:
    """Lowercase *text*, replace punctuation with spaces, collapse whitespace."""
    return " ".join(_PUNCTUATION.sub(" ", text.lower()).split())


def tokenize(text: str, min_token_length: int = 2) -> list[str]:
    return [t for t in normalize(text).split() if len(t) >= min_token_length]


class Ranker(ABC):
    """Orders candidate entries by relevance to a query.

    Implementations must return every candidate exactly once.
    """

    @abstractmethod
    def rank(
        self,
        query: str,
        candidates: Sequence[KnowledgeEntry],
    ) -> list[RankedCandidate]: ...


class KeywordRanker(Ranker):
    """Lexical overlap scoring.

    Matches on shared tokens only: "SSO" and "single sign-on" are
    unrelated to this ranker unless both appear in the text.
    """

    def __init__(self, min_token_length: int = 2) -> None:
        self.min_token_length = min_token_length

    def score(self, query_tokens: list[str], entry: KnowledgeEntry) -> float:
        if not query_tokens:
            return 0.0

        title_tokens = set(tokenize(entry.title, self.min_token_length))
        content_tokens = set(tokenize(entry.content, self.min_token_length))
        unique_query = set(query_tokens)

        title_hits = len(unique_query & title_tokens)
        content_hits = len(unique_query & content_tokens)

        phrase = " ".join(query_tokens)
        tag_hits = 0
        for tag in entry.tags:
            norm_tag = normalize(tag)
            if not norm_tag:
                continue
            if norm_tag in unique_query or f" {norm_tag} " in f" {phrase} ":
                tag_hits += 1

        if not (title_hits or content_hits or tag_hits):
            return 0.0

        score = (
            TITLE_WEIGHT * title_hits
            + CONTENT_WEIGHT * content_hits
            + TAG_WEIGHT * tag_hits
        )
        if len(query_tokens) >= 2:
            padded = f" {phrase} "
            if padded in f" {normalize(entry.title)} " or padded in (
                f" {normalize(entry.content)} "
            ):
                score += PHRASE_BONUS
        return score

    def rank(
        self,
        query: str,
        candidates: Sequence[KnowledgeEntry],
    ) -> list[RankedCandidate]:
        query_tokens = tokenize(query, self.min_token_length)
        scored = [
            (self.score(query_tokens, entry), index, entry)
            for index, entry in enumerate(candidates)
        ]
        if not query_tokens:
            return [RankedCandidate(entry=e, score=0.0) for _, _, e in scored]

        # Stable sorts applied from least to most significant key.
        scored.sort(key=lambda s: s[1])
        scored.sort(key=lambda s: s[2].updated_at, reverse=True)
        scored.sort(key=lambda s: s[0], reverse=True)
        return [RankedCandidate(entry=e, score=score) for score, _, e in scored]
