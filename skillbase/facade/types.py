"""Public return types for the skillbase API."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class KnowledgeSummary:
    """Lightweight view of a knowledge entry for listings."""

    id: str
    title: str
    tier: str
    categories: list[str]
    is_active: bool
    sync_status: str | None


@dataclass
class ItemSummary:
    """Lightweight view of a batch item for listings."""

    id: str
    row_number: int
    question: str
    status: str
    confidence: str | None
    error: str | None
