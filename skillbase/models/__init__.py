"""Domain models: pure Python dataclasses with no infrastructure dependencies.

These are the canonical types used by the Store protocol and every
non-persistence component (ranker, assembler, generator, orchestrator).
The SQLAlchemy ORM rows used by ``PostgresStore`` live separately in
``skillbase.db.models`` and map to/from these models.
"""

from skillbase.models.actor import Actor, Capability
from skillbase.models.batch_item import (
    AnswerDetails,
    BatchItem,
    ItemStatus,
    Turn,
)
from skillbase.models.knowledge import (
    KnowledgeEntry,
    KnowledgeFilter,
    KnowledgeSyncStatus,
    Tier,
)
from skillbase.models.settings import (
    AppSetting,
    LLMProvider,
    RateLimitSettings,
    SettingKey,
)
from skillbase.models.sync import (
    SyncDirection,
    SyncLogEntry,
    SyncOperation,
    SyncStatus,
)
from skillbase.models.usage import UsageRecord

__all__ = [
    "Actor",
    "AnswerDetails",
    "AppSetting",
    "BatchItem",
    "Capability",
    "ItemStatus",
    "KnowledgeEntry",
    "KnowledgeFilter",
    "KnowledgeSyncStatus",
    "LLMProvider",
    "RateLimitSettings",
    "SettingKey",
    "SyncDirection",
    "SyncLogEntry",
    "SyncOperation",
    "SyncStatus",
    "Tier",
    "Turn",
    "UsageRecord",
]
