from skillbase.sync.runner import SyncRunner, SyncSummary
from skillbase.sync.source import (
    DiskKnowledgeSource,
    KnowledgeSource,
    SkillFile,
    SkillFileError,
    skill_slug,
)
from skillbase.sync.tracker import SyncHandle, SyncHealth, SyncHealthTracker

__all__ = [
    "DiskKnowledgeSource",
    "KnowledgeSource",
    "SkillFile",
    "SkillFileError",
    "SyncHandle",
    "SyncHealth",
    "SyncHealthTracker",
    "SyncRunner",
    "SyncSummary",
    "skill_slug",
]
