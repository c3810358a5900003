from skillbase.facade.core import Skillbase
from skillbase.facade.types import ItemSummary, KnowledgeSummary

__all__ = [
    "ItemSummary",
    "KnowledgeSummary",
    "Skillbase",
]
