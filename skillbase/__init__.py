from skillbase.errors import (
    AuthorizationError,
    PersistenceDegraded,
    ProviderError,
    RateLimited,
    SkillbaseError,
    ValidationError,
)
from skillbase.facade import Skillbase

__all__ = [
    "AuthorizationError",
    "PersistenceDegraded",
    "ProviderError",
    "RateLimited",
    "Skillbase",
    "SkillbaseError",
    "ValidationError",
]
