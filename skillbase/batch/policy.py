from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from skillbase.models.utils import generate_id

logger = logging.getLogger(__name__)


class RunPolicy(ABC):
    """Controls when and whether a batch run should proceed."""

    @abstractmethod
    async def acquire(self, scope: str) -> str | None:
        """Try to start a run over *scope* (usually a project id).

        Returns a ``run_id`` if the run is allowed, ``None`` if rejected
        (e.g. another run is already active).
        """
        ...

    @abstractmethod
    async def release(self, run_id: str, *, success: bool) -> None:
        """Mark a run as finished (successfully or not)."""
        ...


class ImmediateRunPolicy(RunPolicy):
    """Always allow. No locking, no tracking."""

    async def acquire(self, scope: str) -> str | None:
        return generate_id()

    async def release(self, run_id: str, *, success: bool) -> None:
        pass


class InProcessLockPolicy(RunPolicy):
    """At most one active run per scope within this process."""

    def __init__(self) -> None:
        self._active: dict[str, str] = {}

    def is_active(self, scope: str) -> bool:
        return scope in self._active.values()

    async def acquire(self, scope: str) -> str | None:
        if self.is_active(scope):
            return None
        run_id = generate_id()
        self._active[run_id] = scope
        return run_id

    async def release(self, run_id: str, *, success: bool) -> None:
        scope = self._active.pop(run_id, None)
        if scope is None:
            logger.warning("[%s] Release of unknown run", run_id)
            return
        logger.debug("[%s] Released %s (success=%s)", run_id, scope, success)
