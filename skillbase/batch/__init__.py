from skillbase.batch.orchestrator import BatchOrchestrator, BatchRunResult, windows
from skillbase.batch.policy import ImmediateRunPolicy, InProcessLockPolicy, RunPolicy

__all__ = [
    "BatchOrchestrator",
    "BatchRunResult",
    "ImmediateRunPolicy",
    "InProcessLockPolicy",
    "RunPolicy",
    "windows",
]
