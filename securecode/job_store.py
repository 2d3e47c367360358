"""Job persistence: a narrow CRUD interface plus an in-memory implementation."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, List, Optional

from .models import AnalysisJob


class JobStore(ABC):
    """Document store for analysis jobs, keyed by job id.

    Implementations must make ``update_by_job_id`` atomic per document; the
    pipeline never needs multi-document transactions.
    """

    @abstractmethod
    async def insert(self, job: AnalysisJob) -> None:
        ...

    @abstractmethod
    async def update_by_job_id(self, job_id: str, patch: Dict[str, Any]) -> bool:
        """Apply ``patch`` to one job. Returns False when the id is unknown."""

    @abstractmethod
    async def find_by_id(self, job_id: str) -> Optional[AnalysisJob]:
        ...

    @abstractmethod
    async def find_by_owner(
        self, owner_id: str, newest_first: bool = True
    ) -> List[AnalysisJob]:
        ...


def _snapshot(data: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(json.dumps(data, default=str))


class InMemoryJobStore(JobStore):
    """Process-local store.

    Documents are kept as plain dicts and copied on the way in and out, so
    callers can never mutate stored state without going through an update.
    The lock is a threading lock because reads may come from request threads
    while the event loop writes.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()

    async def insert(self, job: AnalysisJob) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Duplicate job id: {job.id}")
            self._jobs[job.id] = _snapshot(job.to_dict())

    async def update_by_job_id(self, job_id: str, patch: Dict[str, Any]) -> bool:
        with self._lock:
            entry = self._jobs.get(job_id)
            if entry is None:
                return False
            entry.update(_snapshot(patch))
            return True

    async def find_by_id(self, job_id: str) -> Optional[AnalysisJob]:
        with self._lock:
            data = self._jobs.get(job_id)
            if data is None:
                return None
            return AnalysisJob.from_dict(_snapshot(data))

    async def find_by_owner(
        self, owner_id: str, newest_first: bool = True
    ) -> List[AnalysisJob]:
        with self._lock:
            owned = [_snapshot(d) for d in self._jobs.values() if d.get("owner_id") == owner_id]
        owned.sort(key=lambda d: d.get("created_at", ""), reverse=newest_first)
        return [AnalysisJob.from_dict(d) for d in owned]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


__all__ = ["InMemoryJobStore", "JobStore"]
