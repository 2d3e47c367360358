"""Core records passed between pipeline stages."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

JOB_PENDING = "pending"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
TERMINAL_STATES = {JOB_COMPLETED, JOB_FAILED}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SourceFile:
    path: str
    content: str


@dataclass
class AnalysisJob:
    owner_id: str
    origin: Dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = JOB_PENDING
    created_at: str = field(default_factory=utc_now)
    updated_at: str = ""
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.result is None:
            data.pop("result")
        if self.error is None:
            data.pop("error")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisJob":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            origin=data.get("origin") or {},
            status=data.get("status", JOB_PENDING),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or "",
            result=data.get("result"),
            error=data.get("error"),
        )


def archive_origin(name: str, files: List[SourceFile]) -> Dict[str, Any]:
    return {"kind": "archive", "name": name, "files": [f.path for f in files]}


def repository_origin(url: str) -> Dict[str, Any]:
    return {"kind": "repository", "url": url}


__all__ = [
    "AnalysisJob",
    "JOB_COMPLETED",
    "JOB_FAILED",
    "JOB_PENDING",
    "SourceFile",
    "TERMINAL_STATES",
    "archive_origin",
    "repository_origin",
    "utc_now",
]
