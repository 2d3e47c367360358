"""Merging per-file findings into a single report."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, Tuple

from .models import SourceFile
from .text_utils import coerce_text

SUMMARY_KEYS = {
    "critical": "critical_severity",
    "high": "high_severity",
    "medium": "medium_severity",
    "low": "low_severity",
}


def normalize_severity(value: Any) -> str:
    return coerce_text(value).lower()


def severity_bucket(severity: str) -> str:
    """Anything that is not critical/high/medium counts as low, ``info`` included."""
    if severity in ("critical", "high", "medium"):
        return severity
    return "low"


def normalize_finding(raw: Dict[str, Any]) -> Dict[str, Any]:
    line = raw.get("line")
    if not isinstance(line, (int, float)) or isinstance(line, bool):
        line = coerce_text(line) or "N/A"
    return {
        "type": coerce_text(raw.get("type")) or "Unknown",
        "severity": normalize_severity(raw.get("severity")),
        "line": line,
        "description": coerce_text(raw.get("description")),
        "suggestion": coerce_text(raw.get("suggestion")),
    }


def empty_summary() -> Dict[str, int]:
    summary = {key: 0 for key in SUMMARY_KEYS.values()}
    summary["total"] = 0
    return summary


def aggregate_results(
    per_file_results: Iterable[Tuple[SourceFile, Sequence[Dict[str, Any]]]]
) -> Dict[str, Any]:
    """Build ``{"files": [...], "summary": {...}}`` preserving input order."""
    files: List[Dict[str, Any]] = []
    summary = empty_summary()
    for source, raw_findings in per_file_results:
        vulnerabilities = [normalize_finding(raw) for raw in raw_findings]
        for finding in vulnerabilities:
            summary[SUMMARY_KEYS[severity_bucket(finding["severity"])]] += 1
            summary["total"] += 1
        files.append({"path": source.path, "vulnerabilities": vulnerabilities})
    return {"files": files, "summary": summary}


__all__ = [
    "aggregate_results",
    "empty_summary",
    "normalize_finding",
    "normalize_severity",
    "severity_bucket",
]
