"""Tests for result aggregation."""

from securecode.models import SourceFile
from securecode.reporting import aggregate_results, normalize_finding, severity_bucket


def _f(severity, line=1):
    return {
        "type": "Issue",
        "severity": severity,
        "line": line,
        "description": "desc",
        "suggestion": "fix",
    }


class TestAggregateResults:
    """Test per-file merge and severity counting."""

    def test_counts_by_bucket(self):
        results = [
            (SourceFile("a.js", ""), [_f("High"), _f("low"), _f("MEDIUM")]),
            (SourceFile("b.py", ""), [_f("high"), _f("Low")]),
        ]

        report = aggregate_results(results)

        assert report["summary"] == {
            "critical_severity": 0,
            "high_severity": 2,
            "medium_severity": 1,
            "low_severity": 2,
            "total": 5,
        }

    def test_buckets_sum_to_total_for_three_levels(self):
        levels = ["low", "medium", "high"]
        findings = [_f(levels[i % 3]) for i in range(17)]

        summary = aggregate_results([(SourceFile("x.c", ""), findings)])["summary"]

        assert summary["high_severity"] + summary["medium_severity"] + summary["low_severity"] == 17
        assert summary["total"] == 17

    def test_critical_has_its_own_bucket(self):
        report = aggregate_results([(SourceFile("a.js", ""), [_f("Critical"), _f("high")])])

        assert report["summary"]["critical_severity"] == 1
        assert report["summary"]["high_severity"] == 1
        assert report["summary"]["low_severity"] == 0

    def test_info_and_unknown_count_as_low(self):
        report = aggregate_results([(SourceFile("a.js", ""), [_f("info"), _f("weird"), _f(None)])])

        assert report["summary"]["low_severity"] == 3

    def test_preserves_file_order_and_lowercases(self):
        results = [
            (SourceFile("z.go", ""), [_f("HIGH", line="4-9")]),
            (SourceFile("a.go", ""), []),
            (SourceFile("m.go", ""), [_f("Low", line=3)]),
        ]

        report = aggregate_results(results)

        assert [f["path"] for f in report["files"]] == ["z.go", "a.go", "m.go"]
        assert report["files"][0]["vulnerabilities"][0] == {
            "type": "Issue",
            "severity": "high",
            "line": "4-9",
            "description": "desc",
            "suggestion": "fix",
        }
        assert report["files"][1]["vulnerabilities"] == []

    def test_empty_input(self):
        report = aggregate_results([])

        assert report["files"] == []
        assert report["summary"]["total"] == 0

    def test_does_not_mutate_input(self):
        raw = _f("HIGH")
        aggregate_results([(SourceFile("a.js", ""), [raw])])

        assert raw["severity"] == "HIGH"


class TestNormalizeFinding:
    def test_fills_missing_fields(self):
        assert normalize_finding({}) == {
            "type": "Unknown",
            "severity": "",
            "line": "N/A",
            "description": "",
            "suggestion": "",
        }

    def test_keeps_numeric_line(self):
        assert normalize_finding({"line": 42})["line"] == 42

    def test_bucket(self):
        assert severity_bucket("critical") == "critical"
        assert severity_bucket("info") == "low"
