"""Tests for report aggregation and ordering."""

from __future__ import annotations

from wormsign.scanner.aggregate import aggregate
from wormsign.scanner.models import (
    FileIssue,
    FileResult,
    Finding,
    FindingKind,
    IssueKind,
    ScanState,
    Severity,
)


def _finding(path: str, severity: Severity, line: int | None = None, desc: str = "x") -> Finding:
    return Finding(
        file_path=path,
        kind=FindingKind.MARKER_PATTERN,
        severity=severity,
        description=desc,
        line=line,
    )


def _results() -> list[FileResult]:
    return [
        FileResult("/p/b.js", (_finding("/p/b.js", Severity.HIGH, 3),)),
        FileResult(
            "/p/a.js",
            (
                _finding("/p/a.js", Severity.MEDIUM, 10),
                _finding("/p/a.js", Severity.HIGH, 7),
                _finding("/p/a.js", Severity.HIGH),
            ),
        ),
        FileResult("/p/c.js", (_finding("/p/c.js", Severity.CRITICAL, 1),)),
        FileResult("/p/d.bin", issues=(FileIssue("/p/d.bin", IssueKind.DECODE, "binary"),)),
    ]


def test_order_is_severity_then_file_then_line():
    report = aggregate(_results(), root="/p", files_scanned=4, duration=0.1)
    keys = [(f.severity, f.file_path, f.line) for f in report.findings]
    assert keys == [
        (Severity.CRITICAL, "/p/c.js", 1),
        (Severity.HIGH, "/p/a.js", None),
        (Severity.HIGH, "/p/a.js", 7),
        (Severity.HIGH, "/p/b.js", 3),
        (Severity.MEDIUM, "/p/a.js", 10),
    ]


def test_independent_of_completion_order():
    forward = aggregate(_results(), root="/p", files_scanned=4, duration=0.1)
    backward = aggregate(reversed(_results()), root="/p", files_scanned=4, duration=0.1)
    assert forward.findings == backward.findings
    assert forward.issues == backward.issues


def test_equal_keys_keep_layer_order():
    first = _finding("/p/a.js", Severity.HIGH, 2, desc="first")
    second = _finding("/p/a.js", Severity.HIGH, 2, desc="second")
    report = aggregate([FileResult("/p/a.js", (first, second))], root="/p", files_scanned=1, duration=0)
    assert [f.description for f in report.findings] == ["first", "second"]


def test_summary_and_metadata():
    report = aggregate(
        _results(), root="/p", files_scanned=4, duration=1.5, state=ScanState.CANCELLED
    )
    assert report.summary.critical == 1
    assert report.summary.high == 3
    assert report.summary.medium == 1
    assert report.summary.total == 5
    assert report.files_scanned == 4
    assert report.partial
    assert [i.file_path for i in report.issues] == ["/p/d.bin"]


def test_empty():
    report = aggregate([], root="/p", files_scanned=0, duration=0.0)
    assert report.findings == ()
    assert report.summary.passed
