"""Merge per-file results into a single deterministic report."""

from __future__ import annotations

from collections.abc import Iterable

from wormsign.scanner.models import (
    FileIssue,
    FileResult,
    Finding,
    ScanReport,
    ScanState,
)


def finding_sort_key(finding: Finding) -> tuple:
    """Severity (worst first), then file, then line with line-less findings first."""
    return (
        finding.severity.rank,
        finding.file_path,
        finding.line is not None,
        finding.line or 0,
    )


def aggregate(
    results: Iterable[FileResult],
    *,
    root: str,
    files_scanned: int,
    duration: float,
    state: ScanState = ScanState.COMPLETED,
) -> ScanReport:
    """Build a ScanReport; the order of ``results`` does not matter."""
    ordered = sorted(results, key=lambda r: r.file_path)

    findings: list[Finding] = []
    issues: list[FileIssue] = []
    for result in ordered:
        findings.extend(result.findings)
        issues.extend(result.issues)

    # Stable sort keeps each file's layer order for equal keys
    findings.sort(key=finding_sort_key)

    return ScanReport(
        root=root,
        findings=tuple(findings),
        issues=tuple(issues),
        files_scanned=files_scanned,
        duration=duration,
        state=state,
    )
