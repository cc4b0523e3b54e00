"""Scanner data models — severities, findings, per-file results and reports."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass


class Severity(enum.Enum):
    """Finding severity level, ordered CRITICAL > HIGH > MEDIUM > LOW."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank — 0 is the worst severity."""
        return _RANKS[self]

    @property
    def label(self) -> str:
        return self.value.upper()

    @classmethod
    def worst(cls, severities: Iterable[Severity]) -> Severity | None:
        """Return the most severe level in ``severities``, or None if empty."""
        return min(severities, key=lambda s: s.rank, default=None)


_RANKS = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


class FindingKind(enum.Enum):
    """Which detection layer produced a finding."""

    MALICIOUS_FILENAME = "malicious_filename"
    HASH_MATCH = "hash_match"
    MARKER_PATTERN = "marker_pattern"
    DANGEROUS_HOOK = "dangerous_hook"
    COMPROMISED_PACKAGE = "compromised_package"


class IssueKind(enum.Enum):
    """Per-file conditions that are recorded but never fail a scan."""

    READ = "read"
    DECODE = "decode"
    PARSE = "parse"
    DETECT = "detect"


class ScanState(enum.Enum):
    """Lifecycle state of a scan."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class Finding:
    """A single detected indicator of compromise.

    ``category`` carries the kind-specific payload: the pattern category
    for MARKER_PATTERN, the hook name for DANGEROUS_HOOK and
    ``name@version`` for COMPROMISED_PACKAGE.
    """

    file_path: str
    kind: FindingKind
    severity: Severity
    description: str
    category: str = ""
    line: int | None = None
    context: str = ""
    matched_text: str = ""

    def to_dict(self) -> dict:
        data = {
            "file_path": self.file_path,
            "kind": self.kind.value,
            "severity": self.severity.label,
            "description": self.description,
            "category": self.category,
            "context": self.context,
            "matched_text": self.matched_text,
        }
        if self.line is not None:
            data["line"] = self.line
        return data


@dataclass(frozen=True)
class FileIssue:
    """A file that could not be fully inspected."""

    file_path: str
    kind: IssueKind
    message: str

    def to_dict(self) -> dict:
        return {
            "file_path": self.file_path,
            "kind": self.kind.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class FileResult:
    """Everything the detector learned about one file."""

    file_path: str
    findings: tuple[Finding, ...] = ()
    issues: tuple[FileIssue, ...] = ()


@dataclass(frozen=True)
class ScanSummary:
    """Finding counts per severity."""

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> ScanSummary:
        counts = dict.fromkeys(Severity, 0)
        for finding in findings:
            counts[finding.severity] += 1
        return cls(
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            medium=counts[Severity.MEDIUM],
            low=counts[Severity.LOW],
        )

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low

    @property
    def passed(self) -> bool:
        """CI verdict: no critical or high findings."""
        return self.critical == 0 and self.high == 0

    def count(self, severity: Severity) -> int:
        return getattr(self, severity.value)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "critical": self.critical,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
        }


@dataclass(frozen=True)
class ScanReport:
    """Aggregate result of a scan.

    The summary is always derived from ``findings``; there is no way to
    set it independently.
    """

    root: str
    findings: tuple[Finding, ...] = ()
    issues: tuple[FileIssue, ...] = ()
    files_scanned: int = 0
    duration: float = 0.0
    state: ScanState = ScanState.COMPLETED

    @property
    def summary(self) -> ScanSummary:
        return ScanSummary.from_findings(self.findings)

    @property
    def partial(self) -> bool:
        return self.state == ScanState.CANCELLED

    @property
    def read_errors(self) -> tuple[FileIssue, ...]:
        return tuple(i for i in self.issues if i.kind == IssueKind.READ)

    def by_severity(self, severity: Severity) -> list[Finding]:
        return [f for f in self.findings if f.severity == severity]

    def to_dict(self) -> dict:
        return {
            "root": self.root,
            "state": self.state.value,
            "files_scanned": self.files_scanned,
            "duration": round(self.duration, 3),
            "summary": self.summary.to_dict(),
            "findings": [f.to_dict() for f in self.findings],
            "issues": [i.to_dict() for i in self.issues],
        }
