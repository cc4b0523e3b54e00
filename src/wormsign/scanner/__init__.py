"""Detection engine — registry, classifier, detector, scheduler and aggregator."""

from wormsign.scanner.detector import detect
from wormsign.scanner.engine import ScanConfig, ScanEngine, ScanError, scan_directory
from wormsign.scanner.iocs import REGISTRY, IocRegistry, load_registry
from wormsign.scanner.models import Finding, FindingKind, ScanReport, ScanState, Severity

__all__ = [
    "REGISTRY",
    "Finding",
    "FindingKind",
    "IocRegistry",
    "ScanConfig",
    "ScanEngine",
    "ScanError",
    "ScanReport",
    "ScanState",
    "Severity",
    "detect",
    "load_registry",
    "scan_directory",
]
