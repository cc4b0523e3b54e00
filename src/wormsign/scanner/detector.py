"""Per-file detection — filename, hash, line pattern, manifest and lockfile checks.

Every layer is an independent function of a path and its content; none of
them short-circuits another, so a single file can produce findings from
several layers at once.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import PurePath

import yaml

from wormsign.scanner.iocs import REGISTRY, IocRegistry
from wormsign.scanner.models import (
    FileIssue,
    FileResult,
    Finding,
    FindingKind,
    IssueKind,
    Severity,
)

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"
NPM_LOCKFILE = "package-lock.json"
PNPM_LOCKFILES = ("pnpm-lock.yaml", "pnpm-lock.yml")

DEPENDENCY_SECTIONS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

# Max characters of a source line kept as finding context
CONTEXT_WIDTH = 100

_RANGE_PREFIX = re.compile(r"^[\^~=v]+")
_PLAIN_VERSION = re.compile(r"^\d+\.\d+\.\d+[0-9A-Za-z.+\-]*$")


def detect(
    file_path: str | PurePath,
    content: bytes,
    registry: IocRegistry = REGISTRY,
) -> list[Finding]:
    """Run every detection layer on one file and return its findings."""
    return list(inspect(file_path, content, registry).findings)


def inspect(
    file_path: str | PurePath,
    content: bytes,
    registry: IocRegistry = REGISTRY,
    max_text_bytes: int | None = None,
) -> FileResult:
    """Like :func:`detect`, but also report why parts of a file were skipped."""
    path = str(file_path)
    name = PurePath(path).name
    findings: list[Finding] = []
    issues: list[FileIssue] = []

    findings.extend(check_filename(path, registry))
    findings.extend(check_hash(path, content, registry))

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        logger.debug("Not UTF-8 text, skipping textual checks: %s", path)
        issues.append(FileIssue(path, IssueKind.DECODE, f"not UTF-8 text: {e.reason}"))
        return FileResult(path, tuple(findings), tuple(issues))

    if max_text_bytes is None or len(content) <= max_text_bytes:
        findings.extend(check_lines(path, text, registry))
    else:
        logger.debug("Skipping line patterns for large file %s", path)

    if name in (MANIFEST_NAME, NPM_LOCKFILE):
        try:
            document = json.loads(text)
        except (ValueError, RecursionError) as e:
            logger.debug("Malformed JSON in %s: %s", path, e)
            issues.append(FileIssue(path, IssueKind.PARSE, f"invalid JSON: {e}"))
        else:
            if name == MANIFEST_NAME:
                findings.extend(check_manifest_hooks(path, document, registry))
                findings.extend(check_dependencies(path, document, registry))
            else:
                findings.extend(check_npm_lockfile(path, document, registry))
    elif name in PNPM_LOCKFILES:
        try:
            document = yaml.safe_load(text)
        except (yaml.YAMLError, RecursionError) as e:
            logger.debug("Malformed YAML in %s: %s", path, e)
            issues.append(FileIssue(path, IssueKind.PARSE, "invalid YAML"))
        else:
            findings.extend(check_pnpm_lockfile(path, document, registry))

    return FileResult(path, tuple(findings), tuple(issues))


def check_filename(file_path: str, registry: IocRegistry = REGISTRY) -> list[Finding]:
    name = PurePath(file_path).name
    severity = registry.lookup_filename(name)
    if severity is None:
        return []
    return [
        Finding(
            file_path=file_path,
            kind=FindingKind.MALICIOUS_FILENAME,
            severity=severity,
            description=f"Known malicious file: {name}",
            matched_text=name,
        )
    ]


def check_hash(
    file_path: str,
    content: bytes,
    registry: IocRegistry = REGISTRY,
) -> list[Finding]:
    digest = hashlib.sha256(content).hexdigest()
    severity = registry.lookup_hash(digest)
    if severity is None:
        return []
    return [
        Finding(
            file_path=file_path,
            kind=FindingKind.HASH_MATCH,
            severity=severity,
            description=f"File matches known malicious hash: {digest[:16]}...",
            matched_text=digest,
        )
    ]


def check_lines(
    file_path: str,
    text: str,
    registry: IocRegistry = REGISTRY,
) -> list[Finding]:
    """Scan text line by line; one finding per matching (line, pattern) pair."""
    findings: list[Finding] = []

    for line_num, line in enumerate(text.split("\n"), start=1):
        line = line.rstrip("\r")
        for rule in registry.iter_patterns():
            match = rule.regex.search(line)
            if match:
                findings.append(
                    Finding(
                        file_path=file_path,
                        kind=FindingKind.MARKER_PATTERN,
                        severity=rule.severity,
                        description=rule.description,
                        category=rule.category,
                        line=line_num,
                        context=truncate(line.strip()),
                        matched_text=match.group(0),
                    )
                )

    return findings


def check_manifest_hooks(
    file_path: str,
    manifest: object,
    registry: IocRegistry = REGISTRY,
) -> list[Finding]:
    """Flag install-time lifecycle scripts that run dangerous commands."""
    if not isinstance(manifest, dict):
        return []
    scripts = manifest.get("scripts")
    if not isinstance(scripts, dict):
        return []

    findings: list[Finding] = []
    for hook in registry.dangerous_hooks:
        command = scripts.get(hook)
        if not isinstance(command, str):
            continue
        for rule in registry.iter_dangerous_hook_fragments():
            match = rule.regex.search(command)
            if match:
                findings.append(
                    Finding(
                        file_path=file_path,
                        kind=FindingKind.DANGEROUS_HOOK,
                        severity=Severity.CRITICAL,
                        description=f"{rule.description} in '{hook}' hook",
                        category=hook,
                        context=truncate(command),
                        matched_text=match.group(0),
                    )
                )
    return findings


def check_dependencies(
    file_path: str,
    manifest: object,
    registry: IocRegistry = REGISTRY,
) -> list[Finding]:
    """Flag declared dependencies on compromised package versions."""
    if not isinstance(manifest, dict):
        return []

    findings: list[Finding] = []
    for section in DEPENDENCY_SECTIONS:
        deps = manifest.get(section)
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            if not registry.is_targeted_package(name):
                continue
            version = normalize_version(spec) if isinstance(spec, str) else ""
            infected = ", ".join(sorted(registry.packages[name]))
            if version and registry.lookup_package(name, version):
                findings.append(
                    _package_finding(
                        file_path,
                        name,
                        version,
                        Severity.CRITICAL,
                        f"Compromised package: {name} @ {version}",
                        f"Infected versions: {infected}",
                    )
                )
            else:
                shown = spec if isinstance(spec, str) else "unknown"
                findings.append(
                    _package_finding(
                        file_path,
                        name,
                        shown,
                        Severity.MEDIUM,
                        f"Package {name} was targeted (your version {shown} may be safe)",
                        f"Infected versions: {infected}",
                    )
                )
    return findings


def check_npm_lockfile(
    file_path: str,
    lockfile: object,
    registry: IocRegistry = REGISTRY,
) -> list[Finding]:
    """Check a package-lock.json (npm v6 and v7+ layouts)."""
    if not isinstance(lockfile, dict):
        return []

    resolved: list[tuple[str, str]] = []

    packages = lockfile.get("packages")
    if isinstance(packages, dict):
        for key, info in packages.items():
            if not key or not isinstance(info, dict):
                continue
            name = key.rsplit("node_modules/", 1)[-1]
            version = info.get("version")
            if isinstance(version, str):
                resolved.append((name, version))

    dependencies = lockfile.get("dependencies")
    if isinstance(dependencies, dict):
        _collect_v6_dependencies(dependencies, resolved)

    return _lockfile_findings(file_path, resolved, registry)


def check_pnpm_lockfile(
    file_path: str,
    lockfile: object,
    registry: IocRegistry = REGISTRY,
) -> list[Finding]:
    """Check a pnpm-lock.yaml ``packages`` section."""
    if not isinstance(lockfile, dict):
        return []
    packages = lockfile.get("packages")
    if not isinstance(packages, dict):
        return []

    resolved = []
    for key in packages:
        parsed = _parse_pnpm_key(str(key))
        if parsed:
            resolved.append(parsed)
    return _lockfile_findings(file_path, resolved, registry)


def normalize_version(spec: str) -> str:
    """Reduce a dependency spec to a plain version, or '' if it is a range."""
    version = _RANGE_PREFIX.sub("", spec.strip())
    return version if _PLAIN_VERSION.match(version) else ""


def truncate(text: str, width: int = CONTEXT_WIDTH) -> str:
    if len(text) <= width:
        return text
    return text[:width] + "..."


def _collect_v6_dependencies(deps: dict, resolved: list[tuple[str, str]]) -> None:
    for name, info in deps.items():
        if not isinstance(info, dict):
            continue
        version = info.get("version")
        if isinstance(version, str):
            resolved.append((name, version))
        nested = info.get("dependencies")
        if isinstance(nested, dict):
            _collect_v6_dependencies(nested, resolved)


def _parse_pnpm_key(key: str) -> tuple[str, str] | None:
    # "/name@1.0.0", "/@scope/name@1.0.0(peer@2.0.0)", "name@1.0.0", "/name/1.0.0"
    key = key.lstrip("/").split("(", 1)[0]
    at = key.rfind("@")
    if at > 0:
        return key[:at], key[at + 1 :]
    if "/" in key:
        name, _, version = key.rpartition("/")
        return name, version
    return None


def _lockfile_findings(
    file_path: str,
    resolved: list[tuple[str, str]],
    registry: IocRegistry,
) -> list[Finding]:
    findings: list[Finding] = []
    seen: set[tuple[str, str]] = set()
    for name, version in resolved:
        if (name, version) in seen:
            continue
        seen.add((name, version))
        severity = registry.lookup_package(name, version)
        if severity is None:
            continue
        infected = ", ".join(sorted(registry.packages[name]))
        findings.append(
            _package_finding(
                file_path,
                name,
                version,
                severity,
                f"Compromised package in lockfile: {name} @ {version}",
                f"Infected versions: {infected}",
            )
        )
    return findings


def _package_finding(
    file_path: str,
    name: str,
    version: str,
    severity: Severity,
    description: str,
    context: str,
) -> Finding:
    return Finding(
        file_path=file_path,
        kind=FindingKind.COMPROMISED_PACKAGE,
        severity=severity,
        description=description,
        category=f"{name}@{version}",
        context=truncate(context),
        matched_text=f"{name}@{version}",
    )
