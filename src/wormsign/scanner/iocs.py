"""Indicators of compromise for Shai-Hulud 2.0 — filenames, hashes, patterns, hooks."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import yaml

from wormsign.scanner.models import Severity


@dataclass(frozen=True)
class PatternRule:
    """A line-level detection pattern with compiled regex and metadata."""

    name: str
    regex: re.Pattern[str]
    category: str
    description: str
    severity: Severity


@dataclass(frozen=True)
class HookRule:
    """A command fragment that makes an install-time hook dangerous."""

    regex: re.Pattern[str]
    description: str


def _rule(
    name: str,
    pattern: str,
    category: str,
    description: str,
    severity: Severity,
    flags: int = 0,
) -> PatternRule:
    return PatternRule(
        name=name,
        regex=re.compile(pattern, flags),
        category=category,
        description=description,
        severity=severity,
    )


MALICIOUS_FILENAMES: frozenset[str] = frozenset({"setup_bun.js", "bun_environment.js"})

# SHA-256 of known payload variants (Netskope IOCs)
MALICIOUS_HASHES: frozenset[str] = frozenset(
    {
        "62ee164b9b306250c1172583f138c9614139264f889fa99614903c12755468d0",
        "f099c5d9ec417d4445a0328ac0ada9cde79fc37410914103ae9c609cbc0ee068",
        "cbb9bc5a8496243e02f3cc080efbe3e4a1430ba0671f2e43a202bf45b05479cd",
        "a3894003ad1d293ba96d77881ccd2071446dc3f65f434669b49b3da92421901a",
    }
)

DANGEROUS_HOOKS: tuple[str, ...] = ("preinstall", "install", "postinstall", "preuninstall")

PATTERNS: tuple[PatternRule, ...] = (
    _rule(
        "sha1hulud_runner",
        r"SHA1HULUD",
        "marker",
        "Shai-Hulud runner identifier",
        Severity.CRITICAL,
        re.IGNORECASE,
    ),
    _rule(
        "second_coming_marker",
        r"Sha1-Hulud:\s*The\s*Second\s*Coming",
        "marker",
        "Shai-Hulud 2.0 marker string",
        Severity.CRITICAL,
        re.IGNORECASE,
    ),
    _rule(
        "setup_bun_reference",
        r"setup_bun\.js",
        "payload_reference",
        "Malicious setup file reference",
        Severity.CRITICAL,
    ),
    _rule(
        "bun_environment_reference",
        r"bun_environment\.js",
        "payload_reference",
        "Malicious environment file reference",
        Severity.CRITICAL,
    ),
    _rule(
        "cloud_secret_enumeration",
        r"list_AWS_secrets|list_GCP_secrets|list_Azure_secrets",
        "credential_theft",
        "Cloud secrets enumeration function",
        Severity.CRITICAL,
    ),
    _rule(
        "github_package_takeover",
        r"githubGetPackagesByMaintainer|githubUpdatePackage",
        "github_abuse",
        "Malicious GitHub package functions",
        Severity.CRITICAL,
    ),
    _rule(
        "github_automation",
        r"github_save_file|githubListRepos",
        "github_abuse",
        "Suspicious GitHub automation",
        Severity.HIGH,
    ),
    _rule(
        "gh_token_extraction",
        r"gh\s+auth\s+token",
        "credential_theft",
        "GitHub CLI token extraction",
        Severity.HIGH,
    ),
    _rule(
        "npmrc_access",
        r"\.npmrc",
        "credential_theft",
        "NPM config file access",
        Severity.MEDIUM,
    ),
    _rule(
        "npm_token",
        r"NPM_TOKEN|npm_token",
        "token_reference",
        "NPM token reference",
        Severity.HIGH,
    ),
    _rule(
        "github_token",
        r"GITHUB_TOKEN|GH_TOKEN",
        "token_reference",
        "GitHub token environment variable",
        Severity.MEDIUM,
    ),
    _rule(
        "trufflehog",
        r"trufflehog",
        "credential_theft",
        "Secret scanning tool reference",
        Severity.HIGH,
        re.IGNORECASE,
    ),
    _rule(
        "runner_config_access",
        r"actions/runner/config",
        "runner_abuse",
        "GitHub Actions runner config access",
        Severity.HIGH,
    ),
    _rule(
        "discussion_workflow",
        r"discussion\.ya?ml",
        "workflow",
        "Suspicious workflow filename",
        Severity.HIGH,
    ),
    _rule(
        "self_hosted_runner",
        r"runs-on:\s*\[?\s*self-hosted",
        "runner_abuse",
        "Self-hosted runner configuration",
        Severity.MEDIUM,
    ),
    _rule(
        "curl_pipe_shell",
        r"curl.*\|\s*(sh|bash|node)",
        "remote_execution",
        "Remote code execution via curl pipe",
        Severity.HIGH,
    ),
    _rule(
        "wget_pipe_shell",
        r"wget.*\|\s*(sh|bash|node)",
        "remote_execution",
        "Remote code execution via wget pipe",
        Severity.HIGH,
    ),
    _rule(
        "aws_credentials_file",
        r"~/\.aws/credentials",
        "credential_theft",
        "AWS credentials file access",
        Severity.HIGH,
    ),
    _rule(
        "gcp_credentials_file",
        r"application_default_credentials\.json",
        "credential_theft",
        "GCP credentials file access",
        Severity.HIGH,
    ),
    _rule(
        "azure_profile",
        r"azureProfile\.json",
        "credential_theft",
        "Azure profile access",
        Severity.HIGH,
    ),
    _rule(
        "public_publish",
        r"npm\s+publish\s+--access\s+public",
        "propagation",
        "Public npm publish command",
        Severity.MEDIUM,
    ),
)

HOOK_FRAGMENTS: tuple[HookRule, ...] = (
    HookRule(re.compile(r"setup_bun"), "Malicious setup script"),
    HookRule(re.compile(r"bun_environment"), "Malicious environment script"),
    HookRule(re.compile(r"node\s+-e"), "Inline node code execution"),
    HookRule(re.compile(r"curl.*\|"), "Piped curl command"),
    HookRule(re.compile(r"wget.*\|"), "Piped wget command"),
    HookRule(re.compile(r"eval\("), "Eval code execution"),
    HookRule(re.compile(r"Function\("), "Dynamic function creation"),
)

# Historical npm compromises, exact versions only
COMPROMISED_PACKAGES: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "event-stream": frozenset({"3.3.6"}),
        "flatmap-stream": frozenset({"0.1.0", "0.1.1"}),
        "ua-parser-js": frozenset({"0.7.29", "0.8.0", "1.0.0"}),
        "coa": frozenset({"2.0.3", "2.0.4", "2.1.1", "2.1.3", "3.0.1", "3.1.3"}),
        "rc": frozenset({"1.2.9", "1.3.9", "2.3.9"}),
        "node-ipc": frozenset({"10.1.1", "10.1.2", "10.1.3"}),
    }
)


@dataclass(frozen=True)
class IocRegistry:
    """Read-only signature tables shared by every detector thread."""

    filenames: frozenset[str] = MALICIOUS_FILENAMES
    hashes: frozenset[str] = MALICIOUS_HASHES
    patterns: tuple[PatternRule, ...] = PATTERNS
    hook_fragments: tuple[HookRule, ...] = HOOK_FRAGMENTS
    dangerous_hooks: tuple[str, ...] = DANGEROUS_HOOKS
    packages: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: COMPROMISED_PACKAGES
    )

    def lookup_filename(self, name: str) -> Severity | None:
        return Severity.CRITICAL if name in self.filenames else None

    def lookup_hash(self, sha256: str) -> Severity | None:
        return Severity.CRITICAL if sha256.lower() in self.hashes else None

    def lookup_package(self, name: str, version: str) -> Severity | None:
        versions = self.packages.get(name)
        if versions is not None and version in versions:
            return Severity.CRITICAL
        return None

    def is_targeted_package(self, name: str) -> bool:
        return name in self.packages

    def iter_patterns(self) -> Iterator[PatternRule]:
        return iter(self.patterns)

    def iter_dangerous_hook_fragments(self) -> Iterator[HookRule]:
        return iter(self.hook_fragments)

    def extended(
        self,
        filenames: Iterable[str] = (),
        hashes: Iterable[str] = (),
        packages: Mapping[str, Iterable[str]] | None = None,
    ) -> IocRegistry:
        """Return a new registry with additional entries; self is untouched."""
        merged = {name: set(versions) for name, versions in self.packages.items()}
        for name, versions in (packages or {}).items():
            merged.setdefault(name, set()).update(str(v) for v in versions)

        return IocRegistry(
            filenames=self.filenames | frozenset(filenames),
            hashes=self.hashes | frozenset(h.lower() for h in hashes),
            patterns=self.patterns,
            hook_fragments=self.hook_fragments,
            dangerous_hooks=self.dangerous_hooks,
            packages=MappingProxyType(
                {name: frozenset(v) for name, v in merged.items()}
            ),
        )


REGISTRY = IocRegistry()


def load_registry(path: str | Path, base: IocRegistry = REGISTRY) -> IocRegistry:
    """Extend ``base`` with the indicators listed in a YAML IOC file."""
    text = Path(path).read_text(encoding="utf-8")
    return load_registry_from_string(text, base=base)


def load_registry_from_string(text: str, base: IocRegistry = REGISTRY) -> IocRegistry:
    data = yaml.safe_load(text)
    if data is None:
        return base
    if not isinstance(data, dict):
        raise ValueError("IOC file must be a mapping")

    filenames = _string_list(data, "filenames")
    hashes = _string_list(data, "hashes")
    for h in hashes:
        if not re.fullmatch(r"[0-9a-fA-F]{64}", h):
            raise ValueError(f"Not a SHA-256 hex digest: {h!r}")

    packages_raw = data.get("packages") or {}
    if not isinstance(packages_raw, dict):
        raise ValueError("'packages' must map package names to version lists")
    packages: dict[str, list[str]] = {}
    for name, versions in packages_raw.items():
        if isinstance(versions, str):
            versions = [versions]
        if not isinstance(versions, list):
            raise ValueError(f"Versions for {name!r} must be a list")
        packages[str(name)] = [str(v) for v in versions]

    return base.extended(filenames=filenames, hashes=hashes, packages=packages)


def _string_list(data: dict, key: str) -> list[str]:
    raw = data.get(key) or []
    if not isinstance(raw, list):
        raise ValueError(f"'{key}' must be a list")
    return [str(item) for item in raw]
