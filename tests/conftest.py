"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from wormsign.scanner.engine import ScanConfig


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def malicious_dir(fixtures_dir: Path) -> Path:
    return fixtures_dir / "malicious"


@pytest.fixture
def clean_dir(fixtures_dir: Path) -> Path:
    return fixtures_dir / "clean"


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A resolved, empty project root."""
    return tmp_path.resolve()


@pytest.fixture
def scan_config(project: Path) -> ScanConfig:
    return ScanConfig(root=project, workers=2)
