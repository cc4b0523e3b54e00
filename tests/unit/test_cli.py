"""Tests for CLI commands using Click's CliRunner."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from wormsign.cli import main


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    config_home = tmp_path / "config-home"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    for var in ("WORMSIGN_WORKERS", "WORMSIGN_INCLUDE_NODE_MODULES", "WORMSIGN_IOC_FILE"):
        monkeypatch.delenv(var, raising=False)
    return config_home / "wormsign"


def test_main_help():
    runner = CliRunner()
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "Shai-Hulud" in result.output
    assert "scan" in result.output
    assert "browse" in result.output


def test_main_version():
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_scan_help():
    runner = CliRunner()
    result = runner.invoke(main, ["scan", "--help"])
    assert result.exit_code == 0
    assert "DIRECTORY" in result.output
    assert "--json" in result.output


def test_scan_clean(clean_dir: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(clean_dir)])
    assert result.exit_code == 0
    assert "No indicators of compromise found." in result.output
    assert "PASS" in result.output


def test_scan_malicious(malicious_dir: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(malicious_dir)])
    assert result.exit_code == 1
    assert "CRITICAL" in result.output
    assert "FAIL" in result.output


def test_scan_medium_only_passes(fixtures_dir: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(fixtures_dir / "edge_cases")])
    assert result.exit_code == 0
    assert "MEDIUM" in result.output


def test_scan_missing_directory(tmp_path: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(tmp_path / "missing")])
    assert result.exit_code == 2
    assert "does not exist" in result.output


def test_scan_json(malicious_dir: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", "--json", str(malicious_dir)])
    assert result.exit_code == 1
    data = json.loads(result.output)
    assert data["state"] == "completed"
    assert data["files_scanned"] == 4
    assert data["summary"]["critical"] > 0
    assert data["summary"]["total"] == len(data["findings"])
    assert data["findings"][0]["severity"] == "CRITICAL"


def test_scan_include_node_modules(tmp_path: Path):
    project = tmp_path / "project"
    (project / "node_modules" / "evil").mkdir(parents=True)
    (project / "node_modules" / "evil" / "setup_bun.js").write_text("")

    runner = CliRunner()
    assert runner.invoke(main, ["scan", str(project)]).exit_code == 0
    assert runner.invoke(main, ["scan", "-n", str(project)]).exit_code == 1


def test_scan_with_ioc_file(tmp_path: Path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "stage2.js").write_text("")
    ioc_file = tmp_path / "iocs.yaml"
    ioc_file.write_text("filenames: [stage2.js]\n")

    runner = CliRunner()
    result = runner.invoke(main, ["scan", "--ioc-file", str(ioc_file), "--json", str(project)])
    assert result.exit_code == 1
    assert json.loads(result.output)["summary"]["critical"] == 1


def test_scan_with_invalid_ioc_file(tmp_path: Path):
    ioc_file = tmp_path / "iocs.yaml"
    ioc_file.write_text("hashes: [nothex]\n")

    runner = CliRunner()
    result = runner.invoke(main, ["scan", "--ioc-file", str(ioc_file), str(tmp_path)])
    assert result.exit_code == 2
    assert "SHA-256" in result.output


def test_invalid_config_file(isolated_config: Path, tmp_path: Path):
    isolated_config.mkdir(parents=True)
    (isolated_config / "config.yaml").write_text("- not a mapping\n")

    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(tmp_path)])
    assert result.exit_code == 2
    assert "Invalid configuration" in result.output


def test_browse_help():
    runner = CliRunner()
    result = runner.invoke(main, ["browse", "--help"])
    assert result.exit_code == 0
    assert "PATH" in result.output


def test_browse_needs_terminal(tmp_path: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["browse", str(tmp_path)])
    assert result.exit_code == 2
    assert "interactive terminal" in result.output
