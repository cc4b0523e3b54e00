"""Tests for the scan engine: traversal, scheduling, cancellation, progress."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from wormsign.scanner.engine import (
    ProgressSnapshot,
    ScanConfig,
    ScanEngine,
    ScanError,
    scan_directory,
)
from wormsign.scanner.models import FindingKind, IssueKind, ScanState, Severity


def _write(root: Path, rel: str, text: str = "") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestScanConfig:
    def test_rejects_zero_workers(self, project: Path):
        with pytest.raises(ValueError):
            ScanConfig(root=project, workers=0)

    def test_root_coerced_to_path(self, project: Path):
        assert ScanConfig(root=str(project), workers=1).root == project


class TestScanDirectory:
    def test_malicious_samples(self, malicious_dir: Path):
        report = scan_directory(malicious_dir, workers=2)
        assert report.state == ScanState.COMPLETED
        assert report.files_scanned == 4
        assert not report.summary.passed
        names = {Path(f.file_path).name for f in report.findings if f.kind == FindingKind.MALICIOUS_FILENAME}
        assert names == {"setup_bun.js", "bun_environment.js"}
        kinds = {f.kind for f in report.findings}
        assert FindingKind.DANGEROUS_HOOK in kinds
        assert FindingKind.COMPROMISED_PACKAGE in kinds

    def test_clean_samples(self, clean_dir: Path):
        report = scan_directory(clean_dir)
        assert report.files_scanned == 3
        assert report.findings == ()
        assert report.summary.passed

    def test_findings_are_sorted(self, malicious_dir: Path):
        report = scan_directory(malicious_dir)
        ranks = [f.severity.rank for f in report.findings]
        assert ranks == sorted(ranks)

    def test_same_report_for_any_worker_count(self, malicious_dir: Path):
        one = scan_directory(malicious_dir, workers=1)
        many = scan_directory(malicious_dir, workers=8)
        assert one.findings == many.findings
        assert one.summary == many.summary

    def test_empty_directory(self, project: Path):
        report = scan_directory(project)
        assert report.files_scanned == 0
        assert report.summary.total == 0
        assert report.state == ScanState.COMPLETED

    def test_paths_are_absolute_under_root(self, project: Path):
        _write(project, "src/a.js", "SHA1HULUD\n")
        report = scan_directory(project)
        assert report.root == str(project)
        assert report.findings[0].file_path == str(project / "src" / "a.js")


class TestTraversal:
    def test_node_modules_skipped_by_default(self, project: Path):
        _write(project, "node_modules/evil/setup_bun.js")
        _write(project, "index.js")
        report = scan_directory(project)
        assert report.files_scanned == 1
        assert report.findings == ()

    def test_node_modules_included(self, project: Path):
        _write(project, "node_modules/evil/setup_bun.js")
        report = scan_directory(project, include_node_modules=True)
        assert report.files_scanned == 1
        assert report.summary.critical == 1

    def test_always_skipped_dirs(self, project: Path):
        for d in (".git", "vendor", "dist", "build", "__pycache__"):
            _write(project, f"{d}/setup_bun.js")
        report = scan_directory(project, include_node_modules=True)
        assert report.files_scanned == 0

    def test_out_of_scope_files_not_counted(self, project: Path):
        _write(project, "README.md", "SHA1HULUD")
        _write(project, "app.py", "SHA1HULUD")
        _write(project, "run.sh", "echo hi")
        report = scan_directory(project)
        assert report.files_scanned == 1
        assert report.findings == ()

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs mkfifo")
    def test_special_files_skipped(self, project: Path):
        os.mkfifo(project / "pipe.js")
        _write(project, "a.js")
        report = scan_directory(project)
        assert report.files_scanned == 1

    @pytest.mark.skipif(
        not hasattr(os, "geteuid") or os.geteuid() == 0,
        reason="root can read any file",
    )
    def test_unreadable_file_is_recorded(self, project: Path):
        locked = _write(project, "locked.js", "SHA1HULUD")
        _write(project, "ok.js", "SHA1HULUD")
        locked.chmod(0)
        try:
            report = scan_directory(project)
        finally:
            locked.chmod(0o644)
        assert report.state == ScanState.COMPLETED
        assert [i.file_path for i in report.read_errors] == [str(locked)]
        assert report.summary.critical == 1

    def test_binary_file_is_not_a_read_error(self, project: Path):
        (project / "blob.js").write_bytes(b"\xff\xfe\x00\x01")
        report = scan_directory(project)
        assert report.read_errors == ()
        assert [i.kind for i in report.issues] == [IssueKind.DECODE]


class TestRootErrors:
    def test_missing_root(self, project: Path):
        engine = ScanEngine(ScanConfig(root=project / "nope", workers=1))
        with pytest.raises(ScanError, match="does not exist"):
            engine.scan()
        assert engine.state == ScanState.FAILED

    def test_root_is_a_file(self, project: Path):
        path = _write(project, "a.js")
        with pytest.raises(ScanError, match="not a directory"):
            scan_directory(path)

    def test_engine_runs_once(self, scan_config: ScanConfig):
        engine = ScanEngine(scan_config)
        engine.scan()
        with pytest.raises(RuntimeError):
            engine.scan()


class TestCancellation:
    def test_cancel_before_start(self, project: Path):
        for i in range(3):
            _write(project, f"f{i}.js", "SHA1HULUD")
        cancel = threading.Event()
        cancel.set()
        engine = ScanEngine(ScanConfig(root=project, workers=2), cancel_event=cancel)
        report = engine.scan()
        assert engine.state == ScanState.CANCELLED
        assert report.partial
        assert report.files_scanned == 0
        assert report.findings == ()

    def test_cancel_mid_scan_keeps_partial_results(self, project: Path):
        for i in range(5):
            _write(project, f"f{i}.js", "SHA1HULUD")

        engine: ScanEngine

        def on_progress(snapshot: ProgressSnapshot) -> None:
            engine.cancel()

        engine = ScanEngine(ScanConfig(root=project, workers=1), on_progress=on_progress)
        report = engine.scan()
        assert report.state == ScanState.CANCELLED
        assert report.files_scanned == 1
        assert report.summary.critical == 1
        assert report.findings[0].file_path == str(project / "f0.js")


class TestProgress:
    def test_progress_reaches_totals(self, project: Path):
        for i in range(4):
            _write(project, f"f{i}.js")
        snapshots: list[ProgressSnapshot] = []
        engine = ScanEngine(ScanConfig(root=project, workers=2), on_progress=snapshots.append)
        engine.scan()

        assert len(snapshots) == 4
        assert [s.files_processed for s in snapshots] == [1, 2, 3, 4]
        assert all(s.files_processed <= s.files_discovered for s in snapshots)

        final = engine.progress.snapshot()
        assert final.files_processed == final.files_discovered == 4
        assert final.discovery_done

    def test_failing_callback_does_not_abort_scan(self, project: Path):
        _write(project, "a.js", "SHA1HULUD")

        def broken(snapshot: ProgressSnapshot) -> None:
            raise RuntimeError("display went away")

        engine = ScanEngine(ScanConfig(root=project, workers=1), on_progress=broken)
        report = engine.scan()
        assert report.state == ScanState.COMPLETED
        assert report.summary.critical == 1
        assert report.findings[0].severity == Severity.CRITICAL


class TestPerFileFailures:
    def test_nested_lockfile_does_not_abort_scan(self, project: Path):
        _write(project, "a.js", "SHA1HULUD\n")
        _write(project, "pnpm-lock.yaml", "packages: " + "[" * 5000 + "]" * 5000)
        report = scan_directory(project, workers=2)
        assert report.state == ScanState.COMPLETED
        assert report.files_scanned == 2
        assert report.summary.critical == 1
        assert [(Path(i.file_path).name, i.kind) for i in report.issues] == [
            ("pnpm-lock.yaml", IssueKind.PARSE)
        ]

    def test_detector_crash_is_confined_to_its_file(
        self, project: Path, monkeypatch: pytest.MonkeyPatch
    ):
        from wormsign.scanner import engine as engine_module

        real_inspect = engine_module.inspect

        def flaky_inspect(file_path, *args, **kwargs):
            if file_path.endswith("boom.js"):
                raise RuntimeError("detector bug")
            return real_inspect(file_path, *args, **kwargs)

        monkeypatch.setattr(engine_module, "inspect", flaky_inspect)
        _write(project, "boom.js", "SHA1HULUD\n")
        _write(project, "ok.js", "SHA1HULUD\n")

        report = scan_directory(project, workers=2)
        assert report.state == ScanState.COMPLETED
        assert [f.file_path for f in report.findings] == [str(project / "ok.js")]
        assert [(i.file_path, i.kind) for i in report.issues] == [
            (str(project / "boom.js"), IssueKind.DETECT)
        ]
        assert report.read_errors == ()

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
    def test_dangling_symlink_is_one_read_error(self, project: Path):
        os.symlink(project / "missing.js", project / "bad.js")
        _write(project, "a.js", "SHA1HULUD\n")
        _write(project, "b.js", "NPM_TOKEN\n")
        _write(project, "c.js", "const x = 1;\n")

        report = scan_directory(project, workers=2)
        assert report.state == ScanState.COMPLETED
        assert report.files_scanned == 4
        assert len(report.read_errors) == 1
        assert report.read_errors[0].file_path == str(project / "bad.js")
        assert [(Path(f.file_path).name, f.severity) for f in report.findings] == [
            ("a.js", Severity.CRITICAL),
            ("b.js", Severity.HIGH),
        ]
