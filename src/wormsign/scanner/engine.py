"""Scan engine — walks a tree and runs the detector across a thread pool."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import NamedTuple

from wormsign.scanner.aggregate import aggregate
from wormsign.scanner.classifier import is_in_scope, prune_dir
from wormsign.scanner.detector import inspect
from wormsign.scanner.iocs import REGISTRY, IocRegistry
from wormsign.scanner.models import (
    FileIssue,
    FileResult,
    IssueKind,
    ScanReport,
    ScanState,
)

logger = logging.getLogger(__name__)

# Files larger than this (1 MB) skip the line-pattern layer
MAX_TEXT_BYTES = 1_000_000


def default_workers() -> int:
    return os.cpu_count() or 1


class ScanError(Exception):
    """Fatal scan failure — raised before any file is processed."""


@dataclass(frozen=True)
class ScanConfig:
    """Inputs for a single scan."""

    root: Path
    include_node_modules: bool = False
    workers: int = field(default_factory=default_workers)
    max_text_bytes: int | None = MAX_TEXT_BYTES

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root))
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")


class ProgressSnapshot(NamedTuple):
    """Point-in-time counters.

    The walk is lazy, so ``files_discovered`` counts files handed to a
    worker so far; it only equals the tree total once ``discovery_done``.
    """

    files_discovered: int
    files_processed: int
    current_file: str
    discovery_done: bool


class ScanProgress:
    """Advisory progress counters, safe to read from any thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._discovered = 0
        self._processed = 0
        self._current = ""
        self._discovery_done = False

    def file_discovered(self) -> None:
        with self._lock:
            self._discovered += 1

    def discovery_finished(self) -> None:
        with self._lock:
            self._discovery_done = True

    def file_processed(self, file_path: str) -> ProgressSnapshot:
        with self._lock:
            self._processed += 1
            self._current = file_path
            return self._snapshot()

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            files_discovered=self._discovered,
            files_processed=self._processed,
            current_file=self._current,
            discovery_done=self._discovery_done,
        )


ProgressCallback = Callable[[ProgressSnapshot], None]


class ScanEngine:
    """Runs one scan: IDLE -> RUNNING -> COMPLETED / CANCELLED / FAILED.

    Files are dispatched to a fixed-size thread pool as the walk discovers
    them. Cancellation is cooperative: the flag is checked before each
    dispatch, and files already handed to a worker are allowed to finish
    and are included in the (partial) report.
    """

    def __init__(
        self,
        config: ScanConfig,
        registry: IocRegistry = REGISTRY,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._on_progress = on_progress
        self._cancel = cancel_event or threading.Event()
        self._progress = ScanProgress()
        self._state = ScanState.IDLE
        self._walk_issues: list[FileIssue] = []

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def progress(self) -> ScanProgress:
        return self._progress

    def cancel(self) -> None:
        """Ask the scan to stop dispatching new files."""
        self._cancel.set()

    def scan(self) -> ScanReport:
        """Scan the configured root and return the aggregated report."""
        if self._state != ScanState.IDLE:
            raise RuntimeError("ScanEngine can only run once — create a new engine")

        root = self._config.root.resolve()
        try:
            _check_root(root)
        except ScanError:
            self._state = ScanState.FAILED
            raise

        self._state = ScanState.RUNNING
        logger.info(
            "Scanning %s with %d worker(s)", root, self._config.workers
        )
        start = time.monotonic()

        results, cancelled = self._run(self._walk(replace(self._config, root=root)))

        state = ScanState.CANCELLED if cancelled else ScanState.COMPLETED
        if self._walk_issues:
            results.append(
                FileResult(str(root), issues=tuple(self._walk_issues))
            )
        report = aggregate(
            results,
            root=str(root),
            files_scanned=self._progress.snapshot().files_processed,
            duration=time.monotonic() - start,
            state=state,
        )
        self._state = state
        logger.info(
            "Scan %s: %d file(s), %d finding(s) in %.2fs",
            state.value,
            report.files_scanned,
            len(report.findings),
            report.duration,
        )
        return report

    def _run(self, paths: Iterable[Path]) -> tuple[list[FileResult], bool]:
        workers = self._config.workers
        results: list[FileResult] = []
        cancelled = False

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="wormsign"
        ) as pool:
            pending: set[Future[FileResult]] = set()
            for path in paths:
                if self._cancel.is_set():
                    cancelled = True
                    logger.info("Scan cancelled — waiting for %d in-flight file(s)", len(pending))
                    break
                self._progress.file_discovered()
                pending.add(pool.submit(self._process, path))
                # Keep roughly one file per worker in flight
                if len(pending) >= workers:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    self._collect(done, results)

            self._progress.discovery_finished()
            while pending:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                self._collect(done, results)

        return results, cancelled

    def _collect(
        self, done: Iterable[Future[FileResult]], results: list[FileResult]
    ) -> None:
        for future in done:
            result = future.result()
            results.append(result)
            snapshot = self._progress.file_processed(result.file_path)
            if self._on_progress:
                try:
                    self._on_progress(snapshot)
                except Exception:
                    logger.warning("Progress callback failed", exc_info=True)

    def _process(self, path: Path) -> FileResult:
        file_path = str(path)
        try:
            content = path.read_bytes()
        except OSError as e:
            logger.debug("Skipping %s: %s", file_path, e)
            return FileResult(
                file_path,
                issues=(FileIssue(file_path, IssueKind.READ, _describe(e)),),
            )
        try:
            return inspect(
                file_path,
                content,
                self._registry,
                max_text_bytes=self._config.max_text_bytes,
            )
        except Exception as e:
            # Failures stay confined to this file
            logger.warning("Detection failed for %s", file_path, exc_info=True)
            return FileResult(
                file_path,
                issues=(
                    FileIssue(file_path, IssueKind.DETECT, f"detection failed: {e!r}"),
                ),
            )

    def _walk(self, config: ScanConfig) -> Iterator[Path]:
        """Walk the tree depth-first, yielding in-scope files."""
        root = config.root

        def _on_error(e: OSError) -> None:
            logger.debug("Cannot list %s: %s", e.filename, e)
            self._walk_issues.append(
                FileIssue(str(e.filename or root), IssueKind.READ, _describe(e))
            )

        for dirpath, dirs, files in os.walk(root, onerror=_on_error):
            # Prune skipped directories in-place
            dirs[:] = sorted(d for d in dirs if not prune_dir(d, config))

            for name in sorted(files):
                path = Path(dirpath) / name
                if not is_in_scope(path, config):
                    continue
                # Sockets, FIFOs and devices are never read
                if path.exists() and not path.is_file():
                    continue
                yield path


def scan_directory(
    root: str | Path,
    include_node_modules: bool = False,
    workers: int | None = None,
    registry: IocRegistry = REGISTRY,
) -> ScanReport:
    """Synchronous scan without progress reporting."""
    config = ScanConfig(
        root=Path(root),
        include_node_modules=include_node_modules,
        workers=workers or default_workers(),
    )
    return ScanEngine(config, registry=registry).scan()


def _check_root(root: Path) -> None:
    if not root.exists():
        raise ScanError(f"Scan root does not exist: {root}")
    if not root.is_dir():
        raise ScanError(f"Scan root is not a directory: {root}")
    try:
        with os.scandir(root):
            pass
    except OSError as e:
        raise ScanError(f"Scan root is not accessible: {root} ({_describe(e)})") from e


def _describe(e: OSError) -> str:
    return e.strerror or str(e)
