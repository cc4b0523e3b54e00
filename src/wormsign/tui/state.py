"""Shared state between the scan thread and the TUI thread."""

from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

from wormsign.scanner.engine import ProgressSnapshot
from wormsign.scanner.models import ScanReport


class ViewMode(enum.Enum):
    """Which view the TUI is currently showing."""

    SELECT = "select"
    SCANNING = "scanning"
    RESULTS = "results"
    HELP = "help"


@dataclass(frozen=True)
class DirEntry:
    """One row of the folder browser."""

    name: str
    path: Path
    is_dir: bool


@dataclass
class BrowserState:
    """Shared state for the interactive browser.

    The scan thread calls set_progress / finish_scan / fail_scan
    (lock-guarded). The TUI thread reads via snapshot() and owns every
    other field (single-writer, no lock needed for those).
    """

    current_path: Path
    include_node_modules: bool = False

    # --- Guarded by _lock (written by scan thread) ---
    _progress: ProgressSnapshot | None = None
    _report: ScanReport | None = None
    _error: str = ""
    _scan_done: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock)

    # --- TUI-thread only (no lock needed) ---
    entries: list[DirEntry] = field(default_factory=list)
    cursor: int = 0
    scroll_offset: int = 0
    mode: ViewMode = ViewMode.SELECT
    return_mode: ViewMode = ViewMode.SELECT
    scan_path: Path | None = None
    report: ScanReport | None = None
    results_cursor: int = 0
    results_scroll: int = 0
    running: bool = True
    status_message: str = ""
    _status_expiry: float = 0.0

    def __post_init__(self) -> None:
        self.current_path = Path(self.current_path).resolve()
        if not self.entries:
            self.refresh_entries()

    # --- Folder browser ---

    def refresh_entries(self) -> None:
        """Re-list current_path: '..' first, then folders, then files."""
        entries: list[DirEntry] = []
        parent = self.current_path.parent
        if parent != self.current_path:
            entries.append(DirEntry("..", parent, True))

        dirs: list[DirEntry] = []
        files: list[DirEntry] = []
        try:
            children = list(self.current_path.iterdir())
        except OSError as e:
            children = []
            self.set_status(f"Cannot list {self.current_path}: {e.strerror or e}")

        for child in children:
            if child.name.startswith("."):
                continue
            try:
                is_dir = child.is_dir()
            except OSError:
                is_dir = False
            (dirs if is_dir else files).append(DirEntry(child.name, child, is_dir))

        dirs.sort(key=lambda e: e.name.lower())
        files.sort(key=lambda e: e.name.lower())
        self.entries = entries + dirs + files
        self.cursor = 0
        self.scroll_offset = 0

    def move_cursor(self, delta: int) -> None:
        self.cursor = self._clamp(self.cursor + delta, len(self.entries))

    def enter_selected(self) -> None:
        """Descend into the highlighted folder; files are ignored."""
        if not self.entries:
            return
        entry = self.entries[self.cursor]
        if entry.is_dir:
            self.current_path = entry.path.resolve()
            self.refresh_entries()

    def go_parent(self) -> None:
        parent = self.current_path.parent
        if parent != self.current_path:
            self.current_path = parent
            self.refresh_entries()

    def selected_path(self) -> Path:
        """Folder a scan should target: the highlighted folder, else the current one."""
        if self.entries:
            entry = self.entries[self.cursor]
            if entry.is_dir:
                return entry.path.resolve()
        return self.current_path

    def toggle_node_modules(self) -> None:
        self.include_node_modules = not self.include_node_modules

    # --- Scan lifecycle ---

    def begin_scan(self, path: Path) -> None:
        """Reset scan state before a scan thread is started (TUI thread)."""
        with self._lock:
            self._progress = None
            self._report = None
            self._error = ""
            self._scan_done = False
        self.scan_path = path
        self.report = None
        self.results_cursor = 0
        self.results_scroll = 0
        self.mode = ViewMode.SCANNING

    def set_progress(self, snapshot: ProgressSnapshot) -> None:
        """Record scan progress (called from the scan thread)."""
        with self._lock:
            self._progress = snapshot

    def finish_scan(self, report: ScanReport) -> None:
        """Hand over the finished report (called from the scan thread)."""
        with self._lock:
            self._report = report
            self._scan_done = True

    def fail_scan(self, message: str) -> None:
        """Record a fatal scan error (called from the scan thread)."""
        with self._lock:
            self._error = message
            self._scan_done = True

    def snapshot(self) -> tuple[ProgressSnapshot | None, bool, str]:
        """Return (progress, scan_done, error) consistently."""
        with self._lock:
            return self._progress, self._scan_done, self._error

    def poll_scan(self) -> bool:
        """Move to the results view once the scan thread is done.

        Returns True when a transition happened.
        """
        if self.mode != ViewMode.SCANNING:
            return False
        with self._lock:
            if not self._scan_done:
                return False
            report, error = self._report, self._error

        if error:
            self.mode = ViewMode.SELECT
            self.set_status(f"Scan failed: {error}")
        else:
            self.report = report
            self.mode = ViewMode.RESULTS
        return True

    def back_to_select(self) -> None:
        self.mode = ViewMode.SELECT
        self.report = None
        self.scan_path = None
        self.results_cursor = 0
        self.results_scroll = 0

    # --- Results navigation ---

    def move_results_cursor(self, delta: int) -> None:
        total = len(self.report.findings) if self.report else 0
        self.results_cursor = self._clamp(self.results_cursor + delta, total)

    # --- Misc ---

    def set_status(self, message: str, duration: float = 3.0) -> None:
        self.status_message = message
        self._status_expiry = time.time() + duration

    def active_status(self) -> str:
        if self.status_message and time.time() < self._status_expiry:
            return self.status_message
        self.status_message = ""
        return ""

    @staticmethod
    def _clamp(value: int, total: int) -> int:
        if total == 0:
            return 0
        return max(0, min(value, total - 1))


def scroll_window(cursor: int, offset: int, visible: int, total: int) -> int:
    """Return a scroll offset that keeps ``cursor`` inside the viewport."""
    visible = max(1, visible)
    if cursor < offset:
        offset = cursor
    elif cursor >= offset + visible:
        offset = cursor - visible + 1
    return max(0, min(offset, max(0, total - visible)))
