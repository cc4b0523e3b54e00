"""TUI application — main loop for the interactive folder browser and scanner."""

from __future__ import annotations

import logging
import os
import signal
import sys
import threading
from pathlib import Path

from rich.console import Console
from rich.live import Live

from wormsign.scanner.engine import ScanConfig, ScanEngine, ScanError, default_workers
from wormsign.scanner.iocs import REGISTRY, IocRegistry
from wormsign.tui.display import TuiDisplay
from wormsign.tui.input import KeyboardInput
from wormsign.tui.state import BrowserState, ViewMode

logger = logging.getLogger(__name__)


class TuiApp:
    """Interactive browser: pick a folder, scan it, walk through the findings.

    Threading model:
    - Main thread: keyboard input + Rich Live rendering (this class)
    - Daemon thread: one ScanEngine.scan() per scan request
    """

    def __init__(
        self,
        state: BrowserState,
        registry: IocRegistry = REGISTRY,
        workers: int | None = None,
    ) -> None:
        self._state = state
        self._registry = registry
        self._workers = workers
        self._display = TuiDisplay()
        self._console = Console(stderr=True)
        self._engine: ScanEngine | None = None
        self._scan_thread: threading.Thread | None = None

    def run(self) -> None:
        """Run the TUI main loop. Blocks until quit."""
        state = self._state

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _signal_handler(signum: int, frame: object) -> None:
            self._quit()

        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)

        try:
            with KeyboardInput() as kb:
                with Live(
                    console=self._console,
                    screen=True,
                    refresh_per_second=10,
                ) as live:
                    while state.running:
                        key = kb.read(timeout=0.1)
                        if key is not None:
                            self.dispatch_key(key)
                        state.poll_scan()

                        size = os.get_terminal_size(sys.stderr.fileno())
                        layout = self._display.render(
                            state, height=size.lines, width=size.columns
                        )
                        live.update(layout)
        except Exception:
            logger.exception("TUI error")
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
            self.wait_for_scan()

    def dispatch_key(self, key: str) -> None:
        state = self._state

        # Global keys
        if key == "q":
            self._quit()
            return

        if key == "?" and state.mode not in (ViewMode.HELP, ViewMode.SCANNING):
            state.return_mode = state.mode
            state.mode = ViewMode.HELP
            return

        if state.mode == ViewMode.SELECT:
            self._handle_select_key(key)
        elif state.mode == ViewMode.SCANNING:
            self._handle_scanning_key(key)
        elif state.mode == ViewMode.RESULTS:
            self._handle_results_key(key)
        elif state.mode == ViewMode.HELP:
            # Any key leaves help
            state.mode = state.return_mode

    def _handle_select_key(self, key: str) -> None:
        state = self._state

        if key in ("j", "down"):
            state.move_cursor(1)
        elif key in ("k", "up"):
            state.move_cursor(-1)
        elif key in ("enter", "l", "right"):
            state.enter_selected()
        elif key in ("h", "left", "backspace"):
            state.go_parent()
        elif key == "n":
            state.toggle_node_modules()
            label = "included" if state.include_node_modules else "skipped"
            state.set_status(f"node_modules {label}")
        elif key in ("s", "space"):
            self.start_scan()
        elif key == "escape":
            self._quit()

    def _handle_scanning_key(self, key: str) -> None:
        if key in ("c", "escape") and self._engine is not None:
            self._engine.cancel()
            self._state.set_status("Cancelling, finishing in-flight files")

    def _handle_results_key(self, key: str) -> None:
        state = self._state

        if key in ("j", "down"):
            state.move_results_cursor(1)
        elif key in ("k", "up"):
            state.move_results_cursor(-1)
        elif key in ("b", "backspace", "escape"):
            state.back_to_select()
        elif key == "s" and state.scan_path is not None:
            self.start_scan(state.scan_path)

    def start_scan(self, path: Path | None = None) -> None:
        """Start a background scan of ``path`` (default: the highlighted folder)."""
        if self._scan_thread is not None and self._scan_thread.is_alive():
            return

        state = self._state
        target = path or state.selected_path()
        config = ScanConfig(
            root=target,
            include_node_modules=state.include_node_modules,
            workers=self._workers or default_workers(),
        )
        engine = ScanEngine(
            config,
            registry=self._registry,
            on_progress=state.set_progress,
        )
        state.begin_scan(target)

        def _worker() -> None:
            try:
                state.finish_scan(engine.scan())
            except ScanError as e:
                state.fail_scan(str(e))
            except Exception as e:
                logger.exception("Scan thread crashed")
                state.fail_scan(f"internal error: {e}")

        self._engine = engine
        self._scan_thread = threading.Thread(
            target=_worker, name="wormsign-scan", daemon=True
        )
        self._scan_thread.start()

    def _quit(self) -> None:
        self._state.running = False
        if self._engine is not None:
            self._engine.cancel()

    def wait_for_scan(self, timeout: float | None = None) -> None:
        if self._scan_thread is not None:
            self._scan_thread.join(timeout=timeout)
