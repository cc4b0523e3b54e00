"""TUI display — builds Rich renderables from BrowserState."""

from __future__ import annotations

from rich.console import Group
from rich.layout import Layout
from rich.markup import escape
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from wormsign.scanner.models import Finding, Severity
from wormsign.tui.state import BrowserState, ViewMode, scroll_window

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "bright_red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}


class TuiDisplay:
    """Builds Rich Layout objects from the current BrowserState."""

    def render(self, state: BrowserState, height: int = 24, width: int = 80) -> Layout:
        """Build the full screen layout from current state."""
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="body"),
            Layout(name="footer", size=4),
        )

        layout["header"].update(self._render_header())

        body_height = height - 7
        if state.mode == ViewMode.SELECT:
            layout["body"].update(self._render_select(state, body_height))
        elif state.mode == ViewMode.SCANNING:
            layout["body"].update(self._render_scanning(state))
        elif state.mode == ViewMode.RESULTS:
            layout["body"].update(self._render_results(state, body_height))
        elif state.mode == ViewMode.HELP:
            layout["body"].update(self._render_help())

        layout["footer"].update(self._render_footer(state))

        return layout

    def _render_header(self) -> Panel:
        title = Text.from_markup(
            "[bold red]wormsign[/bold red]  "
            "Shai-Hulud 2.0 npm supply chain attack detector"
        )
        return Panel(title, border_style="red")

    def _render_select(self, state: BrowserState, body_height: int) -> Panel:
        node_modules = (
            "[green]included[/green]" if state.include_node_modules else "[dim]skipped[/dim]"
        )
        info = Text.from_markup(
            f"Folder: [cyan]{escape(str(state.current_path))}[/cyan]\n"
            f"Scan target: [bold]{escape(str(state.selected_path()))}[/bold]   "
            f"node_modules: {node_modules}"
        )

        table = Table(
            show_header=False,
            expand=True,
            box=None,
            padding=(0, 1),
        )
        table.add_column("Name", ratio=1, no_wrap=True)

        visible_rows = max(1, body_height - 5)
        total = len(state.entries)
        state.scroll_offset = scroll_window(
            state.cursor, state.scroll_offset, visible_rows, total
        )
        start = state.scroll_offset
        end = min(start + visible_rows, total)

        for i in range(start, end):
            entry = state.entries[i]
            is_cursor = i == state.cursor
            icon = "▸ " if entry.is_dir else "  "
            name = f"{entry.name}/" if entry.is_dir and entry.name != ".." else entry.name
            if is_cursor:
                style = "bold reverse"
            elif entry.is_dir:
                style = "cyan"
            else:
                style = "dim"
            table.add_row(Text(f"{icon}{name}"), style=style)

        if total == 0:
            table.add_row(Text("(empty folder)", style="dim italic"))

        scroll_info = ""
        if total > visible_rows:
            scroll_info = f" [{start + 1}-{end}/{total}]"

        return Panel(
            Group(info, Text(""), table),
            title=f"Select folder{scroll_info}",
            border_style="blue",
        )

    def _render_scanning(self, state: BrowserState) -> Panel:
        progress, _done, _error = state.snapshot()

        if progress is None:
            processed, discovered, current = 0, 0, ""
            discovery_done = False
        else:
            processed = progress.files_processed
            discovered = progress.files_discovered
            current = progress.current_file
            discovery_done = progress.discovery_done

        total = discovered if discovery_done else None
        bar = ProgressBar(total=total, completed=processed, width=None)
        counts = (
            f"{processed}/{discovered} files"
            if discovery_done
            else (
                f"{processed} files processed, "
                f"{discovered - processed} in flight, still walking"
            )
        )
        lines = Text.from_markup(
            f"Scanning [cyan]{escape(str(state.scan_path))}[/cyan]\n{counts}\n"
        )
        current_line = Text(_truncate(current, 120), style="dim")

        return Panel(
            Group(lines, bar, Text(""), current_line),
            title="Scanning",
            border_style="yellow",
        )

    def _render_results(self, state: BrowserState, body_height: int) -> Panel:
        report = state.report
        if report is None:
            return Panel(Text("No results"), title="Results")

        summary = report.summary
        counts = "  ".join(
            f"[{SEVERITY_STYLES[s]}]{s.label}: {summary.count(s)}[/{SEVERITY_STYLES[s]}]"
            for s in Severity
        )
        verdict = "[green]PASS[/green]" if summary.passed else "[red]FAIL[/red]"
        partial = "  [yellow](cancelled — partial)[/yellow]" if report.partial else ""
        header = Text.from_markup(
            f"{verdict}  Files: {report.files_scanned}  "
            f"Time: {report.duration:.2f}s  {counts}{partial}"
        )

        if not report.findings:
            body = Text(
                "No indicators of compromise found.", style="bold green"
            )
            return Panel(
                Group(header, Text(""), body),
                title=f"Results — {escape(str(state.scan_path))}",
                border_style="green",
            )

        table = Table(
            show_header=True,
            header_style="bold",
            expand=True,
            box=None,
            padding=(0, 1),
        )
        table.add_column("Severity", width=9, no_wrap=True)
        table.add_column("File", ratio=1, no_wrap=True)
        table.add_column("Line", width=5, justify="right")
        table.add_column("Description", ratio=1, no_wrap=True)

        # Leave room for the summary and the detail pane
        visible_rows = max(1, body_height - 9)
        total = len(report.findings)
        state.results_scroll = scroll_window(
            state.results_cursor, state.results_scroll, visible_rows, total
        )
        start = state.results_scroll
        end = min(start + visible_rows, total)

        for i in range(start, end):
            finding = report.findings[i]
            is_cursor = i == state.results_cursor
            sev_style = SEVERITY_STYLES[finding.severity]
            table.add_row(
                Text(finding.severity.label, style=sev_style),
                Text(_relative(finding.file_path, report.root)),
                str(finding.line) if finding.line is not None else "",
                Text(finding.description),
                style="reverse" if is_cursor else "",
            )

        scroll_info = ""
        if total > visible_rows:
            scroll_info = f" [{start + 1}-{end}/{total}]"

        selected = report.findings[state.results_cursor]
        return Panel(
            Group(header, Text(""), table, Text(""), _render_detail(selected)),
            title=f"Results — {escape(str(state.scan_path))}{scroll_info}",
            border_style="red" if not summary.passed else "yellow",
        )

    def _render_help(self) -> Panel:
        help_text = Text.from_markup(
            "[bold]Key Bindings[/bold]\n"
            "\n"
            "  [bold]Folder selection[/bold]\n"
            "  [cyan]j[/cyan] / [cyan]↓[/cyan]          Move cursor down\n"
            "  [cyan]k[/cyan] / [cyan]↑[/cyan]          Move cursor up\n"
            "  [cyan]Enter[/cyan] / [cyan]l[/cyan] / [cyan]→[/cyan]  Open folder\n"
            "  [cyan]h[/cyan] / [cyan]←[/cyan] / [cyan]Bksp[/cyan]   Parent folder\n"
            "  [cyan]n[/cyan]              Toggle node_modules scanning\n"
            "  [cyan]s[/cyan] / [cyan]Space[/cyan]      Scan highlighted folder\n"
            "\n"
            "  [bold]Scanning[/bold]\n"
            "  [cyan]c[/cyan]              Cancel (keeps partial results)\n"
            "\n"
            "  [bold]Results[/bold]\n"
            "  [cyan]j[/cyan] / [cyan]k[/cyan]          Next / previous finding\n"
            "  [cyan]b[/cyan] / [cyan]Bksp[/cyan]       Back to folder selection\n"
            "  [cyan]s[/cyan]              Rescan\n"
            "\n"
            "  [cyan]?[/cyan]              Toggle this help\n"
            "  [cyan]q[/cyan]              Quit\n"
        )
        return Panel(help_text, title="Help", border_style="green")

    def _render_footer(self, state: BrowserState) -> Panel:
        if state.mode == ViewMode.SELECT:
            keys = (
                "[dim]q[/dim]:Quit  [dim]↑/↓[/dim]:Navigate  "
                "[dim]Enter[/dim]:Open  [dim]←[/dim]:Parent  "
                "[dim]n[/dim]:node_modules  [dim]s[/dim]:Scan  [dim]?[/dim]:Help"
            )
        elif state.mode == ViewMode.SCANNING:
            keys = "[dim]c[/dim]:Cancel  [dim]q[/dim]:Quit"
        elif state.mode == ViewMode.RESULTS:
            keys = (
                "[dim]↑/↓[/dim]:Navigate  [dim]b[/dim]:Back  "
                "[dim]s[/dim]:Rescan  [dim]q[/dim]:Quit"
            )
        else:
            keys = "[dim]Esc[/dim]:Back  [dim]q[/dim]:Quit"

        lines = keys
        status = state.active_status()
        if status:
            lines += f"\n[yellow]{escape(status)}[/yellow]"

        return Panel(Text.from_markup(lines), style="dim")


def _render_detail(finding: Finding) -> Text:
    style = SEVERITY_STYLES[finding.severity]
    location = finding.file_path
    if finding.line is not None:
        location += f":{finding.line}"
    text = Text()
    text.append(f"{finding.severity.label} ", style=style)
    text.append(finding.description, style="bold")
    text.append(f"\n{location}", style="cyan")
    if finding.context:
        text.append(f"\n{finding.context}", style="dim")
    return text


def _relative(file_path: str, root: str) -> str:
    if file_path.startswith(root):
        return file_path[len(root) :].lstrip("/") or file_path
    return file_path


def _truncate(s: str, maxlen: int) -> str:
    if len(s) <= maxlen:
        return s
    return "…" + s[-(maxlen - 1) :]
