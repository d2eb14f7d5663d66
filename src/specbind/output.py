"""Rendering of :class:`~specbind.models.ValidationReport` objects.

Three formats are supported:

* **rich** -- a styled :class:`~rich.table.Table` (severity, code,
  location, message) followed by a one-line summary, for terminals.
* **plain** -- tab-separated values, one diagnostic per line, for piping
  into ``grep``/``cut``.
* **json** -- an array of diagnostic objects, for tooling.

``AUTO`` resolves to ``RICH`` when the target stream is an interactive
terminal and colour is not disabled, or to ``PLAIN`` otherwise. Colour is
disabled by ``NO_COLOR`` (any value) and ``TERM=dumb``.

The library never prints on its own; callers pass a stream (``sys.stdout``
by default) to :class:`ReportRenderer` or :func:`render_report`.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import IO, Any, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from specbind.models import Diagnostic, Severity, ValidationReport

_SEVERITY_STYLES = {
    Severity.ERROR: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "dim",
}


class ReportFormat(str, Enum):
    """Enumeration of supported report formats."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class ReportRenderer:
    """Write validation reports to a stream in the resolved format.

    Args:
        format: Desired format. ``AUTO`` resolves based on TTY detection.
        no_color: Disable all colour and Rich markup.
        file: Target stream; defaults to ``sys.stdout`` at render time.
    """

    def __init__(
        self,
        format: ReportFormat = ReportFormat.AUTO,
        no_color: bool = False,
        file: Optional[IO[str]] = None,
    ) -> None:
        self._file = file
        self._no_color = no_color or _should_disable_color()

        # Resolve format: AUTO picks RICH for interactive TTY, PLAIN otherwise
        if format == ReportFormat.AUTO:
            self._format = (
                ReportFormat.RICH
                if _is_tty(self._stream) and not self._no_color
                else ReportFormat.PLAIN
            )
        else:
            self._format = format

    @property
    def format(self) -> ReportFormat:
        """The resolved report format."""
        return self._format

    @property
    def _stream(self) -> IO[str]:
        return self._file if self._file is not None else sys.stdout

    def render(self, report: ValidationReport) -> None:
        """Write *report* to the target stream.

        Args:
            report: The report to render. An empty report prints only the
                summary line (rich and plain) or ``[]`` (json).
        """
        if self._format == ReportFormat.JSON:
            self._render_json(report)
        elif self._format == ReportFormat.PLAIN:
            self._render_plain(report)
        else:
            # RICH
            self._render_rich(report)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _render_json(self, report: ValidationReport) -> None:
        records = [diagnostic_to_dict(d) for d in report.diagnostics]
        self._write(json.dumps(records, indent=2, ensure_ascii=False))

    def _render_plain(self, report: ValidationReport) -> None:
        for d in report.diagnostics:
            self._write("\t".join([d.severity.value, d.code, d.location, d.message]))
        self._write(summarize(report))

    def _render_rich(self, report: ValidationReport) -> None:
        console = Console(
            file=self._stream,
            no_color=self._no_color,
            force_terminal=not self._no_color,
            highlight=False,
        )
        if report.diagnostics:
            table = Table(show_header=True, header_style="bold cyan")
            for header in ("Severity", "Code", "Location", "Message"):
                table.add_column(header)
            for d in report.diagnostics:
                table.add_row(
                    Text(d.severity.value, style=_SEVERITY_STYLES[d.severity]),
                    d.code,
                    Text(d.location),
                    Text(d.message),
                )
            console.print(table)
        style = "green" if report.is_valid else "bold red"
        console.print(Text(summarize(report), style=style))

    def _write(self, text: str) -> None:
        stream = self._stream
        stream.write(text)
        if not text.endswith("\n"):
            stream.write("\n")
        stream.flush()


# ------------------------------------------------------------------ #
# Module-level helpers
# ------------------------------------------------------------------ #


def diagnostic_to_dict(diagnostic: Diagnostic) -> dict[str, Any]:
    """JSON-ready representation of *diagnostic* (``position`` may be ``None``)."""
    return diagnostic.model_dump(mode="json")


def summarize(report: ValidationReport) -> str:
    """One-line count of errors and warnings, e.g. ``"2 errors, 1 warning"``."""
    errors = len(report.errors)
    warnings = len(report.warnings)
    if not errors and not warnings:
        return "No problems found"
    return f"{errors} error{'s' if errors != 1 else ''}, {warnings} warning{'s' if warnings != 1 else ''}"


def render_report(
    report: ValidationReport,
    format: ReportFormat = ReportFormat.AUTO,
    file: Optional[IO[str]] = None,
    no_color: bool = False,
) -> None:
    """Render *report* with a one-off :class:`ReportRenderer`."""
    ReportRenderer(format=format, no_color=no_color, file=file).render(report)


def _is_tty(stream: Any) -> bool:
    """Check if *stream* is a TTY."""
    return hasattr(stream, "isatty") and stream.isatty()


def _should_disable_color() -> bool:
    """Check if color should be disabled per clig.dev.

    Returns True when NO_COLOR env var is set (any value) or TERM=dumb.
    """
    if os.environ.get("NO_COLOR") is not None:
        return True
    if os.environ.get("TERM") == "dumb":
        return True
    return False
