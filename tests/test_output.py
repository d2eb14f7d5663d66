"""Tests for report rendering.

Covers:
- ReportFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- JSON format raw output
- Plain format tab-separated output
- Rich table output
- Summary line wording
"""

from __future__ import annotations

import json
from io import StringIO

import pytest

from specbind.models import Diagnostic, Position, Severity, ValidationReport
from specbind.output import (
    ReportFormat,
    ReportRenderer,
    _should_disable_color,
    diagnostic_to_dict,
    render_report,
    summarize,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


class _TTYStream(StringIO):
    def isatty(self) -> bool:
        return True


@pytest.fixture()
def color_env(monkeypatch):
    """Remove variables that disable colour."""
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("TERM", raising=False)


@pytest.fixture()
def report() -> ValidationReport:
    return ValidationReport(
        diagnostics=(
            Diagnostic(
                severity=Severity.ERROR,
                code="unresolved-ref",
                message="Cannot resolve $ref '#/components/schemas/Nope'",
                uri="api.yaml",
                pointer="/paths/~1pets/get/responses/200",
                position=Position(line=12, column=9),
            ),
            Diagnostic(
                severity=Severity.WARNING,
                code="default-not-in-enum",
                message="Default 'z' is not one of the enum values",
                uri="api.yaml",
                pointer="/components/schemas/Status/default",
            ),
        )
    )


# ------------------------------------------------------------------ #
# ReportFormat resolution
# ------------------------------------------------------------------ #


class TestReportFormatResolution:
    """Test that AUTO format resolves correctly based on environment."""

    def test_auto_resolves_to_plain_when_not_tty(self, color_env):
        renderer = ReportRenderer(file=StringIO())
        assert renderer.format == ReportFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, color_env):
        renderer = ReportRenderer(file=_TTYStream())
        assert renderer.format == ReportFormat.RICH

    def test_auto_resolves_to_plain_when_no_color(self, color_env, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        renderer = ReportRenderer(file=_TTYStream())
        assert renderer.format == ReportFormat.PLAIN

    def test_explicit_format_is_kept(self, color_env):
        renderer = ReportRenderer(format=ReportFormat.JSON, file=_TTYStream())
        assert renderer.format == ReportFormat.JSON


class TestColorDisabling:
    def test_no_color_any_value(self, color_env, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb(self, color_env, monkeypatch):
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_enabled_by_default(self, color_env):
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# Formats
# ------------------------------------------------------------------ #


class TestJsonFormat:
    def test_records(self, report):
        buf = StringIO()
        render_report(report, ReportFormat.JSON, file=buf)
        records = json.loads(buf.getvalue())
        assert [r["code"] for r in records] == ["unresolved-ref", "default-not-in-enum"]
        assert records[0]["severity"] == "error"
        assert records[0]["position"] == {"line": 12, "column": 9}
        assert records[1]["position"] is None

    def test_empty_report(self):
        buf = StringIO()
        render_report(ValidationReport(), ReportFormat.JSON, file=buf)
        assert json.loads(buf.getvalue()) == []

    def test_diagnostic_to_dict(self, report):
        record = diagnostic_to_dict(report.diagnostics[1])
        assert record == {
            "severity": "warning",
            "code": "default-not-in-enum",
            "message": "Default 'z' is not one of the enum values",
            "uri": "api.yaml",
            "pointer": "/components/schemas/Status/default",
            "position": None,
        }


class TestPlainFormat:
    def test_tab_separated_lines(self, report):
        buf = StringIO()
        render_report(report, ReportFormat.PLAIN, file=buf)
        lines = buf.getvalue().splitlines()
        assert lines[0].split("\t") == [
            "error",
            "unresolved-ref",
            "api.yaml#/paths/~1pets/get/responses/200:12:9",
            "Cannot resolve $ref '#/components/schemas/Nope'",
        ]
        assert lines[1].startswith("warning\tdefault-not-in-enum\tapi.yaml#/components/schemas/Status/default\t")
        assert lines[-1] == "1 error, 1 warning"

    def test_empty_report(self):
        buf = StringIO()
        render_report(ValidationReport(), ReportFormat.PLAIN, file=buf)
        assert buf.getvalue() == "No problems found\n"


class TestRichFormat:
    """The table columns are narrow; keep the rendered rows short."""

    SHORT = ValidationReport(
        diagnostics=(
            Diagnostic(severity=Severity.ERROR, code="no-paths", message="No paths", uri="a.yaml"),
            Diagnostic(severity=Severity.WARNING, code="dup", message="Twice", uri="a.yaml", pointer="/x"),
        )
    )

    def test_table_without_color(self):
        buf = StringIO()
        ReportRenderer(format=ReportFormat.RICH, no_color=True, file=buf).render(self.SHORT)
        output = buf.getvalue()
        assert "Severity" in output
        assert "no-paths" in output
        assert "a.yaml#/x" in output
        assert "\x1b[" not in output
        assert output.rstrip().endswith("1 error, 1 warning")

    def test_color_output(self, color_env):
        buf = StringIO()
        ReportRenderer(format=ReportFormat.RICH, file=buf).render(self.SHORT)
        assert "\x1b[" in buf.getvalue()

    def test_empty_report_prints_summary_only(self):
        buf = StringIO()
        ReportRenderer(format=ReportFormat.RICH, no_color=True, file=buf).render(ValidationReport())
        assert buf.getvalue().strip() == "No problems found"


# ------------------------------------------------------------------ #
# Summary
# ------------------------------------------------------------------ #


class TestSummarize:
    @pytest.mark.parametrize(
        ("severities", "expected"),
        [
            ([], "No problems found"),
            ([Severity.INFO], "No problems found"),
            ([Severity.ERROR, Severity.ERROR, Severity.WARNING], "2 errors, 1 warning"),
            ([Severity.WARNING, Severity.WARNING], "0 errors, 2 warnings"),
        ],
    )
    def test_wording(self, severities, expected):
        report = ValidationReport(
            diagnostics=tuple(Diagnostic(severity=s, code="c", message=f"m{i}") for i, s in enumerate(severities))
        )
        assert summarize(report) == expected

    def test_parse_result_report(self, invalid_30):
        assert summarize(invalid_30.report).startswith(f"{len(invalid_30.report.errors)} errors")
