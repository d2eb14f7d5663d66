"""Accumulation of diagnostics across the pipeline stages.

The binder and validator never stop on the first problem; they hand every
finding to a :class:`DiagnosticCollector`, which attaches the source position
(when the originating document recorded one) and de-duplicates identical
findings reached through several paths of the graph.
"""

from __future__ import annotations

from typing import Callable, Optional

from specbind.models import Diagnostic, Position, Severity, ValidationReport

PositionLookup = Callable[[str, str], Optional[Position]]


class DiagnosticCollector:
    """Collects :class:`~specbind.models.Diagnostic` objects in discovery order.

    Args:
        positions: Callable mapping ``(uri, pointer)`` to a position; usually
            :meth:`~specbind.parser.resolver.DocumentRegistry.position`.
    """

    def __init__(self, positions: Optional[PositionLookup] = None) -> None:
        self._positions = positions
        self._items: list[Diagnostic] = []
        self._seen: set[tuple[str, str, str, str]] = set()

    def add(
        self,
        severity: Severity,
        code: str,
        message: str,
        uri: str = "",
        pointer: str = "",
    ) -> None:
        key = (code, uri, pointer, message)
        if key in self._seen:
            return
        self._seen.add(key)
        position = self._positions(uri, pointer) if self._positions else None
        self._items.append(
            Diagnostic(
                severity=severity,
                code=code,
                message=message,
                uri=uri,
                pointer=pointer,
                position=position,
            )
        )

    def error(self, code: str, message: str, uri: str = "", pointer: str = "") -> None:
        self.add(Severity.ERROR, code, message, uri, pointer)

    def warning(self, code: str, message: str, uri: str = "", pointer: str = "") -> None:
        self.add(Severity.WARNING, code, message, uri, pointer)

    def info(self, code: str, message: str, uri: str = "", pointer: str = "") -> None:
        self.add(Severity.INFO, code, message, uri, pointer)

    def __len__(self) -> int:
        return len(self._items)

    def report(self, warnings_as_errors: bool = False) -> ValidationReport:
        """Freeze the collected diagnostics into a report.

        Args:
            warnings_as_errors: Promote every warning to an error.
        """
        items = self._items
        if warnings_as_errors:
            items = [
                d.model_copy(update={"severity": Severity.ERROR})
                if d.severity == Severity.WARNING
                else d
                for d in items
            ]
        return ValidationReport(diagnostics=tuple(items))
