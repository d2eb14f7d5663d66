"""Exception hierarchy for specbind.

All exceptions inherit from :class:`SpecbindError`. Only conditions that
leave nothing to bind are raised to the caller (unparseable text, an
unsupported OpenAPI version, invalid options); every other problem found in a
document is accumulated as a :class:`~specbind.models.Diagnostic` in the
:class:`~specbind.models.ValidationReport` instead.

Subclass hierarchy::

    SpecbindError
    +-- DocumentSyntaxError
    +-- UnsupportedVersionError
    +-- ReferenceResolutionError
    |   +-- PointerError
    +-- ValidationFailedError
    +-- ConfigError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from specbind.models import ParseResult, Position


class SpecbindError(Exception):
    """Base exception for all specbind errors.

    Args:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DocumentSyntaxError(SpecbindError):
    """Raised when raw document text is not valid JSON or YAML.

    Args:
        message: Description of the syntax problem.
        position: 1-based line/column of the failure, when the underlying
            parser reported one.
        uri: URI of the offending document (empty for the root document
            when the caller did not name it).
    """

    def __init__(
        self,
        message: str,
        position: Optional[Position] = None,
        uri: str = "",
    ):
        if position is not None:
            message = f"{message} (line {position.line}, column {position.column})"
        super().__init__(message)
        self.position = position
        self.uri = uri


class UnsupportedVersionError(SpecbindError):
    """Raised for Swagger 2.x documents or an unknown/missing ``openapi`` field."""


class ReferenceResolutionError(SpecbindError):
    """Raised internally when a ``$ref`` cannot be followed.

    The resolver converts this into an ``unresolved-ref`` diagnostic; it only
    escapes to callers of the low-level :mod:`specbind.parser.pointer` and
    :mod:`specbind.parser.resolver` helpers.
    """


class PointerError(ReferenceResolutionError):
    """Raised when a JSON Pointer does not address a node in the document."""


class ValidationFailedError(SpecbindError):
    """Raised in strict mode (or via ``raise_for_errors``) when errors were found.

    Args:
        result: The complete :class:`~specbind.models.ParseResult`, so
            callers can still inspect the bound document and the report.
    """

    def __init__(self, result: ParseResult):
        errors = result.report.errors
        summary = f"OpenAPI document has {len(errors)} error(s)"
        if errors:
            summary += f"; first: [{errors[0].code}] {errors[0].message}"
        super().__init__(summary)
        self.result = result


class ConfigError(SpecbindError):
    """Raised for invalid parse options or ``SPECBIND_*`` environment values."""
