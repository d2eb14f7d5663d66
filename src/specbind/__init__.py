"""specbind -- Import, bind and validate OpenAPI 3.0/3.1 documents.

This package turns the raw text of an OpenAPI document into an immutable,
reference-aware object model plus a report of every problem found. It does
no I/O of its own: the caller supplies the text of the root document and of
any document its ``$ref`` pointers lead to.

Typical usage::

    from specbind import parse

    result = parse(text, uri="openapi.yaml")
    if not result.is_valid:
        render_report(result.report)
    pet = result.components.schemas["Pet"]

Modules:
    importer: The :func:`parse` entry point and :class:`OpenApiImporter`.
    models: Pydantic models shared across the entire package.
    config: Parse options and ``SPECBIND_*`` environment handling.
    exceptions: Exception hierarchy.
    validator: Semantic rules run over a bound document.
    output: Report rendering (Rich table, plain text, JSON).
    parser: Loader, JSON pointer helpers, ``$ref`` resolver and binders.
"""

from specbind.config import ParseOptions, resolve_options
from specbind.exceptions import (
    ConfigError,
    DocumentSyntaxError,
    ReferenceResolutionError,
    SpecbindError,
    UnsupportedVersionError,
    ValidationFailedError,
)
from specbind.importer import OpenApiImporter, parse
from specbind.models import Components, Diagnostic, Document, ParseResult, Severity, ValidationReport
from specbind.output import ReportFormat, render_report

__version__ = "0.1.0"

__all__ = [
    "parse",
    "OpenApiImporter",
    "ParseOptions",
    "resolve_options",
    "ParseResult",
    "Document",
    "Components",
    "Diagnostic",
    "Severity",
    "ValidationReport",
    "ReportFormat",
    "render_report",
    "SpecbindError",
    "DocumentSyntaxError",
    "UnsupportedVersionError",
    "ReferenceResolutionError",
    "ValidationFailedError",
    "ConfigError",
]
