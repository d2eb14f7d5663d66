"""Entry point: import an OpenAPI document into a bound, validated model.

:func:`parse` runs the whole pipeline::

    text -> load_document -> detect_openapi_version
         -> bind_document (resolving $ref) -> DocumentValidator -> ParseResult

Only two conditions raise, because they leave nothing to bind: text that is
neither JSON nor YAML (:class:`~specbind.exceptions.DocumentSyntaxError`)
and a document that is not OpenAPI 3.x
(:class:`~specbind.exceptions.UnsupportedVersionError`). Every other problem
ends up in :attr:`ParseResult.report`. With ``strict`` enabled a report
containing errors raises :class:`~specbind.exceptions.ValidationFailedError`,
which still carries the complete result.

Example::

    result = parse(text, uri="api.yaml", documents={"common.yaml": common})
    for diagnostic in result.report.errors:
        print(diagnostic.location, diagnostic.message)
    pet = result.components.schemas["Pet"]
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from specbind.config import ParseOptions, resolve_options
from specbind.diagnostics import DiagnosticCollector
from specbind.exceptions import ValidationFailedError
from specbind.models import ParseResult
from specbind.parser.binder import bind_document
from specbind.parser.loader import detect_openapi_version, load_document
from specbind.parser.resolver import DocumentRegistry, Fetcher, ReferenceResolver
from specbind.validator import DocumentValidator

logger = logging.getLogger(__name__)


def parse(
    document_text: Union[str, bytes],
    *,
    uri: str = "",
    documents: Optional[dict[str, Union[str, bytes]]] = None,
    fetch: Optional[Fetcher] = None,
    options: Optional[ParseOptions] = None,
) -> ParseResult:
    """Parse, bind and validate an OpenAPI 3.0/3.1 document.

    Args:
        document_text: Raw JSON or YAML text (or UTF-8 bytes) of the root
            document.
        uri: URI identifying the root document. Relative ``$ref`` URIs are
            resolved against it, and its suffix (``.json``/``.yaml``)
            serves as a format hint.
        documents: Raw text of other documents that references may point
            to, keyed by their resolved URI.
        fetch: Callable returning the text of a document missing from
            *documents*. Exceptions it raises leave the reference unresolved.
        options: Parse options; when omitted they are resolved from the
            ``SPECBIND_*`` environment variables.

    Returns:
        The bound :class:`~specbind.models.Document` together with its
        :class:`~specbind.models.ValidationReport`.

    Raises:
        DocumentSyntaxError: If the root text cannot be parsed.
        UnsupportedVersionError: If the document is not OpenAPI 3.x.
        ValidationFailedError: In strict mode, if the report has errors.
        ConfigError: If options from the environment are invalid.
    """
    options = options if options is not None else resolve_options()

    root = load_document(document_text, uri=uri, hint=options.format_hint)
    version, declared = detect_openapi_version(root.tree)
    logger.debug("Importing %r as OpenAPI %s (declared %s)", uri, version.value, declared)

    registry = DocumentRegistry(root, sources=documents, fetch=fetch)
    resolver = ReferenceResolver(registry, options)
    diagnostics = DiagnosticCollector(registry.position)

    document = bind_document(registry, resolver, diagnostics, version, declared)
    DocumentValidator(document, diagnostics).run()

    result = ParseResult(
        document=document,
        report=diagnostics.report(warnings_as_errors=options.warnings_as_errors),
        documents=registry.uris,
    )
    logger.debug(
        "Import finished: %d error(s), %d warning(s) across %d document(s)",
        len(result.report.errors),
        len(result.report.warnings),
        len(result.documents),
    )

    if options.strict and not result.is_valid:
        raise ValidationFailedError(result)
    return result


class OpenApiImporter:
    """Reusable importer holding options and a document source.

    Useful when many documents are imported with the same configuration,
    e.g. a service validating uploads::

        importer = OpenApiImporter(fetch=store.read, strict=True)
        result = importer.parse(text, uri="uploads/api.yaml")

    Args:
        options: Base options. Keyword *overrides* are applied on top.
        documents: Documents shared by every import.
        fetch: Fallback source for documents missing from *documents*.
        **overrides: Individual :class:`~specbind.config.ParseOptions` fields.
    """

    def __init__(
        self,
        options: Optional[ParseOptions] = None,
        documents: Optional[dict[str, Union[str, bytes]]] = None,
        fetch: Optional[Fetcher] = None,
        **overrides: object,
    ) -> None:
        self.options = resolve_options(options, **overrides)
        self._documents = dict(documents or {})
        self._fetch = fetch

    def parse(
        self,
        document_text: Union[str, bytes],
        uri: str = "",
        documents: Optional[dict[str, Union[str, bytes]]] = None,
    ) -> ParseResult:
        """Import one document; *documents* extend the shared ones for this call."""
        sources = dict(self._documents)
        sources.update(documents or {})
        return parse(
            document_text,
            uri=uri,
            documents=sources,
            fetch=self._fetch,
            options=self.options,
        )
