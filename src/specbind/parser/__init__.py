"""OpenAPI document parser -- load text, resolve ``$ref`` pointers, and bind.

This sub-package is responsible for the first half of the specbind pipeline:
turning raw OpenAPI 3.x text (JSON or YAML) into a
:class:`~specbind.models.Document` that the validator can check.

Typical usage::

    from specbind.parser import DocumentRegistry, ReferenceResolver, bind_document, load_document

    root = load_document(text, uri="api.yaml")
    version, declared = detect_openapi_version(root.tree)
    registry = DocumentRegistry(root, sources={"common.yaml": common})
    resolver = ReferenceResolver(registry, ParseOptions())
    document = bind_document(registry, resolver, DiagnosticCollector(), version, declared)

Sub-modules:

* :mod:`~specbind.parser.loader` -- JSON/YAML detection, source positions
  and OpenAPI version detection.
* :mod:`~specbind.parser.pointer` -- RFC 6901 JSON pointers and ``$ref``
  splitting.
* :mod:`~specbind.parser.resolver` -- Multi-document registry and ``$ref``
  resolution with cycle detection.
* :mod:`~specbind.parser.schemas` -- Schema objects to
  :class:`~specbind.models.SchemaNode` graphs.
* :mod:`~specbind.parser.binder` -- Everything else in the document.
"""

from specbind.parser.binder import bind_document
from specbind.parser.loader import LoadedDocument, detect_openapi_version, load_document
from specbind.parser.resolver import DocumentRegistry, ReferenceResolver

__all__ = [
    "load_document",
    "detect_openapi_version",
    "LoadedDocument",
    "DocumentRegistry",
    "ReferenceResolver",
    "bind_document",
]
