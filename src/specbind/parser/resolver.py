"""Resolve ``$ref`` JSON Reference pointers, locally and across documents.

OpenAPI documents use ``$ref`` pointers (e.g.
``{"$ref": "#/components/schemas/Pet"}`` or
``{"$ref": "common.yaml#/components/parameters/Limit"}``) to avoid repetition.
This module provides the two pieces the binder needs to follow them:

* :class:`DocumentRegistry` -- every document taking part in one parse,
  keyed by URI. Documents are supplied by the caller (up front as raw text,
  or lazily through a ``fetch`` callable); the registry only parses them.
* :class:`ReferenceResolver` -- turns a single ``$ref`` into a
  :class:`Target` and dereferences ``$ref`` chains for non-schema objects.

Every reference followed during a parse is recorded as a
:class:`~specbind.models.Reference` (resolved, unresolved with a reason, or
cyclic) instead of raising, so binding continues with the rest of the
document; the validator later turns the failed ones into diagnostics. Schema
references are handled by :mod:`specbind.parser.schemas`, which adds
cycle-aware binding on top of :meth:`ReferenceResolver.lookup`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from specbind.config import ParseOptions
from specbind.exceptions import DocumentSyntaxError, ReferenceResolutionError
from specbind.models import Position, Reference, RefState
from specbind.parser.loader import LoadedDocument, load_document
from specbind.parser.pointer import canonical, resolve_pointer, split_ref

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Union[str, bytes]]
"""Caller-supplied callable returning the raw text of the document at a URI."""


@dataclass(frozen=True)
class Target:
    """The node a ``$ref`` points to, plus the document it lives in."""

    uri: str
    pointer: str
    node: Any

    @property
    def location(self) -> str:
        return canonical(self.uri, self.pointer)


class DocumentRegistry:
    """All documents participating in a single parse, keyed by URI.

    The root document is registered at construction time. Additional
    documents are parsed on first use, either from *sources* or, for URIs
    not found there, from *fetch*. Relative ``$ref`` URIs are resolved
    against the referring document's URI before lookup, so *sources* must be
    keyed the same way (``"schemas/pet.yaml"`` for a ``$ref`` of
    ``"pet.yaml"`` made from ``"schemas/api.yaml"``).

    Args:
        root: The already-loaded root document.
        sources: Raw text of further documents, keyed by URI.
        fetch: Fallback used for URIs missing from *sources*.
    """

    def __init__(
        self,
        root: LoadedDocument,
        sources: Optional[dict[str, Union[str, bytes]]] = None,
        fetch: Optional[Fetcher] = None,
    ) -> None:
        self.root = root
        self._documents: dict[str, LoadedDocument] = {root.uri: root}
        self._sources = dict(sources or {})
        self._fetch = fetch
        self._failures: dict[str, str] = {}

    @property
    def uris(self) -> tuple[str, ...]:
        """URIs of every successfully loaded document, in load order."""
        return tuple(self._documents)

    @property
    def documents(self) -> list[LoadedDocument]:
        return list(self._documents.values())

    def get(self, uri: str) -> LoadedDocument:
        """Return the document registered under *uri*, loading it if needed.

        Failures are remembered so a missing document is only attempted once.

        Raises:
            ReferenceResolutionError: If the document was not supplied, the
                fetch callable failed, or its content could not be parsed.
        """
        if uri in self._documents:
            return self._documents[uri]
        if uri in self._failures:
            raise ReferenceResolutionError(self._failures[uri])

        try:
            document = load_document(self._read(uri), uri=uri)
        except (ReferenceResolutionError, DocumentSyntaxError) as exc:
            self._failures[uri] = str(exc)
            raise ReferenceResolutionError(str(exc)) from exc

        logger.debug("Loaded referenced document %r (%s)", uri, document.format)
        self._documents[uri] = document
        return document

    def position(self, uri: str, pointer: str) -> Optional[Position]:
        """Source position of *pointer* in an already-loaded document."""
        document = self._documents.get(uri)
        if document is None:
            return None
        return document.position(pointer)

    def _read(self, uri: str) -> Union[str, bytes]:
        if uri in self._sources:
            return self._sources[uri]
        if self._fetch is None:
            raise ReferenceResolutionError(
                f"Document '{uri}' was not supplied and no fetch callable is configured"
            )
        try:
            return self._fetch(uri)
        except Exception as exc:
            # any fetch failure leaves the reference unresolved
            raise ReferenceResolutionError(f"Failed to fetch document '{uri}': {exc}") from exc


class ReferenceResolver:
    """Follow ``$ref`` pointers and keep a record of every one followed.

    Args:
        registry: Documents available to this parse.
        options: Parse options (``allow_external_refs``, ``max_ref_depth``).
    """

    def __init__(self, registry: DocumentRegistry, options: ParseOptions) -> None:
        self.registry = registry
        self._options = options
        self.references: list[Reference] = []

    def record(self, reference: Reference) -> None:
        self.references.append(reference)

    def target_location(self, ref: Any, base_uri: str) -> str:
        """Best-effort canonical target of *ref* without loading anything."""
        if not isinstance(ref, str):
            return ""
        try:
            return canonical(*split_ref(ref, base_uri))
        except ReferenceResolutionError:
            return ""

    def lookup(self, ref: Any, base_uri: str) -> Target:
        """Resolve a single ``$ref`` value.

        Args:
            ref: The raw ``$ref`` value (normally a string).
            base_uri: URI of the document containing the ``$ref``.

        Returns:
            The :class:`Target` the reference points to.

        Raises:
            ReferenceResolutionError: If *ref* is malformed, points into a
                disabled or unavailable document, or addresses a missing node.
        """
        if not isinstance(ref, str):
            raise ReferenceResolutionError(
                f"$ref must be a string (got {type(ref).__name__})"
            )

        document_uri, pointer = split_ref(ref, base_uri)
        if document_uri != self.registry.root.uri and not self._options.allow_external_refs:
            raise ReferenceResolutionError(
                f"'{document_uri}' is another document and external references are disabled"
            )

        document = self.registry.get(document_uri)
        node = resolve_pointer(document.tree, pointer)
        return Target(uri=document_uri, pointer=pointer, node=node)

    def follow(self, node: Any, uri: str, pointer: str) -> Optional[tuple[Any, str, str]]:
        """Dereference *node* if it is a ``$ref`` object, following chains.

        Used for every non-schema object (parameters, responses, request
        bodies, headers, examples, links, security schemes, path items and
        callbacks), which are inlined into the bound model. Each hop is
        recorded as a non-schema :class:`~specbind.models.Reference`.

        Args:
            node: The raw node found at *uri* / *pointer*.
            uri: URI of the document containing *node*.
            pointer: Pointer of *node* within that document.

        Returns:
            ``(concrete_node, uri, pointer)`` describing where the concrete
            object lives (nested references must be resolved relative to
            that document), or ``None`` if the chain could not be followed.
        """
        seen = {canonical(uri, pointer)}
        hops = 0
        while isinstance(node, dict) and "$ref" in node:
            ref = node["$ref"]
            source = canonical(uri, pointer)
            reference = Reference(
                ref=str(ref),
                target=self.target_location(ref, uri),
                source=source,
                is_schema=False,
            )
            try:
                target = self.lookup(ref, uri)
            except ReferenceResolutionError as exc:
                logger.debug("Unresolved $ref %r at %s: %s", ref, source, exc)
                self.record(reference.model_copy(update={"reason": str(exc)}))
                return None

            if target.location in seen:
                logger.debug("Reference chain loops back on %s", target.location)
                self.record(
                    reference.model_copy(
                        update={
                            "state": RefState.CYCLIC,
                            "reason": f"chain loops back on '{target.location}'",
                        }
                    )
                )
                return None

            hops += 1
            if hops > self._options.max_ref_depth:
                self.record(
                    reference.model_copy(
                        update={
                            "reason": f"chain is longer than {self._options.max_ref_depth} hops"
                        }
                    )
                )
                return None

            self.record(reference.model_copy(update={"state": RefState.RESOLVED}))
            seen.add(target.location)
            node, uri, pointer = target.node, target.uri, target.pointer
        return node, uri, pointer
