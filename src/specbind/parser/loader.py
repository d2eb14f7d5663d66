"""Turn raw OpenAPI text into a generic node tree with source positions.

This module is the lexical/structural stage of the pipeline. It accepts the
raw bytes or text of one document (the library never reads files or URLs
itself), detects JSON vs. YAML, and produces a :class:`LoadedDocument`
holding plain dicts, lists and scalars plus a source map from JSON pointer to
1-based line/column.

The two public functions are:

* :func:`load_document` -- Parse text into a :class:`LoadedDocument`.
* :func:`detect_openapi_version` -- Check the ``openapi`` field and return
  the :class:`~specbind.models.OpenAPIVersion` to bind against.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from specbind.exceptions import DocumentSyntaxError, UnsupportedVersionError
from specbind.models import OpenAPIVersion, Position
from specbind.parser.pointer import join_pointer

logger = logging.getLogger(__name__)


class _SpecLoader(yaml.SafeLoader):
    """Safe YAML loader that keeps timestamps as strings.

    OpenAPI documents routinely contain example dates; converting them to
    ``datetime`` objects would change the values seen by consumers.
    """


_SpecLoader.yaml_implicit_resolvers = {
    first: [
        (tag, regexp)
        for tag, regexp in resolvers
        if tag != "tag:yaml.org,2002:timestamp"
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@dataclass
class LoadedDocument:
    """One parsed document and the bookkeeping needed for diagnostics.

    Attributes:
        uri: The URI the caller registered the document under.
        tree: The root mapping of the generic node tree.
        format: ``"json"`` or ``"yaml"``, whichever parser succeeded.
        source_map: JSON pointer -> position of the node's value.
        duplicate_keys: Pointers of mapping keys that appeared more than
            once (the last occurrence wins in ``tree``).
    """

    uri: str
    tree: dict[str, Any]
    format: str
    source_map: dict[str, Position] = field(default_factory=dict)
    duplicate_keys: list[str] = field(default_factory=list)

    def position(self, pointer: str) -> Optional[Position]:
        """Return the position of *pointer*, or of its closest known ancestor."""
        while True:
            if pointer in self.source_map:
                return self.source_map[pointer]
            if not pointer:
                return None
            pointer = pointer.rsplit("/", 1)[0]


def load_document(content: str | bytes, uri: str = "", hint: str = "") -> LoadedDocument:
    """Parse raw OpenAPI text into a :class:`LoadedDocument`.

    Tries JSON first (unless *hint* is ``"yaml"``), then falls back to YAML.
    This order is chosen because valid JSON is also valid YAML, but JSON
    parsing is stricter and faster.

    Args:
        content: The raw document; bytes are decoded as UTF-8.
        uri: The URI to register the document under. Its suffix is used as
            a format hint when *hint* is empty.
        hint: Optional explicit format hint (``"json"`` or ``"yaml"``).

    Returns:
        The loaded document.

    Raises:
        DocumentSyntaxError: If the content is empty, undecodable, not valid
            JSON/YAML, or its root is not a mapping.
    """
    text = _decode(content, uri)
    if not text.strip():
        raise DocumentSyntaxError("Document is empty", uri=uri)

    hint = hint or _hint_from_uri(uri)
    logger.debug("Loading document %r (format hint: %s)", uri, hint or "auto")

    json_error: Optional[json.JSONDecodeError] = None
    if hint != "yaml":
        try:
            tree = json.loads(text)
        except json.JSONDecodeError as exc:
            json_error = exc
            if hint == "json":
                raise DocumentSyntaxError(
                    f"Invalid JSON: {exc.msg}",
                    position=Position(line=exc.lineno, column=exc.colno),
                    uri=uri,
                ) from exc
        else:
            _ensure_mapping(tree, uri)
            document = LoadedDocument(uri=uri, tree=tree, format="json")
            _attach_source_map(document, text)
            return document

    try:
        node = _compose(text)
        tree = _construct(node)
    except yaml.YAMLError as exc:
        raise _combined_error(text, uri, json_error, exc) from exc

    _ensure_mapping(tree, uri)
    try:
        document = LoadedDocument(uri=uri, tree=_stringify_keys(tree), format="yaml")
        _walk_node(node, "", document)
    except RecursionError as exc:
        raise DocumentSyntaxError(
            "Recursive YAML aliases are not supported", uri=uri
        ) from exc
    return document


def detect_openapi_version(tree: dict[str, Any]) -> tuple[OpenAPIVersion, str]:
    """Validate the ``openapi`` field and return the version to bind against.

    Supports OpenAPI 3.0.x and 3.1.x. Later 3.x versions are bound with the
    3.1 rules; the binder reports them with an ``unknown-openapi-version``
    warning.

    Args:
        tree: The root mapping of a loaded document.

    Returns:
        ``(version_line, declared_version_string)``.

    Raises:
        UnsupportedVersionError: If the version is missing, unsupported, or
            indicates Swagger 2.x.
    """
    if "swagger" in tree:
        raise UnsupportedVersionError(
            f"Swagger {tree['swagger']} is not supported. "
            "Only OpenAPI 3.0.x and 3.1.x documents can be imported."
        )

    declared = tree.get("openapi")
    if declared is None:
        raise UnsupportedVersionError(
            "Missing 'openapi' field. Is this an OpenAPI 3.x document?"
        )

    version_str = str(declared)
    if version_str.startswith("3.0"):
        return OpenAPIVersion.V3_0, version_str
    if version_str.startswith("3."):
        return OpenAPIVersion.V3_1, version_str

    raise UnsupportedVersionError(
        f"Unsupported OpenAPI version: {version_str}. "
        "Only OpenAPI 3.0.x and 3.1.x are supported."
    )


# --- Parsing helpers ---


def _decode(content: str | bytes, uri: str) -> str:
    if isinstance(content, str):
        return content.lstrip("\ufeff")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise DocumentSyntaxError(
            f"Document is not valid UTF-8: {exc.reason} at byte {exc.start}",
            uri=uri,
        ) from exc


def _hint_from_uri(uri: str) -> str:
    path = uri.split("#", 1)[0].split("?", 1)[0].lower()
    if path.endswith(".json"):
        return "json"
    if path.endswith((".yaml", ".yml")):
        return "yaml"
    return ""


def _ensure_mapping(tree: Any, uri: str) -> None:
    if not isinstance(tree, dict):
        got = type(tree).__name__ if tree is not None else "empty document"
        raise DocumentSyntaxError(
            f"OpenAPI document must be a JSON/YAML object (got {got})", uri=uri
        )


def _compose(text: str) -> yaml.Node:
    loader = _SpecLoader(text)
    try:
        return loader.get_single_node()
    finally:
        loader.dispose()


def _construct(node: Optional[yaml.Node]) -> Any:
    if node is None:
        return None
    loader = _SpecLoader("")
    try:
        return loader.construct_document(node)
    finally:
        loader.dispose()


def _stringify_keys(value: Any) -> Any:
    """Convert non-string mapping keys (e.g. response code ``200``) to strings."""
    if isinstance(value, dict):
        return {
            (key if isinstance(key, str) else _scalar_key(key)): _stringify_keys(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_stringify_keys(item) for item in value]
    return value


def _scalar_key(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    if key is None:
        return "null"
    return str(key)


def _yaml_position(exc: yaml.YAMLError) -> Optional[Position]:
    mark = getattr(exc, "problem_mark", None) or getattr(exc, "context_mark", None)
    if mark is None:
        return None
    return Position(line=mark.line + 1, column=mark.column + 1)


def _combined_error(
    text: str,
    uri: str,
    json_error: Optional[json.JSONDecodeError],
    yaml_error: yaml.YAMLError,
) -> DocumentSyntaxError:
    if json_error is None:
        return DocumentSyntaxError(
            f"Invalid YAML: {yaml_error}", position=_yaml_position(yaml_error), uri=uri
        )

    msg = "Failed to parse document as JSON or YAML"
    msg += f"\n  JSON error: {json_error}"
    msg += f"\n  YAML error: {yaml_error}"
    if text.lstrip().startswith(("{", "[")):
        position = Position(line=json_error.lineno, column=json_error.colno)
    else:
        position = _yaml_position(yaml_error)
    return DocumentSyntaxError(msg, position=position, uri=uri)


# --- Source map ---


def _attach_source_map(document: LoadedDocument, text: str) -> None:
    """Best-effort positions for a JSON document, composed through YAML.

    Nearly all JSON is also YAML; for the rare document PyYAML rejects the
    source map stays empty and diagnostics simply carry no position.
    """
    try:
        node = _compose(text)
    except yaml.YAMLError as exc:
        logger.debug("No source map for %r: %s", document.uri, exc)
        return
    if node is not None:
        _walk_node(node, "", document)


def _walk_node(node: yaml.Node, pointer: str, document: LoadedDocument) -> None:
    document.source_map[pointer] = Position(
        line=node.start_mark.line + 1, column=node.start_mark.column + 1
    )
    if isinstance(node, yaml.MappingNode):
        seen: set[str] = set()
        for key_node, value_node in node.value:
            key = str(key_node.value)
            child = join_pointer(pointer, key)
            if key in seen:
                document.duplicate_keys.append(child)
            seen.add(key)
            _walk_node(value_node, child, document)
    elif isinstance(node, yaml.SequenceNode):
        for index, item in enumerate(node.value):
            _walk_node(item, join_pointer(pointer, index), document)
