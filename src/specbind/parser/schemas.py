"""Bind raw JSON Schema objects into :class:`~specbind.models.SchemaNode` graphs.

Schemas are the one part of an OpenAPI document that may legitimately be
recursive (a ``TreeNode`` whose ``children`` are ``TreeNode`` items), so they
are never inlined. Instead every ``$ref`` becomes a ``reference`` node and its
target is bound exactly once into a registry keyed by canonical location
(``uri#pointer``).

Binding runs in two steps so that neither long reference chains nor
recursion grow the Python stack:

1. The reference graph is explored depth-first with an explicit stack. Each
   target moves through the states of :class:`~specbind.models.RefState`
   (``unresolved`` -> ``resolving`` while its subtree is being explored ->
   ``resolved``). A ``$ref`` met while its target is ``resolving`` closes a
   cycle and is classified ``cyclic``.
2. Targets are then bound one at a time from a queue; reference nodes only
   store the classified :class:`~specbind.models.Reference`, so the graph
   stays finite and immutable.

Version differences between OpenAPI 3.0 (a JSON Schema draft-04 dialect)
and 3.1 (JSON Schema 2020-12) are normalised here: ``nullable`` and
``"null"`` in a type list both become :attr:`SchemaNode.nullable`, and
boolean exclusive bounds are folded into numeric ones.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

from specbind.diagnostics import DiagnosticCollector
from specbind.exceptions import ReferenceResolutionError
from specbind.models import (
    Discriminator,
    OpenAPIVersion,
    Reference,
    RefState,
    SchemaKind,
    SchemaNode,
)
from specbind.parser.pointer import canonical, join_pointer
from specbind.parser.resolver import ReferenceResolver

logger = logging.getLogger(__name__)

_JSON_TYPES = frozenset(
    {"string", "number", "integer", "boolean", "array", "object", "null"}
)

_COMPOSITION_KEYS = ("allOf", "oneOf", "anyOf", "not")

# Keywords that may sit next to $ref in 3.1 without changing the shape.
_ANNOTATION_KEYS = frozenset(
    {"$ref", "description", "summary", "title", "deprecated", "readOnly", "writeOnly",
     "default", "example", "examples", "$comment"}
)

_NUMBER_FIELDS = {
    "minimum": "minimum",
    "maximum": "maximum",
    "multipleOf": "multiple_of",
}

_INTEGER_FIELDS = {
    "minLength": "min_length",
    "maxLength": "max_length",
    "minItems": "min_items",
    "maxItems": "max_items",
    "minProperties": "min_properties",
    "maxProperties": "max_properties",
}


class SchemaBinder:
    """Bind schema objects for one parse, sharing a registry of targets.

    Args:
        resolver: Resolver used to look up ``$ref`` targets; every schema
            reference is recorded on it.
        diagnostics: Collector receiving structural findings.
        version: OpenAPI line of the root document.
    """

    def __init__(
        self,
        resolver: ReferenceResolver,
        diagnostics: DiagnosticCollector,
        version: OpenAPIVersion,
    ) -> None:
        self._resolver = resolver
        self._diagnostics = diagnostics
        self._version = version
        self._registry: dict[str, SchemaNode] = {}
        self._states: dict[str, RefState] = {}
        self._names: dict[str, str] = {}
        # target location -> (raw, uri, pointer), in discovery order
        self._targets: dict[str, tuple[Any, str, str]] = {}
        self._order: list[str] = []
        # $ref source location -> classified reference
        self._edges: dict[str, Reference] = {}
        self._stack: list[tuple[str, Iterator[tuple[Any, str]]]] = []

    @property
    def registry(self) -> dict[str, SchemaNode]:
        """Every reference target, keyed by canonical location.

        Targets discovered but not bound yet are bound first.
        """
        self.bind_pending()
        return dict(self._registry)

    def register_names(self, uri: str, schemas: dict[str, Any]) -> None:
        """Remember component names so bound nodes carry :attr:`SchemaNode.name`."""
        for name in schemas:
            self._names[canonical(uri, join_pointer("/components/schemas", name))] = name

    def bind_component(self, raw: Any, uri: str, pointer: str) -> SchemaNode:
        """Bind a named component schema through the shared registry.

        Binding components through the registry guarantees that a component
        and every reference to it share one node, and that recursion through
        the component is detected.
        """
        location = canonical(uri, pointer)
        if location not in self._states:
            self._visit(location, raw, uri, pointer)
            self._explore()
        return self._bound(location)

    def bind_pending(self) -> None:
        """Bind every discovered target that is not in the registry yet."""
        index = 0
        while index < len(self._order):
            self._bound(self._order[index])
            index += 1

    def bind(self, raw: Any, uri: str, pointer: str) -> SchemaNode:
        """Bind the schema *raw* found at *uri* / *pointer*.

        Args:
            raw: The raw schema value (a mapping, or a boolean in 3.1).
            uri: URI of the document containing *raw*; nested references
                are resolved relative to it.
            pointer: JSON pointer of *raw* within that document.

        Returns:
            The bound node. Malformed input yields an ``any`` node and a
            diagnostic rather than an exception. Reference targets are
            queued, not bound; see :meth:`bind_pending`.
        """
        location = canonical(uri, pointer)

        if isinstance(raw, bool):
            if self._version == OpenAPIVersion.V3_0:
                self._diagnostics.error(
                    "invalid-type", "Boolean schemas require OpenAPI 3.1", uri, pointer
                )
            kind = SchemaKind.ANY if raw else SchemaKind.NEVER
            return SchemaNode(kind=kind, location=location, name=self._names.get(location))

        if not isinstance(raw, dict):
            self._diagnostics.error(
                "invalid-type",
                f"Schema must be an object (got {type(raw).__name__})",
                uri,
                pointer,
            )
            return SchemaNode(kind=SchemaKind.ANY, location=location)

        if "$ref" in raw:
            return self._bind_reference(raw, uri, pointer)
        return self._bind_schema(raw, uri, pointer)

    # ------------------------------------------------------------------ #
    # References
    # ------------------------------------------------------------------ #

    def _bind_reference(self, raw: dict[str, Any], uri: str, pointer: str) -> SchemaNode:
        location = canonical(uri, pointer)
        ref = raw["$ref"]
        reference = self._resolve(ref, uri, location)

        siblings = {key for key in raw if key not in ("$ref",) and not key.startswith("x-")}
        annotations: dict[str, Any] = {}
        if siblings and self._version == OpenAPIVersion.V3_0:
            self._diagnostics.warning(
                "ref-siblings-ignored",
                "Keywords next to $ref are ignored in OpenAPI 3.0: "
                + ", ".join(sorted(siblings)),
                uri,
                pointer,
            )
        elif siblings:
            annotations = self._annotations(raw)

        node = SchemaNode(
            kind=SchemaKind.REFERENCE,
            location=location,
            name=self._names.get(location),
            ref=reference,
            extensions=_extensions(raw),
            **annotations,
        )

        structural = {key for key in siblings if key not in _ANNOTATION_KEYS}
        if self._version == OpenAPIVersion.V3_0 or not structural:
            return node

        # 3.1: extra keywords apply in addition to the referenced schema
        rest = {key: value for key, value in raw.items() if key != "$ref"}
        sibling_node = self._bind_schema(rest, uri, pointer, nameless=True)
        return SchemaNode(
            kind=SchemaKind.COMPOSED,
            location=location,
            name=self._names.get(location),
            all_of=(node.model_copy(update={"name": None}), sibling_node),
            **annotations,
        )

    def _resolve(self, ref: Any, uri: str, source: str) -> Reference:
        if source not in self._edges:
            self._link(ref, uri, source)
            self._explore()
        return self._edges[source]

    def _link(self, ref: Any, uri: str, source: str) -> None:
        """Classify one ``$ref``; a target seen for the first time is visited."""
        reference = Reference(
            ref=str(ref),
            target=self._resolver.target_location(ref, uri),
            source=source,
        )
        try:
            target = self._resolver.lookup(ref, uri)
        except ReferenceResolutionError as exc:
            logger.debug("Unresolved schema $ref %r at %s: %s", ref, source, exc)
            reference = reference.model_copy(update={"reason": str(exc)})
        else:
            state = self._states.get(target.location)
            if state == RefState.RESOLVING:
                logger.debug("Schema cycle detected at %s", target.location)
                reference = reference.model_copy(
                    update={
                        "target": target.location,
                        "state": RefState.CYCLIC,
                        "reason": f"'{target.location}' refers back to itself",
                    }
                )
            else:
                reference = reference.model_copy(
                    update={"target": target.location, "state": RefState.RESOLVED}
                )
                if state is None:
                    self._visit(target.location, target.node, target.uri, target.pointer)
        self._edges[source] = reference
        self._resolver.record(reference)

    def _visit(self, location: str, raw: Any, uri: str, pointer: str) -> None:
        self._states[location] = RefState.RESOLVING
        self._targets[location] = (raw, uri, pointer)
        self._order.append(location)
        self._stack.append((location, _schema_refs(raw, uri, pointer, self._version)))

    def _explore(self) -> None:
        """Depth-first walk over the reference graph, without recursion."""
        while self._stack:
            location, refs = self._stack[-1]
            edge = next(refs, None)
            if edge is None:
                self._stack.pop()
                self._states[location] = RefState.RESOLVED
                continue
            ref, source = edge
            if source not in self._edges:
                # refs inside a target resolve against the target's document
                self._link(ref, self._targets[location][1], source)

    def _bound(self, location: str) -> SchemaNode:
        if location not in self._registry:
            raw, uri, pointer = self._targets[location]
            self._registry[location] = self.bind(raw, uri, pointer)
        return self._registry[location]

    # ------------------------------------------------------------------ #
    # Concrete schemas
    # ------------------------------------------------------------------ #

    def _bind_schema(
        self, raw: dict[str, Any], uri: str, pointer: str, nameless: bool = False
    ) -> SchemaNode:
        location = canonical(uri, pointer)
        fields: dict[str, Any] = self._annotations(raw)

        types, nullable = self._types(raw, uri, pointer)
        fields["types"] = types
        fields["nullable"] = nullable
        if isinstance(raw.get("format"), str):
            fields["format"] = raw["format"]
        if isinstance(raw.get("pattern"), str):
            fields["pattern"] = raw["pattern"]

        if "enum" in raw:
            if isinstance(raw["enum"], list):
                fields["enum"] = tuple(raw["enum"])
            else:
                self._type_error("enum", "an array", raw["enum"], uri, pointer)
        if "const" in raw:
            self._require_31("const", uri, pointer)
            fields["const"] = raw["const"]

        self._numbers(raw, fields, uri, pointer)
        self._bounds(raw, fields, uri, pointer)

        # object
        properties = raw.get("properties")
        if properties is not None:
            if isinstance(properties, dict):
                fields["properties"] = {
                    name: self.bind(value, uri, join_pointer(pointer, "properties", name))
                    for name, value in properties.items()
                }
            else:
                self._type_error("properties", "an object", properties, uri, pointer)
        if "required" in raw:
            required = raw["required"]
            if isinstance(required, list) and all(isinstance(r, str) for r in required):
                fields["required"] = tuple(required)
            else:
                self._type_error("required", "an array of strings", required, uri, pointer)
        if "additionalProperties" in raw:
            extra = raw["additionalProperties"]
            if isinstance(extra, bool):
                fields["additional_properties"] = extra
            else:
                fields["additional_properties"] = self.bind(
                    extra, uri, join_pointer(pointer, "additionalProperties")
                )

        # array
        if "items" in raw:
            items = raw["items"]
            if isinstance(items, list):
                self._type_error("items", "a schema", items, uri, pointer)
            else:
                fields["items"] = self.bind(items, uri, join_pointer(pointer, "items"))
        if "prefixItems" in raw:
            self._require_31("prefixItems", uri, pointer)
            fields["prefix_items"] = self._schema_list(raw, "prefixItems", uri, pointer)
        if isinstance(raw.get("uniqueItems"), bool):
            fields["unique_items"] = raw["uniqueItems"]

        # composed
        for key, field_name in (("allOf", "all_of"), ("oneOf", "one_of"), ("anyOf", "any_of")):
            if key in raw:
                fields[field_name] = self._schema_list(raw, key, uri, pointer)
        if "not" in raw:
            fields["not_"] = self.bind(raw["not"], uri, join_pointer(pointer, "not"))
        if "discriminator" in raw:
            fields["discriminator"] = self._discriminator(raw["discriminator"], uri, pointer)

        kind = _kind_of(raw, fields)
        return SchemaNode(
            kind=kind,
            location=location,
            name=None if nameless else self._names.get(location),
            extensions=_extensions(raw),
            **fields,
        )

    def _annotations(self, raw: dict[str, Any]) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for key, field_name in (("title", "title"), ("description", "description")):
            if isinstance(raw.get(key), str):
                fields[field_name] = raw[key]
        for key, field_name in (
            ("deprecated", "deprecated"),
            ("readOnly", "read_only"),
            ("writeOnly", "write_only"),
        ):
            if isinstance(raw.get(key), bool):
                fields[field_name] = raw[key]
        if "default" in raw:
            fields["default"] = raw["default"]
        if "example" in raw:
            fields["example"] = raw["example"]
        if isinstance(raw.get("examples"), list):
            fields["examples"] = tuple(raw["examples"])
        return fields

    def _types(self, raw: dict[str, Any], uri: str, pointer: str) -> tuple[tuple[str, ...], bool]:
        declared = raw.get("type")
        if declared is None:
            names: list[Any] = []
        elif isinstance(declared, str):
            names = [declared]
        elif isinstance(declared, list):
            if self._version == OpenAPIVersion.V3_0:
                self._diagnostics.error(
                    "invalid-type",
                    "'type' must be a string in OpenAPI 3.0; type arrays require 3.1",
                    uri,
                    join_pointer(pointer, "type"),
                )
            names = declared
        else:
            self._type_error("type", "a string", declared, uri, pointer)
            names = []

        types: list[str] = []
        nullable = False
        for name in names:
            if not isinstance(name, str) or name not in _JSON_TYPES:
                self._diagnostics.error(
                    "invalid-value", f"Unknown schema type '{name}'", uri, join_pointer(pointer, "type")
                )
            elif name == "null":
                nullable = True
            elif name not in types:
                types.append(name)

        if "nullable" in raw:
            if self._version == OpenAPIVersion.V3_1:
                self._diagnostics.warning(
                    "version-keyword-mismatch",
                    "'nullable' is not part of OpenAPI 3.1; add 'null' to the type list",
                    uri,
                    join_pointer(pointer, "nullable"),
                )
            nullable = nullable or raw["nullable"] is True
        return tuple(types), nullable

    def _numbers(self, raw: dict[str, Any], fields: dict[str, Any], uri: str, pointer: str) -> None:
        for key, field_name in _NUMBER_FIELDS.items():
            if key not in raw:
                continue
            value = raw[key]
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                fields[field_name] = value
            else:
                self._type_error(key, "a number", value, uri, pointer)
        for key, field_name in _INTEGER_FIELDS.items():
            if key not in raw:
                continue
            value = raw[key]
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                fields[field_name] = value
            else:
                self._type_error(key, "a non-negative integer", value, uri, pointer)

    def _bounds(self, raw: dict[str, Any], fields: dict[str, Any], uri: str, pointer: str) -> None:
        """Normalise exclusive bounds to the numeric (3.1) form."""
        for key, inclusive, field_name in (
            ("exclusiveMinimum", "minimum", "exclusive_minimum"),
            ("exclusiveMaximum", "maximum", "exclusive_maximum"),
        ):
            if key not in raw:
                continue
            value = raw[key]
            if isinstance(value, bool):
                if self._version == OpenAPIVersion.V3_1:
                    self._diagnostics.warning(
                        "version-keyword-mismatch",
                        f"Boolean '{key}' is an OpenAPI 3.0 form; use a number in 3.1",
                        uri,
                        join_pointer(pointer, key),
                    )
                if value and inclusive in fields:
                    fields[field_name] = fields.pop(inclusive)
            elif isinstance(value, (int, float)):
                if self._version == OpenAPIVersion.V3_0:
                    self._diagnostics.warning(
                        "version-keyword-mismatch",
                        f"Numeric '{key}' is an OpenAPI 3.1 form; use a boolean in 3.0",
                        uri,
                        join_pointer(pointer, key),
                    )
                fields[field_name] = value
            else:
                self._type_error(key, "a number or boolean", value, uri, pointer)

    def _schema_list(self, raw: dict[str, Any], key: str, uri: str, pointer: str) -> tuple[SchemaNode, ...]:
        value = raw[key]
        if not isinstance(value, list):
            self._type_error(key, "an array of schemas", value, uri, pointer)
            return ()
        if not value:
            self._diagnostics.warning(
                "invalid-value", f"'{key}' should not be empty", uri, join_pointer(pointer, key)
            )
        return tuple(
            self.bind(item, uri, join_pointer(pointer, key, index))
            for index, item in enumerate(value)
        )

    def _discriminator(self, raw: Any, uri: str, pointer: str) -> Optional[Discriminator]:
        here = join_pointer(pointer, "discriminator")
        if not isinstance(raw, dict):
            self._type_error("discriminator", "an object", raw, uri, pointer)
            return None
        property_name = raw.get("propertyName")
        if not isinstance(property_name, str):
            self._diagnostics.error(
                "missing-field", "Discriminator requires 'propertyName'", uri, here
            )
            return None

        mapping: dict[str, str] = {}
        raw_mapping = raw.get("mapping") or {}
        if not isinstance(raw_mapping, dict):
            self._type_error("mapping", "an object", raw_mapping, uri, here)
            raw_mapping = {}
        for value, target in raw_mapping.items():
            reference = self._resolve(
                _mapping_ref(target), uri, canonical(uri, join_pointer(here, "mapping", value))
            )
            mapping[str(value)] = reference.target
        return Discriminator(property_name=property_name, mapping=mapping)

    def _require_31(self, key: str, uri: str, pointer: str) -> None:
        if self._version == OpenAPIVersion.V3_0:
            self._diagnostics.warning(
                "version-keyword-mismatch",
                f"'{key}' is not supported in OpenAPI 3.0 schemas",
                uri,
                join_pointer(pointer, key),
            )

    def _type_error(self, key: str, expected: str, value: Any, uri: str, pointer: str) -> None:
        self._diagnostics.error(
            "invalid-type",
            f"'{key}' must be {expected} (got {type(value).__name__})",
            uri,
            join_pointer(pointer, key),
        )


def _kind_of(raw: dict[str, Any], fields: dict[str, Any]) -> SchemaKind:
    types = fields["types"]
    if any(key in raw for key in _COMPOSITION_KEYS):
        return SchemaKind.COMPOSED
    if (
        "object" in types
        or "properties" in fields
        or "additional_properties" in fields
        or "min_properties" in fields
        or "max_properties" in fields
    ):
        return SchemaKind.OBJECT
    if "array" in types or "items" in fields or "prefix_items" in fields:
        return SchemaKind.ARRAY
    if types or "enum" in fields or "const" in raw:
        return SchemaKind.PRIMITIVE
    return SchemaKind.ANY


def _extensions(raw: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in raw.items() if isinstance(key, str) and key.startswith("x-")}


def _mapping_ref(target: Any) -> str:
    """Expand a bare discriminator mapping value to a component schema ref."""
    ref = str(target)
    if "#" not in ref and "/" not in ref and "." not in ref:
        return f"#/components/schemas/{ref}"
    return ref


def _schema_refs(
    raw: Any, uri: str, pointer: str, version: OpenAPIVersion
) -> Iterator[tuple[Any, str]]:
    """Yield ``(ref, source location)`` for every ``$ref`` bound under *raw*.

    Walks the raw schema in the order :meth:`SchemaBinder.bind` visits it,
    stopping at each ``$ref`` (the target is a separate graph node).
    """
    # entries are (is_ref, value, pointer or source location)
    stack: list[tuple[bool, Any, str]] = [(False, raw, pointer)]
    while stack:
        is_ref, value, here = stack.pop()
        if is_ref:
            yield value, here
            continue
        if not isinstance(value, dict):
            continue

        if "$ref" in value:
            yield value["$ref"], canonical(uri, here)
            rest = {key: item for key, item in value.items() if key != "$ref"}
            structural = [
                key for key in rest
                if key not in _ANNOTATION_KEYS and not str(key).startswith("x-")
            ]
            if version != OpenAPIVersion.V3_0 and structural:
                stack.append((False, rest, here))
            continue

        pending: list[tuple[bool, Any, str]] = []
        properties = value.get("properties")
        if isinstance(properties, dict):
            pending.extend(
                (False, item, join_pointer(here, "properties", name))
                for name, item in properties.items()
            )
        for key in ("additionalProperties", "items"):
            if key in value:
                pending.append((False, value[key], join_pointer(here, key)))
        for key in ("prefixItems", "allOf", "oneOf", "anyOf"):
            if isinstance(value.get(key), list):
                pending.extend(
                    (False, item, join_pointer(here, key, index))
                    for index, item in enumerate(value[key])
                )
        if "not" in value:
            pending.append((False, value["not"], join_pointer(here, "not")))

        discriminator = value.get("discriminator")
        if (
            isinstance(discriminator, dict)
            and isinstance(discriminator.get("propertyName"), str)
            and isinstance(discriminator.get("mapping"), dict)
        ):
            pending.extend(
                (True, _mapping_ref(target),
                 canonical(uri, join_pointer(here, "discriminator", "mapping", key)))
                for key, target in discriminator["mapping"].items()
            )
        stack.extend(reversed(pending))
