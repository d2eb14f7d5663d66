"""Semantic validation of a bound :class:`~specbind.models.Document`.

The binder only checks that each object is well formed on its own. The
rules here need the whole graph: path templates against declared path
parameters, ``operationId`` uniqueness, security requirements against the
declared schemes, link targets, and the references recorded while binding.

Every rule reports to a :class:`~specbind.diagnostics.DiagnosticCollector`
and keeps going, so a single run lists every problem in the document.

Rules:

* ``path-param-unused`` / ``path-param-undeclared`` /
  ``path-param-not-required`` -- path templates vs. path parameters.
* ``duplicate-parameter`` -- same ``(name, in)`` twice at one level.
* ``duplicate-operation-id`` and ``ambiguous-path``.
* ``unresolved-ref``, ``circular-ref-chain`` and ``circular-ref`` (info).
* ``undefined-security-scheme`` and ``link-operation-not-found``.
* ``missing-responses`` -- an error in 3.0, a warning in 3.1.
* ``server-variable-undefined`` / ``server-variable-default-not-in-enum``.
* ``required-property-undefined``, ``default-not-in-enum`` and
  ``discriminator-property-missing`` (warnings on schemas).
* ``no-paths`` -- a 3.1 document with no paths, webhooks or components.
"""

from __future__ import annotations

import logging
import re
from typing import Iterator, Optional

from specbind.config import ParseOptions
from specbind.diagnostics import DiagnosticCollector, PositionLookup
from specbind.exceptions import ReferenceResolutionError
from specbind.models import (
    Components,
    Document,
    OpenAPIVersion,
    Operation,
    Parameter,
    ParameterLocation,
    PathItem,
    RefState,
    SchemaKind,
    SchemaNode,
    SecurityRequirement,
    Server,
    ValidationReport,
)
from specbind.parser.pointer import join_pointer, split_location

logger = logging.getLogger(__name__)

_TEMPLATE_VARIABLE = re.compile(r"\{([^{}]+)\}")


class DocumentValidator:
    """Run every semantic rule against *document*.

    Args:
        document: The bound document.
        diagnostics: Collector receiving findings; the binder's collector
            when called from :func:`specbind.importer.parse`.
    """

    def __init__(self, document: Document, diagnostics: DiagnosticCollector) -> None:
        self.document = document
        self._diagnostics = diagnostics

    def run(self) -> None:
        self._check_references()
        self._check_schema_chains()
        self._check_document_shape()
        self._check_servers(self.document.servers)
        self._check_security(self.document.security, self.document.uri, "/security")

        self._check_ambiguous_paths()
        seen_ids: dict[str, Operation] = {}
        for path_item in self._path_items():
            self._check_path_item(path_item)
            for operation in path_item.operations.values():
                self._check_operation(path_item, operation, seen_ids)

        for node in self._schema_nodes():
            self._check_schema(node)

    # --- References ---

    def _check_references(self) -> None:
        for reference in self.document.references:
            uri, pointer = split_location(reference.source)
            if reference.state == RefState.UNRESOLVED:
                message = f"Cannot resolve $ref '{reference.ref}'"
                if reference.reason:
                    message += f": {reference.reason}"
                self._diagnostics.error("unresolved-ref", message, uri, pointer)
            elif reference.state == RefState.CYCLIC and not reference.is_schema:
                self._diagnostics.error(
                    "circular-ref-chain",
                    f"$ref '{reference.ref}' forms a reference cycle ({reference.reason})",
                    uri,
                    pointer,
                )
            elif reference.state == RefState.CYCLIC:
                self._diagnostics.info(
                    "circular-ref",
                    f"Recursive schema reference '{reference.ref}'",
                    uri,
                    pointer,
                )

    def _check_schema_chains(self) -> None:
        """Report schemas that are nothing but a ``$ref`` chain looping back."""
        for location, node in self.document.schemas.items():
            if not node.is_reference or not _chain_loops(self.document, node):
                continue
            uri, pointer = split_location(location)
            self._diagnostics.error(
                "circular-ref-chain",
                f"Schema reference chain starting at '{location}' never reaches a schema",
                uri,
                pointer,
            )

    # --- Document level ---

    def _check_document_shape(self) -> None:
        document = self.document
        if (
            document.version == OpenAPIVersion.V3_1
            and not document.paths
            and not document.webhooks
            and document.components == Components()
        ):
            self._diagnostics.error(
                "no-paths",
                "An OpenAPI 3.1 document needs at least one of 'paths', 'webhooks' "
                "or 'components'",
                document.uri,
                "",
            )

    def _check_servers(self, servers: tuple[Server, ...]) -> None:
        for server in servers:
            uri, pointer = split_location(server.declared_at)
            for name in _TEMPLATE_VARIABLE.findall(server.url):
                if name not in server.variables:
                    self._diagnostics.error(
                        "server-variable-undefined",
                        f"Server URL '{server.url}' uses '{{{name}}}' but declares no such variable",
                        uri,
                        join_pointer(pointer, "url"),
                    )
            for name, variable in server.variables.items():
                if variable.enum is not None and variable.default not in variable.enum:
                    self._diagnostics.error(
                        "server-variable-default-not-in-enum",
                        f"Default '{variable.default}' of server variable '{name}' "
                        f"is not one of {list(variable.enum)}",
                        uri,
                        join_pointer(pointer, "variables", name, "default"),
                    )

    def _check_security(
        self,
        requirements: Optional[tuple[SecurityRequirement, ...]],
        uri: str,
        pointer: str,
    ) -> None:
        declared = self.document.components.security_schemes
        for index, requirement in enumerate(requirements or ()):
            for name in requirement.schemes:
                if name not in declared:
                    self._diagnostics.error(
                        "undefined-security-scheme",
                        f"Security requirement names undeclared scheme '{name}'",
                        uri,
                        join_pointer(pointer, index, name),
                    )

    def _check_ambiguous_paths(self) -> None:
        normalised: dict[str, str] = {}
        for path in self.document.paths:
            key = _TEMPLATE_VARIABLE.sub("{}", path)
            if key in normalised and normalised[key] != path:
                self._diagnostics.error(
                    "ambiguous-path",
                    f"Path '{path}' is equivalent to '{normalised[key]}'",
                    self.document.uri,
                    join_pointer("/paths", path),
                )
            else:
                normalised.setdefault(key, path)

    # --- Paths and operations ---

    def _check_path_item(self, path_item: PathItem) -> None:
        self._check_duplicate_parameters(path_item.parameters)
        self._check_servers(path_item.servers)
        template = set(_TEMPLATE_VARIABLE.findall(path_item.path))
        for param in path_item.parameters:
            if param.location == ParameterLocation.PATH:
                self._check_path_param(path_item.path, template, param)

    def _check_operation(
        self, path_item: PathItem, operation: Operation, seen_ids: dict[str, Operation]
    ) -> None:
        uri, pointer = split_location(operation.declared_at)
        label = f"{operation.method.value.upper()} {operation.path}"

        if operation.operation_id is not None:
            first = seen_ids.get(operation.operation_id)
            if first is None:
                seen_ids[operation.operation_id] = operation
            else:
                self._diagnostics.error(
                    "duplicate-operation-id",
                    f"operationId '{operation.operation_id}' of {label} is already used by "
                    f"{first.method.value.upper()} {first.path}",
                    uri,
                    join_pointer(pointer, "operationId"),
                )

        self._check_duplicate_parameters(operation.parameters)
        template = set(_TEMPLATE_VARIABLE.findall(operation.path))
        declared = set()
        for param in operation.parameters:
            if param.location == ParameterLocation.PATH:
                declared.add(param.name)
                self._check_path_param(operation.path, template, param)
        # webhook names are not templates
        if operation.path.startswith("/"):
            for name in sorted(template - declared):
                self._diagnostics.error(
                    "path-param-undeclared",
                    f"{label} uses '{{{name}}}' but declares no path parameter '{name}'",
                    uri,
                    pointer,
                )

        if not operation.responses:
            message = f"{label} declares no responses"
            if self.document.version == OpenAPIVersion.V3_0:
                self._diagnostics.error("missing-responses", message, uri, pointer)
            else:
                self._diagnostics.warning("missing-responses", message, uri, pointer)

        self._check_security(operation.security, uri, join_pointer(pointer, "security"))
        self._check_servers(operation.servers)
        for response in operation.responses.values():
            for link in response.links.values():
                self._check_link(link.operation_id, link.operation_ref, link.declared_at)

    def _check_path_param(self, path: str, template: set[str], param: Parameter) -> None:
        uri, pointer = split_location(param.declared_at)
        if path.startswith("/") and param.name not in template:
            self._diagnostics.error(
                "path-param-unused",
                f"Path parameter '{param.name}' does not appear in '{path}'",
                uri,
                pointer,
            )
        if not param.required:
            self._diagnostics.error(
                "path-param-not-required",
                f"Path parameter '{param.name}' must be marked required: true",
                uri,
                pointer,
            )

    def _check_duplicate_parameters(self, parameters: tuple[Parameter, ...]) -> None:
        seen: set[tuple[str, str]] = set()
        for param in parameters:
            if param.key in seen:
                uri, pointer = split_location(param.declared_at)
                self._diagnostics.error(
                    "duplicate-parameter",
                    f"Parameter '{param.name}' in {param.location.value} is declared more than once",
                    uri,
                    pointer,
                )
            seen.add(param.key)

    def _check_link(
        self, operation_id: Optional[str], operation_ref: Optional[str], declared_at: str
    ) -> None:
        uri, pointer = split_location(declared_at)
        if operation_id is not None:
            if self.document.get_operation(operation_id) is None:
                self._diagnostics.error(
                    "link-operation-not-found",
                    f"Link targets operationId '{operation_id}', which no operation declares",
                    uri,
                    join_pointer(pointer, "operationId"),
                )
        elif operation_ref is not None and operation_ref.startswith("#"):
            target = f"{self.document.uri}{operation_ref}"
            if not any(op.declared_at == target for op in self.document.operations):
                self._diagnostics.error(
                    "link-operation-not-found",
                    f"Link targets operationRef '{operation_ref}', which is not an operation",
                    uri,
                    join_pointer(pointer, "operationRef"),
                )

    # --- Schemas ---

    def _check_schema(self, node: SchemaNode) -> None:
        uri, pointer = split_location(node.location)

        if node.enum is not None and node.default is not None and node.default not in node.enum:
            self._diagnostics.warning(
                "default-not-in-enum",
                f"Default {node.default!r} is not one of the enum values",
                uri,
                join_pointer(pointer, "default"),
            )

        if node.kind == SchemaKind.OBJECT and node.properties:
            for name in node.required:
                if name not in node.properties:
                    self._diagnostics.warning(
                        "required-property-undefined",
                        f"Required property '{name}' is not declared in 'properties'",
                        uri,
                        join_pointer(pointer, "required"),
                    )

        if node.discriminator is not None:
            property_name = node.discriminator.property_name
            members = node.one_of + node.any_of
            if property_name in _collect_properties(self.document, node):
                return
            if not members:
                self._diagnostics.warning(
                    "discriminator-property-missing",
                    f"Discriminator property '{property_name}' is not declared",
                    uri,
                    join_pointer(pointer, "discriminator"),
                )
            for member in members:
                if property_name not in _collect_properties(self.document, member):
                    member_uri, member_pointer = split_location(member.location)
                    self._diagnostics.warning(
                        "discriminator-property-missing",
                        f"Discriminator property '{property_name}' is not declared "
                        f"by '{_describe(member)}'",
                        member_uri,
                        member_pointer,
                    )

    # --- Traversal ---

    def _path_items(self) -> Iterator[PathItem]:
        """Paths, webhooks and the path items nested in their callbacks."""
        stack = list(self.document.paths.values()) + list(self.document.webhooks.values())
        stack.reverse()
        while stack:
            path_item = stack.pop()
            yield path_item
            nested = [
                item
                for operation in path_item.operations.values()
                for callback in operation.callbacks.values()
                for item in callback.values()
            ]
            stack.extend(reversed(nested))

    def _schema_nodes(self) -> Iterator[SchemaNode]:
        """Every schema node in the graph, each once; references are not followed."""
        roots: list[SchemaNode] = list(self.document.schemas.values())
        components = self.document.components
        roots.extend(components.schemas.values())
        for param in components.parameters.values():
            roots.extend(_parameter_schemas(param))
        for path_item in self._path_items():
            for param in path_item.parameters:
                roots.extend(_parameter_schemas(param))
            for operation in path_item.operations.values():
                for param in operation.parameters:
                    roots.extend(_parameter_schemas(param))
                if operation.request_body is not None:
                    roots.extend(
                        m.schema_ for m in operation.request_body.content.values() if m.schema_
                    )
                for response in operation.responses.values():
                    roots.extend(m.schema_ for m in response.content.values() if m.schema_)
                    for header in response.headers.values():
                        if header.schema_ is not None:
                            roots.append(header.schema_)

        seen: set[int] = set()
        stack = list(reversed(roots))
        while stack:
            node = stack.pop()
            if id(node) in seen:
                continue
            seen.add(id(node))
            yield node
            stack.extend(reversed(list(_children(node))))


def validate(
    document: Document,
    options: Optional[ParseOptions] = None,
    positions: Optional[PositionLookup] = None,
) -> ValidationReport:
    """Validate a bound document on its own.

    :func:`specbind.importer.parse` runs the same rules against the
    binder's collector so both sets of findings share one report; this
    function is for documents bound or modified separately.

    Args:
        document: The bound document.
        options: Only ``warnings_as_errors`` is consulted.
        positions: Optional ``(uri, pointer) -> Position`` lookup.

    Returns:
        The accumulated :class:`~specbind.models.ValidationReport`.
    """
    options = options or ParseOptions()
    diagnostics = DiagnosticCollector(positions)
    DocumentValidator(document, diagnostics).run()
    logger.debug("Validation produced %d diagnostic(s)", len(diagnostics))
    return diagnostics.report(warnings_as_errors=options.warnings_as_errors)


def _chain_loops(document: Document, node: SchemaNode) -> bool:
    try:
        document.deref(node)
    except ReferenceResolutionError:
        # unresolved targets are reported through the recorded references
        current, seen = node, set()
        while current.is_reference and current.ref is not None:
            target = current.ref.target
            if target in seen:
                return True
            if target not in document.schemas:
                return False
            seen.add(target)
            current = document.schemas[target]
    return False


def _collect_properties(document: Document, node: SchemaNode, seen: Optional[set[str]] = None) -> set[str]:
    """Property names declared by *node*, its ``allOf`` parts and reference targets."""
    seen = set() if seen is None else seen
    if node.location in seen and node.is_reference:
        return set()
    seen.add(node.location)
    if node.is_reference:
        try:
            node = document.deref(node)
        except ReferenceResolutionError:
            return set()
    names = set(node.properties)
    for part in node.all_of:
        names |= _collect_properties(document, part, seen)
    return names


def _children(node: SchemaNode) -> Iterator[SchemaNode]:
    yield from node.properties.values()
    if isinstance(node.additional_properties, SchemaNode):
        yield node.additional_properties
    if node.items is not None:
        yield node.items
    yield from node.prefix_items
    yield from node.all_of
    yield from node.one_of
    yield from node.any_of
    if node.not_ is not None:
        yield node.not_


def _parameter_schemas(param: Parameter) -> list[SchemaNode]:
    schemas = [param.schema_] if param.schema_ is not None else []
    schemas.extend(m.schema_ for m in param.content.values() if m.schema_ is not None)
    return schemas


def _describe(node: SchemaNode) -> str:
    if node.is_reference and node.ref is not None:
        return node.ref.ref
    return node.name or node.location
