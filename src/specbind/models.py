"""Canonical Pydantic models shared across all specbind modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Bound document models** -- the immutable object graph produced by the
binder and handed to downstream consumers (e.g. code generators):
    :class:`Document`, :class:`Info`, :class:`Server`, :class:`PathItem`,
    :class:`Operation`, :class:`Parameter`, :class:`RequestBody`,
    :class:`MediaType`, :class:`Response`, :class:`Header`, :class:`Link`,
    :class:`SecurityScheme`, :class:`Components`, and the recursive
    :class:`SchemaNode`.

**Reference models** -- :class:`Reference` and :class:`RefState` describe a
``$ref`` pointer together with its resolution state.

**Diagnostic models** -- :class:`Position`, :class:`Diagnostic`,
:class:`ValidationReport`, and the pipeline output :class:`ParseResult`.

All models are frozen. Schema references are never inlined: a ``$ref`` becomes
a ``reference`` :class:`SchemaNode` whose target is stored once in
:attr:`Document.schemas`, which is what keeps recursive schemas representable
in an immutable graph. Use :meth:`Document.deref` to follow them.
"""

from __future__ import annotations

import enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from specbind.exceptions import ReferenceResolutionError


_FROZEN = ConfigDict(frozen=True, populate_by_name=True)


# --- Enumerations ---


class OpenAPIVersion(str, enum.Enum):
    """Major/minor OpenAPI line a document was bound against."""

    V3_0 = "3.0"
    V3_1 = "3.1"


class HTTPMethod(str, enum.Enum):
    """HTTP methods recognised by OpenAPI 3.x path-item objects."""

    GET = "get"
    PUT = "put"
    POST = "post"
    DELETE = "delete"
    OPTIONS = "options"
    HEAD = "head"
    PATCH = "patch"
    TRACE = "trace"


class ParameterLocation(str, enum.Enum):
    """Locations where an API parameter can appear, per OpenAPI ``in`` field."""

    QUERY = "query"
    HEADER = "header"
    PATH = "path"
    COOKIE = "cookie"


class SchemaKind(str, enum.Enum):
    """Shape of a :class:`SchemaNode`.

    ``composed`` covers ``allOf`` / ``oneOf`` / ``anyOf`` / ``not``;
    ``any`` is the empty schema (or ``true``) and ``never`` is ``false``.
    """

    PRIMITIVE = "primitive"
    OBJECT = "object"
    ARRAY = "array"
    COMPOSED = "composed"
    REFERENCE = "reference"
    ANY = "any"
    NEVER = "never"


class RefState(str, enum.Enum):
    """Resolution state of a ``$ref`` pointer.

    ``resolving`` is only observed while the binder is working on the target;
    a finished graph contains ``unresolved``, ``resolved`` or ``cyclic``.
    """

    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    CYCLIC = "cyclic"


class Severity(str, enum.Enum):
    """Diagnostic severity, most severe first."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# --- References ---


class Reference(BaseModel):
    """A ``$ref`` pointer and where it leads.

    ``target`` is the canonical location (``document_uri#json_pointer``) of
    the referenced node, or an empty string when the reference could not even
    be parsed. ``source`` is the canonical location of the ``$ref`` itself.
    ``is_schema`` distinguishes schema references, which may legitimately be
    recursive, from references to other component types, which are inlined
    and therefore must not loop.
    """

    model_config = _FROZEN

    ref: str
    target: str = ""
    source: str = ""
    state: RefState = RefState.UNRESOLVED
    is_schema: bool = True
    reason: Optional[str] = Field(
        default=None, description="Why the reference is unresolved or cyclic"
    )


# --- Schemas ---


class Discriminator(BaseModel):
    """Polymorphism hint attached to a composed schema.

    ``mapping`` maps discriminator values to canonical schema locations
    (bare schema names are already expanded to ``#/components/schemas/...``).
    """

    model_config = _FROZEN

    property_name: str
    mapping: dict[str, str] = Field(default_factory=dict)


class SchemaNode(BaseModel):
    """A bound JSON Schema node.

    The ``kind`` field discriminates between the shapes listed in
    :class:`SchemaKind`; only the fields relevant to that shape are
    populated. ``types`` never contains ``"null"``: nullability from either
    OpenAPI 3.0 ``nullable`` or a 3.1 type list is folded into ``nullable``.
    Exclusive bounds are always numeric regardless of the source version.
    """

    model_config = _FROZEN

    kind: SchemaKind
    location: str = Field(description="Canonical location (uri#pointer)")
    name: Optional[str] = Field(
        default=None, description="Component name when declared under components.schemas"
    )
    ref: Optional[Reference] = None

    types: tuple[str, ...] = ()
    nullable: bool = False
    format: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    default: Any = None
    example: Any = None
    examples: Optional[tuple[Any, ...]] = None
    enum: Optional[tuple[Any, ...]] = None
    const: Any = None
    deprecated: bool = False
    read_only: bool = False
    write_only: bool = False

    # primitive constraints
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None
    multiple_of: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None

    # object
    properties: dict[str, SchemaNode] = Field(default_factory=dict)
    required: tuple[str, ...] = ()
    additional_properties: Optional[Union[bool, SchemaNode]] = None
    min_properties: Optional[int] = None
    max_properties: Optional[int] = None

    # array
    items: Optional[SchemaNode] = None
    prefix_items: tuple[SchemaNode, ...] = ()
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    unique_items: bool = False

    # composed
    all_of: tuple[SchemaNode, ...] = ()
    one_of: tuple[SchemaNode, ...] = ()
    any_of: tuple[SchemaNode, ...] = ()
    not_: Optional[SchemaNode] = None
    discriminator: Optional[Discriminator] = None

    extensions: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_reference(self) -> bool:
        return self.kind == SchemaKind.REFERENCE


# --- Operation building blocks ---


class Example(BaseModel):
    """An OpenAPI *Example Object*."""

    model_config = _FROZEN

    summary: Optional[str] = None
    description: Optional[str] = None
    value: Any = None
    external_value: Optional[str] = None


class MediaType(BaseModel):
    """One entry of a ``content`` map, keyed by media type in its parent."""

    model_config = _FROZEN

    schema_: Optional[SchemaNode] = Field(default=None, alias="schema")
    example: Any = None
    examples: dict[str, Example] = Field(default_factory=dict)
    encoding: dict[str, Any] = Field(default_factory=dict)


class Parameter(BaseModel):
    """An OpenAPI *Parameter Object* after ``$ref`` resolution.

    ``required`` keeps the declared value; the validator reports path
    parameters that are not marked required.
    """

    model_config = _FROZEN

    name: str
    location: ParameterLocation
    required: bool = False
    description: Optional[str] = None
    deprecated: bool = False
    allow_empty_value: bool = False
    style: Optional[str] = None
    explode: Optional[bool] = None
    schema_: Optional[SchemaNode] = Field(default=None, alias="schema")
    content: dict[str, MediaType] = Field(default_factory=dict)
    example: Any = None
    examples: dict[str, Example] = Field(default_factory=dict)
    declared_at: str = Field(default="", description="Canonical location (uri#pointer) of the declaration")
    extensions: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the parameter within an operation: ``(name, in)``."""
        return (self.name, self.location.value)


class Header(BaseModel):
    """An OpenAPI *Header Object*."""

    model_config = _FROZEN

    description: Optional[str] = None
    required: bool = False
    deprecated: bool = False
    schema_: Optional[SchemaNode] = Field(default=None, alias="schema")
    content: dict[str, MediaType] = Field(default_factory=dict)


class RequestBody(BaseModel):
    """An OpenAPI *Request Body Object*."""

    model_config = _FROZEN

    description: Optional[str] = None
    required: bool = False
    content: dict[str, MediaType] = Field(default_factory=dict)
    extensions: dict[str, Any] = Field(default_factory=dict)


class Link(BaseModel):
    """An OpenAPI *Link Object* describing a follow-up operation."""

    model_config = _FROZEN

    operation_id: Optional[str] = None
    operation_ref: Optional[str] = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    request_body: Any = None
    description: Optional[str] = None
    declared_at: str = ""


class Response(BaseModel):
    """Response metadata for a single status code (or ``default``)."""

    model_config = _FROZEN

    status_code: str
    description: Optional[str] = None
    headers: dict[str, Header] = Field(default_factory=dict)
    content: dict[str, MediaType] = Field(default_factory=dict)
    links: dict[str, Link] = Field(default_factory=dict)
    extensions: dict[str, Any] = Field(default_factory=dict)


class SecurityRequirement(BaseModel):
    """One alternative of a ``security`` list: scheme name -> required scopes."""

    model_config = _FROZEN

    schemes: dict[str, tuple[str, ...]] = Field(default_factory=dict)


class OAuthFlow(BaseModel):
    """A single OAuth2 flow definition."""

    model_config = _FROZEN

    authorization_url: Optional[str] = None
    token_url: Optional[str] = None
    refresh_url: Optional[str] = None
    scopes: dict[str, str] = Field(default_factory=dict)


class SecurityScheme(BaseModel):
    """An OpenAPI *Security Scheme Object*.

    The ``type`` field discriminates between ``apiKey``, ``http``,
    ``oauth2``, ``openIdConnect`` and (3.1) ``mutualTLS``. Only the fields
    relevant to the active scheme type are populated.
    """

    model_config = _FROZEN

    name: str
    type: str
    description: Optional[str] = None
    # apiKey
    param_name: Optional[str] = None
    location: Optional[str] = None
    # http
    scheme: Optional[str] = None
    bearer_format: Optional[str] = None
    # oauth2
    flows: dict[str, OAuthFlow] = Field(default_factory=dict)
    # openIdConnect
    openid_connect_url: Optional[str] = None


class Operation(BaseModel):
    """A single bound API operation (one path + HTTP method pair).

    ``parameters`` already contains path-level parameters merged with the
    operation-level ones. ``security`` is the declared value: ``None`` means
    "inherit the document default", an empty tuple means "no auth". Use
    :meth:`Document.effective_security` for the effective requirements.
    """

    model_config = _FROZEN

    path: str
    method: HTTPMethod
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: tuple[str, ...] = ()
    parameters: tuple[Parameter, ...] = ()
    request_body: Optional[RequestBody] = None
    responses: dict[str, Response] = Field(default_factory=dict)
    callbacks: dict[str, dict[str, PathItem]] = Field(default_factory=dict)
    security: Optional[tuple[SecurityRequirement, ...]] = None
    servers: tuple[Server, ...] = ()
    deprecated: bool = False
    declared_at: str = ""
    extensions: dict[str, Any] = Field(default_factory=dict)


class PathItem(BaseModel):
    """An OpenAPI *Path Item Object*, keyed by its template in the parent map.

    ``parameters`` holds only the path-level declarations (the validator
    checks them for duplicates); each operation carries its merged list.
    """

    model_config = _FROZEN

    path: str
    summary: Optional[str] = None
    description: Optional[str] = None
    parameters: tuple[Parameter, ...] = ()
    operations: dict[HTTPMethod, Operation] = Field(default_factory=dict)
    servers: tuple[Server, ...] = ()
    declared_at: str = ""
    extensions: dict[str, Any] = Field(default_factory=dict)


# --- Document-level metadata ---


class Contact(BaseModel):
    model_config = _FROZEN

    name: Optional[str] = None
    url: Optional[str] = None
    email: Optional[str] = None


class License(BaseModel):
    model_config = _FROZEN

    name: str
    identifier: Optional[str] = None
    url: Optional[str] = None


class Info(BaseModel):
    """API metadata from the document's *Info Object*."""

    model_config = _FROZEN

    title: str
    version: str
    summary: Optional[str] = None
    description: Optional[str] = None
    terms_of_service: Optional[str] = None
    contact: Optional[Contact] = None
    license: Optional[License] = None


class ServerVariable(BaseModel):
    model_config = _FROZEN

    default: str
    enum: Optional[tuple[str, ...]] = None
    description: Optional[str] = None


class Server(BaseModel):
    """A server entry from a ``servers`` array."""

    model_config = _FROZEN

    url: str
    description: Optional[str] = None
    variables: dict[str, ServerVariable] = Field(default_factory=dict)
    declared_at: str = ""


class Tag(BaseModel):
    model_config = _FROZEN

    name: str
    description: Optional[str] = None
    external_docs_url: Optional[str] = None


class Components(BaseModel):
    """Reusable definitions from the ``components`` section.

    Every map is keyed by component name. Schemas are bound nodes; all other
    component types are dereferenced copies.
    """

    model_config = _FROZEN

    schemas: dict[str, SchemaNode] = Field(default_factory=dict)
    responses: dict[str, Response] = Field(default_factory=dict)
    parameters: dict[str, Parameter] = Field(default_factory=dict)
    examples: dict[str, Example] = Field(default_factory=dict)
    request_bodies: dict[str, RequestBody] = Field(default_factory=dict)
    headers: dict[str, Header] = Field(default_factory=dict)
    security_schemes: dict[str, SecurityScheme] = Field(default_factory=dict)
    links: dict[str, Link] = Field(default_factory=dict)
    callbacks: dict[str, dict[str, PathItem]] = Field(default_factory=dict)
    path_items: dict[str, PathItem] = Field(default_factory=dict)


class Document(BaseModel):
    """Fully bound, immutable representation of an OpenAPI document.

    ``schemas`` is the registry of every schema node reachable through a
    reference, keyed by canonical location; reference nodes point into it.
    ``references`` lists every schema reference encountered during binding
    so that the validator can report unresolved or cyclic ones.

    See Also:
        :meth:`deref`: Follow a ``reference`` schema node to its target.
    """

    model_config = _FROZEN

    openapi: str = Field(description="Declared version string, e.g. '3.0.3'")
    version: OpenAPIVersion
    uri: str = ""
    info: Info
    servers: tuple[Server, ...] = ()
    paths: dict[str, PathItem] = Field(default_factory=dict)
    webhooks: dict[str, PathItem] = Field(default_factory=dict)
    components: Components = Field(default_factory=Components)
    security: tuple[SecurityRequirement, ...] = ()
    tags: tuple[Tag, ...] = ()
    json_schema_dialect: Optional[str] = None
    schemas: dict[str, SchemaNode] = Field(default_factory=dict)
    references: tuple[Reference, ...] = ()
    extensions: dict[str, Any] = Field(default_factory=dict)

    @property
    def operations(self) -> list[Operation]:
        """Every operation under ``paths``, in declaration order."""
        return [
            operation
            for path_item in self.paths.values()
            for operation in path_item.operations.values()
        ]

    def get_operation(self, operation_id: str) -> Optional[Operation]:
        """Return the operation with *operation_id*, or ``None``."""
        for operation in self.operations:
            if operation.operation_id == operation_id:
                return operation
        return None

    def effective_security(self, operation: Operation) -> tuple[SecurityRequirement, ...]:
        """Operation-level security overrides the global list; ``()`` means no auth."""
        if operation.security is not None:
            return operation.security
        return self.security

    def deref(self, node: SchemaNode) -> SchemaNode:
        """Follow ``reference`` nodes until a concrete schema is reached.

        Args:
            node: Any schema node; non-reference nodes are returned as-is.

        Returns:
            The first non-reference node along the chain.

        Raises:
            ReferenceResolutionError: If a reference in the chain is
                unresolved or the chain loops back on itself.
        """
        seen: set[str] = set()
        current = node
        while current.kind == SchemaKind.REFERENCE:
            ref = current.ref
            if ref is None or ref.target not in self.schemas:
                raise ReferenceResolutionError(
                    f"Cannot dereference {current.location}: "
                    f"'{ref.ref if ref else '?'}' is unresolved"
                )
            if ref.target in seen:
                raise ReferenceResolutionError(
                    f"Reference chain starting at {node.location} loops back on {ref.target}"
                )
            seen.add(ref.target)
            current = self.schemas[ref.target]
        return current


# --- Diagnostics ---


class Position(BaseModel):
    """1-based line/column inside a source document."""

    model_config = _FROZEN

    line: int
    column: int


class Diagnostic(BaseModel):
    """A single finding produced by the loader, binder, or validator."""

    model_config = _FROZEN

    severity: Severity
    code: str
    message: str
    uri: str = ""
    pointer: str = ""
    position: Optional[Position] = None

    @property
    def location(self) -> str:
        """``uri#pointer`` plus ``:line:column`` when the position is known."""
        text = f"{self.uri}#{self.pointer}"
        if self.position is not None:
            text += f":{self.position.line}:{self.position.column}"
        return text


class ValidationReport(BaseModel):
    """Accumulated diagnostics for one parse, in discovery order."""

    model_config = _FROZEN

    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    @property
    def is_valid(self) -> bool:
        """``True`` when the report contains no error-level diagnostics."""
        return not self.errors

    def by_code(self, code: str) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.code == code]

    def codes(self) -> set[str]:
        return {d.code for d in self.diagnostics}


class ParseResult(BaseModel):
    """Output of :func:`specbind.importer.parse`: the bound graph plus its report."""

    model_config = _FROZEN

    document: Document
    report: ValidationReport
    documents: tuple[str, ...] = Field(
        default=(), description="URIs of every document loaded while binding"
    )

    @property
    def components(self) -> Components:
        return self.document.components

    @property
    def is_valid(self) -> bool:
        return self.report.is_valid

    def raise_for_errors(self) -> ParseResult:
        """Raise :class:`~specbind.exceptions.ValidationFailedError` if invalid.

        Returns:
            ``self`` when the report contains no errors, for chaining.
        """
        from specbind.exceptions import ValidationFailedError

        if not self.report.is_valid:
            raise ValidationFailedError(self)
        return self


SchemaNode.model_rebuild()
MediaType.model_rebuild()
Operation.model_rebuild()
PathItem.model_rebuild()
