"""Bind a loaded OpenAPI tree to the :mod:`specbind.models` object graph.

The binder walks the root document section by section (``info``,
``servers``, ``paths``, ``components``, ``security``, ``tags``,
``webhooks``) and builds the frozen models. It never stops on the first
problem: structural issues such as a missing required field or a value of
the wrong type are reported to the :class:`~specbind.diagnostics.DiagnosticCollector`
and the offending object is skipped or given a neutral fallback.

Non-schema ``$ref`` pointers are inlined through
:meth:`~specbind.parser.resolver.ReferenceResolver.follow`; schema
references are delegated to :class:`~specbind.parser.schemas.SchemaBinder`.

Parameter merging follows the OpenAPI specification: path-level parameters
provide defaults, and operation-level parameters override them when they share
the same ``name`` and ``in`` values.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from specbind.diagnostics import DiagnosticCollector
from specbind.models import (
    Components,
    Contact,
    Document,
    Example,
    Header,
    HTTPMethod,
    Info,
    License,
    Link,
    MediaType,
    OAuthFlow,
    OpenAPIVersion,
    Operation,
    Parameter,
    ParameterLocation,
    PathItem,
    Reference,
    RefState,
    RequestBody,
    Response,
    SecurityRequirement,
    SecurityScheme,
    Server,
    ServerVariable,
    Tag,
)
from specbind.parser.pointer import canonical, join_pointer
from specbind.parser.resolver import DocumentRegistry, ReferenceResolver
from specbind.parser.schemas import SchemaBinder

logger = logging.getLogger(__name__)

# HTTP methods recognized by OpenAPI
_HTTP_METHODS = {m.value: m for m in HTTPMethod}

_LOCATIONS = {loc.value: loc for loc in ParameterLocation}

_STATUS_CODE = re.compile(r"^(default|[1-5][0-9][0-9]|[1-5]XX)$")

_KNOWN_VERSION = re.compile(r"^3\.[01]\.\d+$")

_API_KEY_LOCATIONS = frozenset({"query", "header", "cookie"})

_FLOW_URLS = {
    "implicit": ("authorizationUrl",),
    "password": ("tokenUrl",),
    "clientCredentials": ("tokenUrl",),
    "authorizationCode": ("authorizationUrl", "tokenUrl"),
}


class DocumentBinder:
    """Build a :class:`~specbind.models.Document` from the root of *registry*.

    Args:
        registry: Documents taking part in the parse; the root is bound.
        resolver: Resolver shared with the schema binder.
        diagnostics: Collector receiving binding findings.
        version: OpenAPI line detected from the root document.
        declared: The ``openapi`` string exactly as declared.
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        resolver: ReferenceResolver,
        diagnostics: DiagnosticCollector,
        version: OpenAPIVersion,
        declared: str,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._diagnostics = diagnostics
        self._version = version
        self._declared = declared
        self._schemas = SchemaBinder(resolver, diagnostics, version)
        self._active_path_items: set[str] = set()

    def bind(self) -> Document:
        """Bind the root document.

        Returns:
            The bound document; its :attr:`~specbind.models.Document.references`
            list every reference followed, for the validator.
        """
        root = self._registry.root
        uri = root.uri
        tree = root.tree

        if not _KNOWN_VERSION.match(self._declared):
            self._diagnostics.warning(
                "unknown-openapi-version",
                f"OpenAPI version '{self._declared}' is not a released 3.0.x/3.1.x "
                f"version; binding with {self._version.value} rules",
                uri,
                "/openapi",
            )

        # Components first so schema names are known before paths refer to them
        components = self._bind_components(tree.get("components"), uri)

        paths: dict[str, PathItem] = {}
        if "paths" not in tree:
            if self._version == OpenAPIVersion.V3_0:
                self._diagnostics.error("missing-field", "Document has no 'paths'", uri, "")
        else:
            paths = self._bind_paths(tree["paths"], uri)

        webhooks: dict[str, PathItem] = {}
        if "webhooks" in tree:
            self._require_31("webhooks", uri, "")
            webhooks = self._bind_path_map(tree["webhooks"], uri, "/webhooks")

        dialect = tree.get("jsonSchemaDialect")
        if dialect is not None:
            self._require_31("jsonSchemaDialect", uri, "")
            if not isinstance(dialect, str):
                self._type_error("jsonSchemaDialect", "a string", dialect, uri, "")
                dialect = None

        security: tuple[SecurityRequirement, ...] = ()
        if "security" in tree:
            security = self._bind_security(tree["security"], uri, "/security") or ()

        document = Document(
            openapi=self._declared,
            version=self._version,
            uri=uri,
            info=self._bind_info(tree.get("info"), uri),
            servers=self._bind_servers(tree.get("servers"), uri, "/servers"),
            paths=paths,
            webhooks=webhooks,
            components=components,
            security=security,
            tags=self._bind_tags(tree.get("tags"), uri),
            json_schema_dialect=dialect,
            schemas=self._schemas.registry,
            references=tuple(self._resolver.references),
            extensions=_extensions(tree),
        )

        for loaded in self._registry.documents:
            for pointer in loaded.duplicate_keys:
                self._diagnostics.warning(
                    "duplicate-key",
                    "Mapping key appears more than once; the last value wins",
                    loaded.uri,
                    pointer,
                )
        logger.debug(
            "Bound %d path(s), %d schema target(s), %d reference(s)",
            len(paths),
            len(document.schemas),
            len(document.references),
        )
        return document

    # --- Info, servers and tags ---

    def _bind_info(self, raw: Any, uri: str) -> Info:
        if raw is None:
            self._diagnostics.error("missing-field", "Document has no 'info' object", uri, "")
            return Info(title="", version="")
        raw = self._mapping(raw, "info", uri, "")
        if raw is None:
            return Info(title="", version="")

        for key in ("title", "version"):
            if not isinstance(raw.get(key), str):
                self._diagnostics.error(
                    "missing-field", f"'info.{key}' is required and must be a string", uri, "/info"
                )

        contact = None
        raw_contact = self._mapping(raw.get("contact", {}), "contact", uri, "/info")
        if raw_contact:
            contact = Contact(
                name=self._string(raw_contact, "name", uri, "/info/contact"),
                url=self._string(raw_contact, "url", uri, "/info/contact"),
                email=self._string(raw_contact, "email", uri, "/info/contact"),
            )

        license_info = None
        raw_license = self._mapping(raw.get("license", {}), "license", uri, "/info")
        if raw_license:
            if not isinstance(raw_license.get("name"), str):
                self._diagnostics.error(
                    "missing-field", "'license.name' is required", uri, "/info/license"
                )
            if "identifier" in raw_license:
                self._require_31("identifier", uri, "/info/license")
                if "url" in raw_license:
                    self._diagnostics.error(
                        "invalid-value",
                        "'license.identifier' and 'license.url' are mutually exclusive",
                        uri,
                        "/info/license",
                    )
            license_info = License(
                name=str(raw_license.get("name", "")),
                identifier=self._string(raw_license, "identifier", uri, "/info/license"),
                url=self._string(raw_license, "url", uri, "/info/license"),
            )
        if "summary" in raw:
            self._require_31("summary", uri, "/info")

        return Info(
            title=str(raw.get("title", "")),
            version=str(raw.get("version", "")),
            summary=self._string(raw, "summary", uri, "/info"),
            description=self._string(raw, "description", uri, "/info"),
            terms_of_service=self._string(raw, "termsOfService", uri, "/info"),
            contact=contact,
            license=license_info,
        )

    def _bind_servers(self, raw: Any, uri: str, pointer: str) -> tuple[Server, ...]:
        if raw is None:
            return ()
        if not isinstance(raw, list):
            self._type_error(pointer.rsplit("/", 1)[-1], "an array", raw, uri, pointer.rsplit("/", 1)[0])
            return ()

        servers: list[Server] = []
        for index, entry in enumerate(raw):
            here = join_pointer(pointer, index)
            entry = self._mapping(entry, str(index), uri, pointer)
            if entry is None:
                continue
            url = entry.get("url")
            if not isinstance(url, str):
                self._diagnostics.error("missing-field", "Server requires a 'url'", uri, here)
                continue

            variables: dict[str, ServerVariable] = {}
            raw_variables = self._mapping(entry.get("variables", {}), "variables", uri, here) or {}
            for name, variable in raw_variables.items():
                var_pointer = join_pointer(here, "variables", name)
                variable = self._mapping(variable, name, uri, join_pointer(here, "variables"))
                if variable is None:
                    continue
                if "default" not in variable:
                    self._diagnostics.error(
                        "missing-field",
                        f"Server variable '{name}' requires a 'default'",
                        uri,
                        var_pointer,
                    )
                    continue
                enum = variable.get("enum")
                variables[name] = ServerVariable(
                    default=str(variable["default"]),
                    enum=tuple(str(v) for v in enum) if isinstance(enum, list) else None,
                    description=self._string(variable, "description", uri, var_pointer),
                )

            servers.append(
                Server(
                    url=url,
                    description=self._string(entry, "description", uri, here),
                    variables=variables,
                    declared_at=canonical(uri, here),
                )
            )
        return tuple(servers)

    def _bind_tags(self, raw: Any, uri: str) -> tuple[Tag, ...]:
        if raw is None:
            return ()
        if not isinstance(raw, list):
            self._type_error("tags", "an array", raw, uri, "")
            return ()
        tags: list[Tag] = []
        for index, entry in enumerate(raw):
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                self._diagnostics.error(
                    "missing-field", "Tag requires a 'name'", uri, join_pointer("/tags", index)
                )
                continue
            here = join_pointer("/tags", index)
            docs = entry.get("externalDocs")
            tags.append(
                Tag(
                    name=entry["name"],
                    description=self._string(entry, "description", uri, here),
                    external_docs_url=(
                        self._string(docs, "url", uri, join_pointer(here, "externalDocs"))
                        if isinstance(docs, dict)
                        else None
                    ),
                )
            )
        return tuple(tags)

    # --- Paths and operations ---

    def _bind_paths(self, raw: Any, uri: str) -> dict[str, PathItem]:
        raw = self._mapping(raw, "paths", uri, "")
        if raw is None:
            return {}
        for path in raw:
            if not path.startswith("/") and not path.startswith("x-"):
                self._diagnostics.error(
                    "invalid-value",
                    f"Path '{path}' must start with '/'",
                    uri,
                    join_pointer("/paths", path),
                )
        return self._bind_path_map(
            {k: v for k, v in raw.items() if k.startswith("/")}, uri, "/paths"
        )

    def _bind_path_map(self, raw: Any, uri: str, pointer: str) -> dict[str, PathItem]:
        raw = self._mapping(raw, pointer.rsplit("/", 1)[-1], uri, pointer.rsplit("/", 1)[0])
        if raw is None:
            return {}
        items: dict[str, PathItem] = {}
        for key, value in raw.items():
            if key.startswith("x-"):
                continue
            item = self._bind_path_item(key, value, uri, join_pointer(pointer, key))
            if item is not None:
                items[key] = item
        return items

    def _bind_path_item(self, path: str, raw: Any, uri: str, pointer: str) -> Optional[PathItem]:
        source = canonical(uri, pointer)
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, path, uri, pointer, at_self=True)
        if raw is None:
            return None

        location = canonical(uri, pointer)
        if location in self._active_path_items:
            # reachable from its own callbacks; inlining it again would not terminate
            self._resolver.record(
                Reference(
                    ref=location,
                    target=location,
                    source=source,
                    state=RefState.CYCLIC,
                    is_schema=False,
                    reason="path item is nested inside its own callbacks",
                )
            )
            return None

        self._active_path_items.add(location)
        try:
            path_params = self._bind_parameters(raw.get("parameters"), uri, pointer)
            operations: dict[HTTPMethod, Operation] = {}
            for key, value in raw.items():
                method = _HTTP_METHODS.get(key)
                if method is None:
                    continue
                operation = self._bind_operation(
                    path, method, value, path_params, uri, join_pointer(pointer, key)
                )
                if operation is not None:
                    operations[method] = operation
        finally:
            self._active_path_items.discard(location)

        return PathItem(
            path=path,
            summary=self._string(raw, "summary", uri, pointer),
            description=self._string(raw, "description", uri, pointer),
            parameters=path_params,
            operations=operations,
            servers=self._bind_servers(raw.get("servers"), uri, join_pointer(pointer, "servers")),
            declared_at=location,
            extensions=_extensions(raw),
        )

    def _bind_operation(
        self,
        path: str,
        method: HTTPMethod,
        raw: Any,
        path_params: tuple[Parameter, ...],
        uri: str,
        pointer: str,
    ) -> Optional[Operation]:
        raw = self._mapping(raw, method.value, uri, pointer, at_self=True)
        if raw is None:
            return None

        operation_id = raw.get("operationId")
        if operation_id is not None and not isinstance(operation_id, str):
            self._type_error("operationId", "a string", operation_id, uri, pointer)
            operation_id = None

        tags = raw.get("tags", [])
        if not isinstance(tags, list):
            self._type_error("tags", "an array", tags, uri, pointer)
            tags = []

        op_params = self._bind_parameters(raw.get("parameters"), uri, pointer)

        request_body = None
        if "requestBody" in raw:
            request_body = self._bind_request_body(
                raw["requestBody"], uri, join_pointer(pointer, "requestBody")
            )

        responses: dict[str, Response] = {}
        if "responses" in raw:
            responses = self._bind_responses(raw["responses"], uri, join_pointer(pointer, "responses"))

        callbacks: dict[str, dict[str, PathItem]] = {}
        raw_callbacks = self._mapping(raw.get("callbacks", {}), "callbacks", uri, pointer) or {}
        for name, callback in raw_callbacks.items():
            bound = self._bind_callback(callback, uri, join_pointer(pointer, "callbacks", name))
            if bound is not None:
                callbacks[name] = bound

        # Security: None means inherit, an explicit empty list means no auth
        security = None
        if "security" in raw:
            security = self._bind_security(raw["security"], uri, join_pointer(pointer, "security"))

        return Operation(
            path=path,
            method=method,
            operation_id=operation_id,
            summary=self._string(raw, "summary", uri, pointer),
            description=self._string(raw, "description", uri, pointer),
            tags=tuple(str(t) for t in tags),
            parameters=_merge_parameters(path_params, op_params),
            request_body=request_body,
            responses=responses,
            callbacks=callbacks,
            security=security,
            servers=self._bind_servers(raw.get("servers"), uri, join_pointer(pointer, "servers")),
            deprecated=raw.get("deprecated") is True,
            declared_at=canonical(uri, pointer),
            extensions=_extensions(raw),
        )

    def _bind_callback(self, raw: Any, uri: str, pointer: str) -> Optional[dict[str, PathItem]]:
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, pointer.rsplit("/", 1)[-1], uri, pointer, at_self=True)
        if raw is None:
            return None
        items: dict[str, PathItem] = {}
        for expression, value in raw.items():
            if expression.startswith("x-"):
                continue
            item = self._bind_path_item(expression, value, uri, join_pointer(pointer, expression))
            if item is not None:
                items[expression] = item
        return items

    # --- Parameters ---

    def _bind_parameters(self, raw: Any, uri: str, pointer: str) -> tuple[Parameter, ...]:
        if raw is None:
            return ()
        if not isinstance(raw, list):
            self._type_error("parameters", "an array", raw, uri, pointer)
            return ()
        params: list[Parameter] = []
        for index, entry in enumerate(raw):
            param = self._bind_parameter(entry, uri, join_pointer(pointer, "parameters", index))
            if param is not None:
                params.append(param)
        return tuple(params)

    def _bind_parameter(self, raw: Any, uri: str, pointer: str) -> Optional[Parameter]:
        declared_at = canonical(uri, pointer)
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, pointer.rsplit("/", 1)[-1], uri, pointer, at_self=True)
        if raw is None:
            return None

        name = raw.get("name")
        if not isinstance(name, str) or not name:
            self._diagnostics.error("missing-field", "Parameter requires a 'name'", uri, pointer)
            return None
        raw_in = raw.get("in")
        location = _LOCATIONS.get(raw_in) if isinstance(raw_in, str) else None
        if location is None:
            if "in" not in raw:
                self._diagnostics.error(
                    "missing-field", f"Parameter '{name}' requires 'in'", uri, pointer
                )
            else:
                self._diagnostics.error(
                    "invalid-value",
                    f"Parameter '{name}' has invalid location '{raw['in']}' "
                    "(expected query, header, path or cookie)",
                    uri,
                    join_pointer(pointer, "in"),
                )
            return None

        schema, content = self._bind_schema_or_content(raw, f"Parameter '{name}'", uri, pointer)
        return Parameter(
            name=name,
            location=location,
            required=raw.get("required") is True,
            description=self._string(raw, "description", uri, pointer),
            deprecated=raw.get("deprecated") is True,
            allow_empty_value=raw.get("allowEmptyValue") is True,
            style=self._string(raw, "style", uri, pointer),
            explode=raw.get("explode") if isinstance(raw.get("explode"), bool) else None,
            schema=schema,
            content=content,
            example=raw.get("example"),
            examples=self._bind_examples(raw.get("examples"), uri, pointer),
            declared_at=declared_at,
            extensions=_extensions(raw),
        )

    def _bind_schema_or_content(
        self, raw: dict[str, Any], what: str, uri: str, pointer: str
    ) -> tuple[Any, dict[str, MediaType]]:
        """Parameters and headers carry exactly one of ``schema`` / ``content``."""
        has_schema = "schema" in raw
        has_content = "content" in raw
        if has_schema and has_content:
            self._diagnostics.error(
                "invalid-value", f"{what} must not define both 'schema' and 'content'", uri, pointer
            )
        elif not has_schema and not has_content:
            self._diagnostics.error(
                "missing-field", f"{what} requires either 'schema' or 'content'", uri, pointer
            )

        schema = None
        if has_schema:
            schema = self._schemas.bind(raw["schema"], uri, join_pointer(pointer, "schema"))
        content: dict[str, MediaType] = {}
        if has_content:
            content = self._bind_content(raw["content"], uri, join_pointer(pointer, "content"))
            if len(content) != 1:
                self._diagnostics.error(
                    "invalid-value",
                    f"{what} 'content' must contain exactly one media type",
                    uri,
                    join_pointer(pointer, "content"),
                )
        return schema, content

    # --- Bodies, responses and media types ---

    def _bind_request_body(self, raw: Any, uri: str, pointer: str) -> Optional[RequestBody]:
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, "requestBody", uri, pointer, at_self=True)
        if raw is None:
            return None
        if "content" not in raw:
            self._diagnostics.error("missing-field", "Request body requires 'content'", uri, pointer)
        return RequestBody(
            description=self._string(raw, "description", uri, pointer),
            required=raw.get("required") is True,
            content=self._bind_content(raw.get("content", {}), uri, join_pointer(pointer, "content")),
            extensions=_extensions(raw),
        )

    def _bind_responses(self, raw: Any, uri: str, pointer: str) -> dict[str, Response]:
        raw = self._mapping(raw, "responses", uri, pointer, at_self=True)
        if raw is None:
            return {}
        responses: dict[str, Response] = {}
        for code, value in raw.items():
            if code.startswith("x-"):
                continue
            here = join_pointer(pointer, code)
            if not _STATUS_CODE.match(code):
                self._diagnostics.error(
                    "invalid-value",
                    f"'{code}' is not a valid response key (expected 'default', a status "
                    "code or a range such as '2XX')",
                    uri,
                    here,
                )
                continue
            response = self._bind_response(code, value, uri, here)
            if response is not None:
                responses[code] = response
        return responses

    def _bind_response(self, status_code: str, raw: Any, uri: str, pointer: str) -> Optional[Response]:
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, status_code, uri, pointer, at_self=True)
        if raw is None:
            return None
        if raw.get("description") is None:
            self._diagnostics.error(
                "missing-field", "Response requires a 'description'", uri, pointer
            )
        description = self._string(raw, "description", uri, pointer)

        headers: dict[str, Header] = {}
        raw_headers = self._mapping(raw.get("headers", {}), "headers", uri, pointer) or {}
        for name, value in raw_headers.items():
            header = self._bind_header(name, value, uri, join_pointer(pointer, "headers", name))
            if header is not None:
                headers[name] = header

        links: dict[str, Link] = {}
        raw_links = self._mapping(raw.get("links", {}), "links", uri, pointer) or {}
        for name, value in raw_links.items():
            link = self._bind_link(value, uri, join_pointer(pointer, "links", name))
            if link is not None:
                links[name] = link

        return Response(
            status_code=status_code,
            description=description,
            headers=headers,
            content=self._bind_content(raw.get("content", {}), uri, join_pointer(pointer, "content")),
            links=links,
            extensions=_extensions(raw),
        )

    def _bind_header(self, name: str, raw: Any, uri: str, pointer: str) -> Optional[Header]:
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, name, uri, pointer, at_self=True)
        if raw is None:
            return None
        for key in ("name", "in"):
            if key in raw:
                self._diagnostics.warning(
                    "invalid-value", f"Header objects must not define '{key}'", uri, join_pointer(pointer, key)
                )
        schema, content = self._bind_schema_or_content(raw, f"Header '{name}'", uri, pointer)
        return Header(
            description=self._string(raw, "description", uri, pointer),
            required=raw.get("required") is True,
            deprecated=raw.get("deprecated") is True,
            schema=schema,
            content=content,
        )

    def _bind_content(self, raw: Any, uri: str, pointer: str) -> dict[str, MediaType]:
        raw = self._mapping(raw, "content", uri, pointer, at_self=True)
        if raw is None:
            return {}
        content: dict[str, MediaType] = {}
        for media_type, value in raw.items():
            here = join_pointer(pointer, media_type)
            value = self._mapping(value, media_type, uri, here, at_self=True)
            if value is None:
                continue
            schema = None
            if "schema" in value:
                schema = self._schemas.bind(value["schema"], uri, join_pointer(here, "schema"))
            encoding = value.get("encoding", {})
            content[media_type] = MediaType(
                schema=schema,
                example=value.get("example"),
                examples=self._bind_examples(value.get("examples"), uri, here),
                encoding=encoding if isinstance(encoding, dict) else {},
            )
        return content

    def _bind_examples(self, raw: Any, uri: str, pointer: str) -> dict[str, Example]:
        raw = self._mapping(raw or {}, "examples", uri, pointer)
        if not raw:
            return {}
        examples: dict[str, Example] = {}
        for name, value in raw.items():
            example = self._bind_example(value, uri, join_pointer(pointer, "examples", name))
            if example is not None:
                examples[name] = example
        return examples

    def _bind_example(self, raw: Any, uri: str, pointer: str) -> Optional[Example]:
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, pointer.rsplit("/", 1)[-1], uri, pointer, at_self=True)
        if raw is None:
            return None
        if "value" in raw and "externalValue" in raw:
            self._diagnostics.error(
                "invalid-value",
                "Example must not define both 'value' and 'externalValue'",
                uri,
                pointer,
            )
        return Example(
            summary=self._string(raw, "summary", uri, pointer),
            description=self._string(raw, "description", uri, pointer),
            value=raw.get("value"),
            external_value=self._string(raw, "externalValue", uri, pointer),
        )

    def _bind_link(self, raw: Any, uri: str, pointer: str) -> Optional[Link]:
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, pointer.rsplit("/", 1)[-1], uri, pointer, at_self=True)
        if raw is None:
            return None
        has_id = "operationId" in raw
        has_ref = "operationRef" in raw
        if has_id and has_ref:
            self._diagnostics.error(
                "invalid-value",
                "Link must not define both 'operationId' and 'operationRef'",
                uri,
                pointer,
            )
        elif not has_id and not has_ref:
            self._diagnostics.error(
                "missing-field", "Link requires 'operationId' or 'operationRef'", uri, pointer
            )
        parameters = raw.get("parameters", {})
        return Link(
            operation_id=self._string(raw, "operationId", uri, pointer),
            operation_ref=self._string(raw, "operationRef", uri, pointer),
            parameters=parameters if isinstance(parameters, dict) else {},
            request_body=raw.get("requestBody"),
            description=self._string(raw, "description", uri, pointer),
            declared_at=canonical(uri, pointer),
        )

    # --- Security ---

    def _bind_security(
        self, raw: Any, uri: str, pointer: str
    ) -> Optional[tuple[SecurityRequirement, ...]]:
        if not isinstance(raw, list):
            self._diagnostics.error(
                "invalid-type",
                f"'security' must be an array (got {type(raw).__name__})",
                uri,
                pointer,
            )
            return None
        requirements: list[SecurityRequirement] = []
        for index, entry in enumerate(raw):
            here = join_pointer(pointer, index)
            entry = self._mapping(entry, str(index), uri, here, at_self=True)
            if entry is None:
                continue
            schemes: dict[str, tuple[str, ...]] = {}
            for name, scopes in entry.items():
                if not isinstance(scopes, list):
                    self._type_error(name, "an array of scopes", scopes, uri, here)
                    scopes = []
                schemes[name] = tuple(str(s) for s in scopes)
            requirements.append(SecurityRequirement(schemes=schemes))
        return tuple(requirements)

    def _bind_security_scheme(self, name: str, raw: Any, uri: str, pointer: str) -> Optional[SecurityScheme]:
        followed = self._resolver.follow(raw, uri, pointer)
        if followed is None:
            return None
        raw, uri, pointer = followed
        raw = self._mapping(raw, name, uri, pointer, at_self=True)
        if raw is None:
            return None

        scheme_type = raw.get("type")
        if not isinstance(scheme_type, str):
            self._diagnostics.error(
                "missing-field", f"Security scheme '{name}' requires a 'type'", uri, pointer
            )
            return None

        def require(key: str) -> None:
            if raw.get(key) is None:
                self._diagnostics.error(
                    "missing-field",
                    f"Security scheme '{name}' of type '{scheme_type}' requires '{key}'",
                    uri,
                    pointer,
                )

        flows: dict[str, OAuthFlow] = {}
        if scheme_type == "apiKey":
            require("name")
            require("in")
            if isinstance(raw.get("in"), str) and raw["in"] not in _API_KEY_LOCATIONS:
                self._diagnostics.error(
                    "invalid-value",
                    f"Security scheme '{name}' has invalid location '{raw['in']}'",
                    uri,
                    join_pointer(pointer, "in"),
                )
        elif scheme_type == "http":
            require("scheme")
        elif scheme_type == "oauth2":
            require("flows")
            flows = self._bind_flows(raw.get("flows"), uri, join_pointer(pointer, "flows"))
        elif scheme_type == "openIdConnect":
            require("openIdConnectUrl")
        elif scheme_type == "mutualTLS":
            if self._version == OpenAPIVersion.V3_0:
                self._diagnostics.error(
                    "invalid-value",
                    f"Security scheme '{name}': 'mutualTLS' requires OpenAPI 3.1",
                    uri,
                    join_pointer(pointer, "type"),
                )
        else:
            self._diagnostics.error(
                "invalid-value",
                f"Security scheme '{name}' has unknown type '{scheme_type}'",
                uri,
                join_pointer(pointer, "type"),
            )

        return SecurityScheme(
            name=name,
            type=scheme_type,
            description=self._string(raw, "description", uri, pointer),
            param_name=self._string(raw, "name", uri, pointer) if scheme_type == "apiKey" else None,
            location=self._string(raw, "in", uri, pointer) if scheme_type == "apiKey" else None,
            scheme=self._string(raw, "scheme", uri, pointer),
            bearer_format=self._string(raw, "bearerFormat", uri, pointer),
            flows=flows,
            openid_connect_url=self._string(raw, "openIdConnectUrl", uri, pointer),
        )

    def _bind_flows(self, raw: Any, uri: str, pointer: str) -> dict[str, OAuthFlow]:
        if raw is None:
            return {}
        raw = self._mapping(raw, "flows", uri, pointer, at_self=True)
        if raw is None:
            return {}
        flows: dict[str, OAuthFlow] = {}
        for flow_name, flow in raw.items():
            here = join_pointer(pointer, flow_name)
            if flow_name not in _FLOW_URLS:
                if not flow_name.startswith("x-"):
                    self._diagnostics.error(
                        "invalid-value", f"Unknown OAuth flow '{flow_name}'", uri, here
                    )
                continue
            flow = self._mapping(flow, flow_name, uri, here, at_self=True)
            if flow is None:
                continue
            for key in _FLOW_URLS[flow_name] + ("scopes",):
                if key not in flow:
                    self._diagnostics.error(
                        "missing-field", f"OAuth flow '{flow_name}' requires '{key}'", uri, here
                    )
            scopes = flow.get("scopes", {})
            flows[flow_name] = OAuthFlow(
                authorization_url=self._string(flow, "authorizationUrl", uri, here),
                token_url=self._string(flow, "tokenUrl", uri, here),
                refresh_url=self._string(flow, "refreshUrl", uri, here),
                scopes={str(k): str(v) for k, v in scopes.items()} if isinstance(scopes, dict) else {},
            )
        return flows

    # --- Components ---

    def _bind_components(self, raw: Any, uri: str) -> Components:
        if raw is None:
            return Components()
        raw = self._mapping(raw, "components", uri, "")
        if raw is None:
            return Components()

        def section(key: str) -> dict[str, Any]:
            value = self._mapping(raw.get(key, {}), key, uri, "/components")
            return {k: v for k, v in (value or {}).items() if not k.startswith("x-")}

        def here(key: str, name: str) -> str:
            return join_pointer("/components", key, name)

        raw_schemas = section("schemas")
        self._schemas.register_names(uri, raw_schemas)
        schemas = {
            name: self._schemas.bind_component(value, uri, here("schemas", name))
            for name, value in raw_schemas.items()
        }

        parameters = {}
        for name, value in section("parameters").items():
            param = self._bind_parameter(value, uri, here("parameters", name))
            if param is not None:
                parameters[name] = param

        if "pathItems" in raw:
            self._require_31("pathItems", uri, "/components")

        return Components(
            schemas=schemas,
            responses=_present(
                {
                    name: self._bind_response(name, value, uri, here("responses", name))
                    for name, value in section("responses").items()
                }
            ),
            parameters=parameters,
            examples=_present(
                {
                    name: self._bind_example(value, uri, here("examples", name))
                    for name, value in section("examples").items()
                }
            ),
            request_bodies=_present(
                {
                    name: self._bind_request_body(value, uri, here("requestBodies", name))
                    for name, value in section("requestBodies").items()
                }
            ),
            headers=_present(
                {
                    name: self._bind_header(name, value, uri, here("headers", name))
                    for name, value in section("headers").items()
                }
            ),
            security_schemes=_present(
                {
                    name: self._bind_security_scheme(name, value, uri, here("securitySchemes", name))
                    for name, value in section("securitySchemes").items()
                }
            ),
            links=_present(
                {
                    name: self._bind_link(value, uri, here("links", name))
                    for name, value in section("links").items()
                }
            ),
            callbacks=_present(
                {
                    name: self._bind_callback(value, uri, here("callbacks", name))
                    for name, value in section("callbacks").items()
                }
            ),
            path_items=_present(
                {
                    name: self._bind_path_item(name, value, uri, here("pathItems", name))
                    for name, value in section("pathItems").items()
                }
            ),
        )

    # --- Helpers ---

    def _mapping(
        self, value: Any, key: str, uri: str, pointer: str, at_self: bool = False
    ) -> Optional[dict[str, Any]]:
        """Return *value* if it is a mapping, otherwise report ``invalid-type``.

        *pointer* addresses the parent of *key*, or the value itself when
        *at_self* is set.
        """
        if isinstance(value, dict):
            return value
        target = pointer if at_self else join_pointer(pointer, key)
        self._diagnostics.error(
            "invalid-type",
            f"'{key}' must be an object (got {type(value).__name__})",
            uri,
            target,
        )
        return None

    def _string(self, raw: dict[str, Any], key: str, uri: str, pointer: str) -> Optional[str]:
        """Return the string at *key*, reporting any other value as ``invalid-type``."""
        value = raw.get(key)
        if value is None or isinstance(value, str):
            return value
        self._type_error(key, "a string", value, uri, pointer)
        return None

    def _type_error(self, key: str, expected: str, value: Any, uri: str, pointer: str) -> None:
        self._diagnostics.error(
            "invalid-type",
            f"'{key}' must be {expected} (got {type(value).__name__})",
            uri,
            join_pointer(pointer, key),
        )

    def _require_31(self, key: str, uri: str, pointer: str) -> None:
        if self._version == OpenAPIVersion.V3_0:
            self._diagnostics.warning(
                "version-keyword-mismatch",
                f"'{key}' requires OpenAPI 3.1",
                uri,
                join_pointer(pointer, key),
            )


def bind_document(
    registry: DocumentRegistry,
    resolver: ReferenceResolver,
    diagnostics: DiagnosticCollector,
    version: OpenAPIVersion,
    declared: str,
) -> Document:
    """Bind the root document of *registry*; see :class:`DocumentBinder`."""
    return DocumentBinder(registry, resolver, diagnostics, version, declared).bind()


def _merge_parameters(
    path_params: tuple[Parameter, ...],
    op_params: tuple[Parameter, ...],
) -> tuple[Parameter, ...]:
    """Merge path-level and operation-level parameters.

    Operation-level parameters override path-level parameters with the same
    name and location. Duplicates within one level are kept so the
    validator can report them.
    """
    op_keys = {param.key for param in op_params}
    merged = [param for param in path_params if param.key not in op_keys]
    merged.extend(op_params)
    return tuple(merged)


def _present(values: dict[str, Any]) -> dict[str, Any]:
    return {name: value for name, value in values.items() if value is not None}


def _extensions(raw: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in raw.items() if key.startswith("x-")}
