"""Tests for specbind.validator."""

from __future__ import annotations

import json
from typing import Any

import pytest

from specbind.config import ParseOptions
from specbind.importer import parse
from specbind.models import ParseResult, Severity
from specbind.validator import validate


def _doc(version: str = "3.0.3", **sections: Any) -> dict[str, Any]:
    document: dict[str, Any] = {
        "openapi": version,
        "info": {"title": "Test API", "version": "1.0.0"},
        "paths": {},
    }
    document.update(sections)
    return document


def _parse(document: dict[str, Any]) -> ParseResult:
    return parse(json.dumps(document), uri="api.json", options=ParseOptions())


def _op(**fields: Any) -> dict[str, Any]:
    operation: dict[str, Any] = {"responses": {"200": {"description": "OK"}}}
    operation.update(fields)
    return operation


def _path_param(name: str, required: bool = True) -> dict[str, Any]:
    return {"name": name, "in": "path", "required": required, "schema": {"type": "string"}}


# ---------------------------------------------------------------------------
# Valid documents
# ---------------------------------------------------------------------------


class TestValidDocuments:
    def test_petstore_30_has_no_errors_or_warnings(self, petstore_30: ParseResult) -> None:
        assert petstore_30.is_valid
        assert petstore_30.report.warnings == []

    def test_petstore_30_reports_recursion_as_info(self, petstore_30: ParseResult) -> None:
        (diagnostic,) = petstore_30.report.diagnostics
        assert diagnostic.code == "circular-ref"
        assert diagnostic.severity == Severity.INFO
        assert diagnostic.pointer == "/components/schemas/Category/properties/parent"

    def test_petstore_31_is_clean(self, petstore_31: ParseResult) -> None:
        assert petstore_31.report.diagnostics == ()


# ---------------------------------------------------------------------------
# The invalid fixture exercises most rules at once
# ---------------------------------------------------------------------------


class TestInvalidFixture:
    """Every rule violated by ``invalid_3.0.yaml`` is reported in one pass."""

    @pytest.mark.parametrize(
        "code",
        [
            "server-variable-undefined",
            "server-variable-default-not-in-enum",
            "undefined-security-scheme",
            "path-param-not-required",
            "path-param-unused",
            "path-param-undeclared",
            "duplicate-parameter",
            "duplicate-operation-id",
            "ambiguous-path",
            "link-operation-not-found",
            "missing-responses",
            "unresolved-ref",
        ],
    )
    def test_error_reported(self, invalid_30: ParseResult, code: str) -> None:
        diagnostics = invalid_30.report.by_code(code)
        assert diagnostics, f"expected {code}"
        assert all(d.severity == Severity.ERROR for d in diagnostics)

    @pytest.mark.parametrize("code", ["required-property-undefined", "default-not-in-enum"])
    def test_warning_reported(self, invalid_30: ParseResult, code: str) -> None:
        (diagnostic,) = invalid_30.report.by_code(code)
        assert diagnostic.severity == Severity.WARNING

    def test_positions_point_into_source(self, invalid_30: ParseResult) -> None:
        (diagnostic,) = invalid_30.report.by_code("duplicate-operation-id")
        assert diagnostic.uri == "invalid.yaml"
        assert diagnostic.pointer == "/paths/~1items~1{id}/get/operationId"
        assert diagnostic.position is not None
        assert diagnostic.position.line == 43

    def test_not_valid(self, invalid_30: ParseResult) -> None:
        assert not invalid_30.is_valid


# ---------------------------------------------------------------------------
# Individual rules
# ---------------------------------------------------------------------------


class TestPathParameters:
    def test_declared_at_path_level(self) -> None:
        result = _parse(_doc(paths={"/pets/{id}": {"parameters": [_path_param("id")], "get": _op()}}))
        assert result.report.diagnostics == ()

    def test_unused(self) -> None:
        result = _parse(_doc(paths={"/pets": {"get": _op(parameters=[_path_param("id")])}}))
        (diagnostic,) = result.report.by_code("path-param-unused")
        assert diagnostic.pointer == "/paths/~1pets/get/parameters/0"

    def test_unused_path_level_reported_once(self) -> None:
        result = _parse(
            _doc(paths={"/pets": {"parameters": [_path_param("id")], "get": _op(), "put": _op()}})
        )
        assert len(result.report.by_code("path-param-unused")) == 1

    def test_undeclared(self) -> None:
        result = _parse(_doc(paths={"/pets/{id}/toys/{toyId}": {"get": _op(parameters=[_path_param("id")])}}))
        (diagnostic,) = result.report.by_code("path-param-undeclared")
        assert "'toyId'" in diagnostic.message

    def test_not_required(self) -> None:
        result = _parse(_doc(paths={"/pets/{id}": {"get": _op(parameters=[_path_param("id", required=False)])}}))
        assert result.report.codes() == {"path-param-not-required"}


class TestDuplicates:
    def test_duplicate_parameter_at_operation_level(self) -> None:
        param = {"name": "q", "in": "query", "schema": {}}
        result = _parse(_doc(paths={"/a": {"get": _op(parameters=[param, param])}}))
        (diagnostic,) = result.report.by_code("duplicate-parameter")
        assert diagnostic.pointer == "/paths/~1a/get/parameters/1"

    def test_duplicate_parameter_at_path_level_reported_once(self) -> None:
        param = {"name": "q", "in": "query", "schema": {}}
        result = _parse(_doc(paths={"/a": {"parameters": [param, param], "get": _op(), "post": _op()}}))
        (diagnostic,) = result.report.by_code("duplicate-parameter")
        assert diagnostic.pointer == "/paths/~1a/parameters/1"

    def test_same_name_different_location_is_fine(self) -> None:
        params = [{"name": "id", "in": "query", "schema": {}}, {"name": "id", "in": "header", "schema": {}}]
        assert _parse(_doc(paths={"/a": {"get": _op(parameters=params)}})).report.diagnostics == ()

    def test_duplicate_operation_id(self) -> None:
        result = _parse(
            _doc(paths={"/a": {"get": _op(operationId="x")}, "/b": {"get": _op(operationId="x")}})
        )
        (diagnostic,) = result.report.by_code("duplicate-operation-id")
        assert "already used by GET /a" in diagnostic.message

    def test_ambiguous_paths(self) -> None:
        result = _parse(
            _doc(
                paths={
                    "/pets/{id}": {"parameters": [_path_param("id")]},
                    "/pets/{petId}": {"parameters": [_path_param("petId")]},
                    "/pets/mine": {},
                }
            )
        )
        (diagnostic,) = result.report.by_code("ambiguous-path")
        assert "'/pets/{petId}' is equivalent to '/pets/{id}'" in diagnostic.message


class TestReferences:
    def test_unresolved_ref(self) -> None:
        result = _parse(
            _doc(
                paths={"/a": {"get": _op(parameters=[{"$ref": "#/components/parameters/Nope"}])}},
                components={"parameters": {}},
            )
        )
        (diagnostic,) = result.report.by_code("unresolved-ref")
        assert diagnostic.pointer == "/paths/~1a/get/parameters/0"
        assert "'Nope' not found" in diagnostic.message

    def test_non_schema_ref_cycle_is_error(self) -> None:
        components = {
            "responses": {
                "A": {"$ref": "#/components/responses/B"},
                "B": {"$ref": "#/components/responses/A"},
            }
        }
        result = _parse(_doc(components=components))
        assert result.report.by_code("circular-ref-chain")
        assert not result.is_valid

    def test_schema_ref_chain_loop_is_error(self) -> None:
        components = {
            "schemas": {
                "A": {"$ref": "#/components/schemas/B"},
                "B": {"$ref": "#/components/schemas/A"},
            }
        }
        result = _parse(_doc(components=components))
        pointers = {d.pointer for d in result.report.by_code("circular-ref-chain")}
        assert pointers == {"/components/schemas/A", "/components/schemas/B"}

    def test_schema_recursion_is_info(self) -> None:
        components = {
            "schemas": {
                "Tree": {"type": "object", "properties": {"kids": {"type": "array", "items": {"$ref": "#/components/schemas/Tree"}}}}
            }
        }
        result = _parse(_doc(components=components))
        assert result.is_valid
        assert result.report.codes() == {"circular-ref"}

    def test_external_refs_disabled(self) -> None:
        document = _doc(
            paths={"/a": {"get": _op(parameters=[{"$ref": "common.json#/Limit"}])}}
        )
        result = parse(
            json.dumps(document),
            uri="api.json",
            documents={"common.json": '{"Limit": {"name": "limit", "in": "query", "schema": {}}}'},
            options=ParseOptions(allow_external_refs=False),
        )
        (diagnostic,) = result.report.by_code("unresolved-ref")
        assert "external references are disabled" in diagnostic.message


class TestSecurityAndLinks:
    def test_undefined_scheme_in_operation(self) -> None:
        result = _parse(_doc(paths={"/a": {"get": _op(security=[{"oauth": ["read"]}])}}))
        (diagnostic,) = result.report.by_code("undefined-security-scheme")
        assert diagnostic.pointer == "/paths/~1a/get/security/0/oauth"

    def test_defined_scheme(self) -> None:
        result = _parse(
            _doc(
                security=[{"key": []}],
                components={"securitySchemes": {"key": {"type": "apiKey", "name": "k", "in": "header"}}},
            )
        )
        assert result.report.diagnostics == ()

    def test_link_operation_id(self) -> None:
        response = {"description": "OK", "links": {"next": {"operationId": "nowhere"}, "self": {"operationId": "me"}}}
        result = _parse(_doc(paths={"/a": {"get": {"operationId": "me", "responses": {"200": response}}}}))
        (diagnostic,) = result.report.by_code("link-operation-not-found")
        assert "'nowhere'" in diagnostic.message

    def test_link_operation_ref(self) -> None:
        response = {
            "description": "OK",
            "links": {
                "good": {"operationRef": "#/paths/~1a/get"},
                "bad": {"operationRef": "#/paths/~1b/get"},
            },
        }
        result = _parse(_doc(paths={"/a": {"get": {"responses": {"200": response}}}}))
        (diagnostic,) = result.report.by_code("link-operation-not-found")
        assert "'#/paths/~1b/get'" in diagnostic.message


class TestResponsesAndShape:
    def test_missing_responses_is_error_in_30(self) -> None:
        result = _parse(_doc(paths={"/a": {"get": {}}}))
        (diagnostic,) = result.report.by_code("missing-responses")
        assert diagnostic.severity == Severity.ERROR

    def test_missing_responses_is_warning_in_31(self) -> None:
        result = _parse(_doc("3.1.0", paths={"/a": {"get": {}}}))
        (diagnostic,) = result.report.by_code("missing-responses")
        assert diagnostic.severity == Severity.WARNING
        assert result.is_valid

    def test_no_paths_in_31(self) -> None:
        document = _doc("3.1.0")
        del document["paths"]
        result = _parse(document)
        assert result.report.codes() == {"no-paths"}

    def test_31_components_only_is_fine(self) -> None:
        document = _doc("3.1.0", components={"schemas": {"A": {"type": "string"}}})
        del document["paths"]
        assert _parse(document).report.diagnostics == ()

    def test_server_variables(self) -> None:
        servers = [
            {"url": "https://{env}.example.com/{version}", "variables": {"env": {"default": "prod", "enum": ["dev"]}}}
        ]
        result = _parse(_doc(servers=servers))
        assert result.report.codes() == {"server-variable-undefined", "server-variable-default-not-in-enum"}


class TestSchemaRules:
    def test_required_property_undefined(self) -> None:
        schema = {"type": "object", "required": ["a", "b"], "properties": {"a": {}}}
        result = _parse(_doc(components={"schemas": {"S": schema}}))
        (diagnostic,) = result.report.by_code("required-property-undefined")
        assert "'b'" in diagnostic.message
        assert result.is_valid

    def test_default_not_in_enum(self) -> None:
        schema = {"type": "string", "enum": ["a"], "default": "z"}
        result = _parse(_doc(paths={"/a": {"get": _op(parameters=[{"name": "p", "in": "query", "schema": schema}])}}))
        (diagnostic,) = result.report.by_code("default-not-in-enum")
        assert diagnostic.pointer == "/paths/~1a/get/parameters/0/schema/default"

    def test_discriminator_property_missing(self) -> None:
        schemas = {
            "Cat": {"type": "object", "properties": {"kind": {"type": "string"}}},
            "Dog": {"type": "object", "properties": {"bark": {"type": "boolean"}}},
            "Pet": {
                "oneOf": [{"$ref": "#/components/schemas/Cat"}, {"$ref": "#/components/schemas/Dog"}],
                "discriminator": {"propertyName": "kind"},
            },
        }
        result = _parse(_doc(components={"schemas": schemas}))
        (diagnostic,) = result.report.by_code("discriminator-property-missing")
        assert "#/components/schemas/Dog" in diagnostic.message


class TestValidateFunction:
    def test_validate_bound_document(self, invalid_30: ParseResult) -> None:
        report = validate(invalid_30.document)
        assert "duplicate-operation-id" in report.codes()
        # binder findings are not part of a standalone validation
        assert "missing-field" not in report.codes()

    def test_warnings_as_errors(self, invalid_30: ParseResult) -> None:
        report = validate(invalid_30.document, ParseOptions(warnings_as_errors=True))
        assert report.warnings == []
        assert report.by_code("default-not-in-enum")[0].severity == Severity.ERROR
