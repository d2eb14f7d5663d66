"""Tests for specbind.parser.resolver."""

from __future__ import annotations

import json
from typing import Any, Optional

import pytest

from specbind.config import ParseOptions
from specbind.exceptions import ReferenceResolutionError
from specbind.models import RefState
from specbind.parser.loader import load_document
from specbind.parser.resolver import DocumentRegistry, ReferenceResolver


def _registry(
    tree: dict[str, Any],
    uri: str = "api.json",
    sources: Optional[dict[str, str]] = None,
    fetch: Any = None,
) -> DocumentRegistry:
    return DocumentRegistry(load_document(json.dumps(tree), uri=uri), sources=sources, fetch=fetch)


def _resolver(registry: DocumentRegistry, **options: Any) -> ReferenceResolver:
    return ReferenceResolver(registry, ParseOptions(**options))


# ---------------------------------------------------------------------------
# DocumentRegistry
# ---------------------------------------------------------------------------


class TestDocumentRegistry:
    """Test lazy loading of referenced documents."""

    def test_root_is_registered(self) -> None:
        registry = _registry({"a": 1})
        assert registry.uris == ("api.json",)
        assert registry.get("api.json").tree == {"a": 1}

    def test_loads_supplied_source_on_demand(self) -> None:
        registry = _registry({}, sources={"common.yaml": "Id:\n  type: string\n"})
        assert registry.uris == ("api.json",)
        assert registry.get("common.yaml").tree == {"Id": {"type": "string"}}
        assert registry.uris == ("api.json", "common.yaml")

    def test_fetch_fallback(self) -> None:
        calls: list[str] = []

        def fetch(uri: str) -> str:
            calls.append(uri)
            return '{"Id": {"type": "integer"}}'

        registry = _registry({}, fetch=fetch)
        assert registry.get("remote.json").tree["Id"]["type"] == "integer"
        registry.get("remote.json")
        assert calls == ["remote.json"]

    def test_missing_document_without_fetch(self) -> None:
        registry = _registry({})
        with pytest.raises(ReferenceResolutionError, match="no fetch callable"):
            registry.get("missing.yaml")

    def test_fetch_failure_is_wrapped_and_remembered(self) -> None:
        calls: list[str] = []

        def fetch(uri: str) -> str:
            calls.append(uri)
            raise OSError("connection refused")

        registry = _registry({}, fetch=fetch)
        with pytest.raises(ReferenceResolutionError, match="connection refused"):
            registry.get("remote.json")
        with pytest.raises(ReferenceResolutionError):
            registry.get("remote.json")
        assert calls == ["remote.json"]

    def test_syntax_error_in_referenced_document(self) -> None:
        registry = _registry({}, sources={"bad.json": "{not json"})
        with pytest.raises(ReferenceResolutionError, match="Invalid JSON"):
            registry.get("bad.json")

    def test_position_of_loaded_document(self) -> None:
        registry = _registry({}, sources={"common.yaml": "a:\n  b: 1\n"})
        assert registry.position("common.yaml", "/a/b") is None
        registry.get("common.yaml")
        position = registry.position("common.yaml", "/a/b")
        assert position is not None
        assert position.line == 2


# ---------------------------------------------------------------------------
# ReferenceResolver.lookup
# ---------------------------------------------------------------------------


class TestLookup:
    """Test resolution of single $ref values."""

    TREE = {"components": {"schemas": {"Pet": {"type": "object"}}}}

    def test_local(self) -> None:
        resolver = _resolver(_registry(self.TREE))
        target = resolver.lookup("#/components/schemas/Pet", "api.json")
        assert target.node == {"type": "object"}
        assert target.location == "api.json#/components/schemas/Pet"

    def test_cross_document(self) -> None:
        registry = _registry(self.TREE, uri="specs/api.json", sources={"specs/common.json": '{"Id": {}}'})
        target = _resolver(registry).lookup("common.json#/Id", "specs/api.json")
        assert target.uri == "specs/common.json"
        assert target.pointer == "/Id"

    def test_missing_target(self) -> None:
        resolver = _resolver(_registry(self.TREE))
        with pytest.raises(ReferenceResolutionError, match="'Dog' not found"):
            resolver.lookup("#/components/schemas/Dog", "api.json")

    def test_non_string_ref(self) -> None:
        resolver = _resolver(_registry(self.TREE))
        with pytest.raises(ReferenceResolutionError, match="must be a string"):
            resolver.lookup(42, "api.json")

    def test_external_refs_disabled(self) -> None:
        registry = _registry(self.TREE, sources={"common.json": "{}"})
        resolver = _resolver(registry, allow_external_refs=False)
        with pytest.raises(ReferenceResolutionError, match="external references are disabled"):
            resolver.lookup("common.json#/Id", "api.json")

    def test_target_location_without_loading(self) -> None:
        resolver = _resolver(_registry(self.TREE, uri="specs/api.json"))
        assert resolver.target_location("x.yaml#/A", "specs/api.json") == "specs/x.yaml#/A"
        assert resolver.target_location(42, "specs/api.json") == ""
        assert resolver.target_location("#Anchor", "specs/api.json") == ""


# ---------------------------------------------------------------------------
# ReferenceResolver.follow
# ---------------------------------------------------------------------------


class TestFollow:
    """Test dereferencing of non-schema objects."""

    def test_plain_node_is_returned_unchanged(self) -> None:
        resolver = _resolver(_registry({}))
        node = {"name": "limit", "in": "query"}
        assert resolver.follow(node, "api.json", "/x") == (node, "api.json", "/x")
        assert resolver.references == []

    def test_follows_chain_and_records_each_hop(self) -> None:
        tree = {
            "components": {
                "parameters": {
                    "A": {"$ref": "#/components/parameters/B"},
                    "B": {"name": "limit", "in": "query"},
                }
            }
        }
        resolver = _resolver(_registry(tree))
        result = resolver.follow({"$ref": "#/components/parameters/A"}, "api.json", "/p/0")
        assert result == ({"name": "limit", "in": "query"}, "api.json", "/components/parameters/B")
        assert [r.state for r in resolver.references] == [RefState.RESOLVED, RefState.RESOLVED]
        assert all(not r.is_schema for r in resolver.references)
        assert resolver.references[0].source == "api.json#/p/0"
        assert resolver.references[1].source == "api.json#/components/parameters/A"

    def test_unresolved_is_recorded(self) -> None:
        resolver = _resolver(_registry({}))
        assert resolver.follow({"$ref": "#/nowhere"}, "api.json", "/p") is None
        (reference,) = resolver.references
        assert reference.state == RefState.UNRESOLVED
        assert reference.target == "api.json#/nowhere"
        assert "not found" in (reference.reason or "")

    def test_loop_is_recorded_as_cyclic(self) -> None:
        tree = {
            "components": {
                "responses": {
                    "A": {"$ref": "#/components/responses/B"},
                    "B": {"$ref": "#/components/responses/A"},
                }
            }
        }
        resolver = _resolver(_registry(tree))
        assert resolver.follow(tree["components"]["responses"]["A"], "api.json", "/components/responses/A") is None
        assert resolver.references[-1].state == RefState.CYCLIC
        assert "loops back" in (resolver.references[-1].reason or "")

    def test_max_depth(self) -> None:
        tree = {
            "c": {
                "a": {"$ref": "#/c/b"},
                "b": {"$ref": "#/c/d"},
                "d": {"$ref": "#/c/e"},
                "e": {"description": "end"},
            }
        }
        resolver = _resolver(_registry(tree), max_ref_depth=2)
        assert resolver.follow(tree["c"]["a"], "api.json", "/c/a") is None
        last = resolver.references[-1]
        assert last.state == RefState.UNRESOLVED
        assert "longer than 2 hops" in (last.reason or "")

    def test_nested_refs_resolve_relative_to_target_document(self) -> None:
        registry = _registry(
            {},
            uri="specs/api.json",
            sources={
                "specs/params.json": '{"Limit": {"$ref": "more/limit.json"}}',
                "specs/more/limit.json": '{"name": "limit", "in": "query"}',
            },
        )
        resolver = _resolver(registry)
        node, uri, pointer = resolver.follow({"$ref": "params.json#/Limit"}, "specs/api.json", "/p")
        assert node == {"name": "limit", "in": "query"}
        assert uri == "specs/more/limit.json"
        assert pointer == ""
