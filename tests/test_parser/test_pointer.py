"""Tests for specbind.parser.pointer."""

from __future__ import annotations

import pytest

from specbind.exceptions import PointerError, ReferenceResolutionError
from specbind.parser.pointer import (
    canonical,
    escape,
    join_pointer,
    resolve_pointer,
    split_location,
    split_pointer,
    split_ref,
    unescape,
)


class TestEscaping:
    def test_escape_slash_and_tilde(self) -> None:
        assert escape("/pets/{id}") == "~1pets~1{id}"
        assert escape("a~b") == "a~0b"

    def test_unescape_order(self) -> None:
        # "~01" is a literal "~1", not "/"
        assert unescape("~01") == "~1"
        assert unescape("~1pets") == "/pets"

    def test_join_pointer(self) -> None:
        assert join_pointer("/paths", "/pets/{id}", "get") == "/paths/~1pets~1{id}/get"
        assert join_pointer("", "items", 0) == "/items/0"

    def test_split_pointer(self) -> None:
        assert split_pointer("") == []
        assert split_pointer("/paths/~1pets/get") == ["paths", "/pets", "get"]

    def test_split_pointer_requires_leading_slash(self) -> None:
        with pytest.raises(PointerError, match="must start with '/'"):
            split_pointer("components/schemas")


class TestResolvePointer:
    """Test navigation of a generic tree."""

    TREE = {
        "components": {"schemas": {"Pet": {"type": "object"}}},
        "paths": {"/pets": {"get": {"tags": ["a", "b"]}}},
    }

    def test_root(self) -> None:
        assert resolve_pointer(self.TREE, "") is self.TREE

    def test_nested_mapping(self) -> None:
        assert resolve_pointer(self.TREE, "/components/schemas/Pet") == {"type": "object"}

    def test_escaped_segment_and_index(self) -> None:
        assert resolve_pointer(self.TREE, "/paths/~1pets/get/tags/1") == "b"

    def test_missing_key_names_segment(self) -> None:
        with pytest.raises(PointerError, match="key 'Dog' not found"):
            resolve_pointer(self.TREE, "/components/schemas/Dog")

    def test_index_out_of_range(self) -> None:
        with pytest.raises(PointerError, match="out of range"):
            resolve_pointer(self.TREE, "/paths/~1pets/get/tags/5")

    def test_leading_zero_index_rejected(self) -> None:
        with pytest.raises(PointerError, match="invalid array index"):
            resolve_pointer(self.TREE, "/paths/~1pets/get/tags/01")

    def test_cannot_navigate_into_scalar(self) -> None:
        with pytest.raises(PointerError, match="cannot navigate into str"):
            resolve_pointer(self.TREE, "/components/schemas/Pet/type/x")

    def test_pointer_error_is_resolution_error(self) -> None:
        with pytest.raises(ReferenceResolutionError):
            resolve_pointer(self.TREE, "/nope")


class TestSplitRef:
    """Test $ref splitting against the referring document."""

    def test_local_ref(self) -> None:
        assert split_ref("#/components/schemas/Pet", "api.yaml") == (
            "api.yaml",
            "/components/schemas/Pet",
        )

    def test_local_ref_in_unnamed_document(self) -> None:
        assert split_ref("#/a", "") == ("", "/a")

    def test_relative_document(self) -> None:
        assert split_ref("common.yaml#/components/schemas/Id", "specs/api.yaml") == (
            "specs/common.yaml",
            "/components/schemas/Id",
        )

    def test_parent_directory(self) -> None:
        assert split_ref("../shared/errors.json#/Error", "specs/v1/api.yaml") == (
            "specs/shared/errors.json",
            "/Error",
        )

    def test_whole_document(self) -> None:
        assert split_ref("pet.yaml", "specs/api.yaml") == ("specs/pet.yaml", "")

    def test_absolute_url(self) -> None:
        assert split_ref(
            "https://example.com/schemas.json#/Pet", "https://example.com/api/openapi.json"
        ) == ("https://example.com/schemas.json", "/Pet")

    def test_percent_encoded_pointer(self) -> None:
        assert split_ref("#/paths/~1pets~1%7Bid%7D", "") == ("", "/paths/~1pets~1{id}")

    def test_anchor_fragment_rejected(self) -> None:
        with pytest.raises(PointerError, match="only JSON pointers"):
            split_ref("#Pet", "api.yaml")


class TestCanonical:
    def test_round_trip(self) -> None:
        location = canonical("specs/api.yaml", "/components/schemas/Pet")
        assert location == "specs/api.yaml#/components/schemas/Pet"
        assert split_location(location) == ("specs/api.yaml", "/components/schemas/Pet")

    def test_pointer_may_contain_hash(self) -> None:
        assert split_location("a.yaml#/x#y") == ("a.yaml", "/x#y")
