"""Shared test fixtures for specbind.

Provides the raw text of the sample documents under ``tests/fixtures`` and
their parsed results, and keeps ``SPECBIND_*`` variables from the outer
environment out of the tests. These fixtures are automatically discovered by
pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from specbind.config import ParseOptions
from specbind.importer import parse
from specbind.models import ParseResult


FIXTURES_DIR = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Raw document fixtures (text, as a caller would supply it)
# ---------------------------------------------------------------------------


@pytest.fixture
def petstore_30_text() -> str:
    """Raw petstore 3.0 JSON document."""
    return read_fixture("petstore_3.0.json")


@pytest.fixture
def petstore_31_text() -> str:
    """Raw petstore 3.1 YAML document."""
    return read_fixture("petstore_3.1.yaml")


@pytest.fixture
def invalid_30_text() -> str:
    """A 3.0 document violating most semantic rules."""
    return read_fixture("invalid_3.0.yaml")


@pytest.fixture
def crossdoc_sources() -> dict[str, str]:
    """Root and referenced document of the cross-document pair, keyed by URI."""
    return {
        "specs/api.yaml": read_fixture("crossdoc_api.yaml"),
        "specs/common.yaml": read_fixture("crossdoc_common.yaml"),
    }


# ---------------------------------------------------------------------------
# Parsed fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def petstore_30(petstore_30_text: str) -> ParseResult:
    return parse(petstore_30_text, uri="petstore.json", options=ParseOptions())


@pytest.fixture
def petstore_31(petstore_31_text: str) -> ParseResult:
    return parse(petstore_31_text, uri="petstore.yaml", options=ParseOptions())


@pytest.fixture
def invalid_30(invalid_30_text: str) -> ParseResult:
    return parse(invalid_30_text, uri="invalid.yaml", options=ParseOptions())


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_specbind_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ``SPECBIND_*`` variables from the outer environment out of tests."""
    for name in (
        "SPECBIND_STRICT",
        "SPECBIND_WARNINGS_AS_ERRORS",
        "SPECBIND_ALLOW_EXTERNAL_REFS",
        "SPECBIND_MAX_REF_DEPTH",
        "SPECBIND_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
