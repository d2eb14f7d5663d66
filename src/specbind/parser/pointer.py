"""JSON Pointer (RFC 6901) and ``$ref`` string helpers.

Pointers are handled as strings of the form ``/components/schemas/Pet``
(the empty string addresses the document root). A ``$ref`` value combines a
document URI and a pointer fragment, e.g. ``common.yaml#/components/schemas/Id``;
:func:`split_ref` turns it into an absolute ``(document_uri, pointer)`` pair
relative to the referring document.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import unquote, urldefrag, urljoin

from specbind.exceptions import PointerError


def escape(segment: str) -> str:
    """Escape one reference token (``~`` -> ``~0``, ``/`` -> ``~1``)."""
    return segment.replace("~", "~0").replace("/", "~1")


def unescape(segment: str) -> str:
    """Reverse :func:`escape`. Order matters: ``~1`` first, then ``~0``."""
    return segment.replace("~1", "/").replace("~0", "~")


def join_pointer(pointer: str, *segments: Any) -> str:
    """Append escaped *segments* to *pointer*.

    Example::

        join_pointer("/paths", "/pets/{id}", "get") == "/paths/~1pets~1{id}/get"
    """
    for segment in segments:
        pointer = f"{pointer}/{escape(str(segment))}"
    return pointer


def split_pointer(pointer: str) -> list[str]:
    """Split *pointer* into unescaped reference tokens.

    Raises:
        PointerError: If a non-empty pointer does not start with ``/``.
    """
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise PointerError(f"Invalid JSON pointer '{pointer}': must start with '/'")
    return [unescape(segment) for segment in pointer[1:].split("/")]


def resolve_pointer(tree: Any, pointer: str) -> Any:
    """Return the node addressed by *pointer* inside *tree*.

    Args:
        tree: A generic node tree (dicts, lists and scalars).
        pointer: An RFC 6901 pointer, already percent-decoded.

    Returns:
        The addressed node.

    Raises:
        PointerError: If any segment does not exist or cannot be
            navigated into.
    """
    current = tree
    for segment in split_pointer(pointer):
        if isinstance(current, dict):
            if segment not in current:
                raise PointerError(
                    f"Cannot resolve pointer '{pointer}': key '{segment}' not found"
                )
            current = current[segment]
        elif isinstance(current, list):
            if not segment.isdigit() or (len(segment) > 1 and segment.startswith("0")):
                raise PointerError(
                    f"Cannot resolve pointer '{pointer}': invalid array index '{segment}'"
                )
            index = int(segment)
            if index >= len(current):
                raise PointerError(
                    f"Cannot resolve pointer '{pointer}': index {index} out of range"
                )
            current = current[index]
        else:
            raise PointerError(
                f"Cannot resolve pointer '{pointer}': "
                f"cannot navigate into {type(current).__name__}"
            )
    return current


def split_ref(ref: str, base_uri: str) -> tuple[str, str]:
    """Resolve a ``$ref`` string against the URI of the referring document.

    Args:
        ref: The raw ``$ref`` value (``#/a/b``, ``other.json#/a``,
            ``other.json``).
        base_uri: URI of the document containing the ``$ref``.

    Returns:
        ``(document_uri, pointer)`` where the pointer is percent-decoded.

    Raises:
        PointerError: If the fragment is not a JSON pointer (e.g. a plain
            anchor name such as ``#Pet``).
    """
    if ref.startswith("#"):
        document_uri, fragment = base_uri, ref[1:]
    else:
        document_uri, fragment = urldefrag(urljoin(base_uri, ref))
        if not document_uri:
            document_uri = base_uri
    pointer = unquote(fragment)
    if pointer and not pointer.startswith("/"):
        raise PointerError(
            f"Unsupported $ref fragment '#{fragment}' in '{ref}': only JSON pointers are handled"
        )
    return document_uri, pointer


def canonical(document_uri: str, pointer: str) -> str:
    """Build the ``uri#pointer`` key used to identify nodes across documents."""
    return f"{document_uri}#{pointer}"


def split_location(location: str) -> tuple[str, str]:
    """Inverse of :func:`canonical`."""
    uri, _, pointer = location.partition("#")
    return uri, pointer
