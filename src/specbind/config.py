"""Parse options and their precedence resolution.

:class:`ParseOptions` is the single configuration object threaded through the
pipeline. Callers normally build it with :func:`resolve_options`, which merges
three layers (high to low):

    1. Explicit keyword arguments
    2. Environment variables (``SPECBIND_STRICT``, ``SPECBIND_WARNINGS_AS_ERRORS``,
       ``SPECBIND_ALLOW_EXTERNAL_REFS``, ``SPECBIND_MAX_REF_DEPTH``,
       ``SPECBIND_FORMAT``)
    3. Defaults declared on the model
"""

from __future__ import annotations

import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from specbind.exceptions import ConfigError

_ENV_PREFIX = "SPECBIND_"

_ENV_FIELDS = {
    "STRICT": "strict",
    "WARNINGS_AS_ERRORS": "warnings_as_errors",
    "ALLOW_EXTERNAL_REFS": "allow_external_refs",
    "MAX_REF_DEPTH": "max_ref_depth",
    "FORMAT": "format_hint",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class ParseOptions(BaseModel):
    """Options controlling how a document is loaded, bound, and validated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    strict: bool = Field(
        default=False,
        description="Raise ValidationFailedError when the report contains errors",
    )
    warnings_as_errors: bool = Field(
        default=False, description="Promote warning diagnostics to errors"
    )
    allow_external_refs: bool = Field(
        default=True,
        description="Follow $ref pointers into other documents",
    )
    max_ref_depth: int = Field(
        default=64,
        ge=1,
        description="Maximum number of hops when following a $ref chain",
    )
    format_hint: Literal["", "json", "yaml"] = Field(
        default="", description="Force the root document format"
    )


def options_from_env(environ: Optional[dict[str, str]] = None) -> dict[str, Any]:
    """Collect option overrides from ``SPECBIND_*`` environment variables.

    Args:
        environ: Mapping to read instead of :data:`os.environ` (tests).

    Returns:
        A dict of field name -> raw value for every variable that is set.

    Raises:
        ConfigError: If a boolean variable holds an unrecognised value.
    """
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for suffix, field_name in _ENV_FIELDS.items():
        raw = environ.get(_ENV_PREFIX + suffix)
        if raw is None:
            continue
        annotation = ParseOptions.model_fields[field_name].annotation
        if annotation is bool:
            values[field_name] = _parse_bool(_ENV_PREFIX + suffix, raw)
        else:
            values[field_name] = raw.strip()
    return values


def resolve_options(
    options: Optional[ParseOptions] = None,
    environ: Optional[dict[str, str]] = None,
    **overrides: Any,
) -> ParseOptions:
    """Resolve options with full precedence chain.

    Args:
        options: A base options object. When given, environment variables
            are NOT consulted: an explicit object is taken as final apart
            from *overrides*.
        environ: Environment mapping (defaults to :data:`os.environ`).
        **overrides: Individual fields; ``None`` values are ignored.

    Returns:
        The effective :class:`ParseOptions`.

    Raises:
        ConfigError: If an environment variable or override is invalid.
    """
    explicit = {key: value for key, value in overrides.items() if value is not None}

    if options is not None:
        data = options.model_dump()
    else:
        data = options_from_env(environ)
    data.update(explicit)

    try:
        return ParseOptions.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid parse options: {exc}") from exc


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"Environment variable {name} must be a boolean (got '{raw}')")
