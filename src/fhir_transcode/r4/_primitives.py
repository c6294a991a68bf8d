"""
Primitive coercion for FHIR R4 scalar types.

Wraps raw JSON scalars in typed :class:`Primitive` values.  Only
``dateTime`` is format-checked; every other kind accepts any scalar
and wraps it unchanged so that serialization is lossless.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from fhir_transcode.r4._constants import (
    DATE_TIME,
    FHIR_DATETIME_PATTERN,
    PRIMITIVE_KINDS,
)
from fhir_transcode.r4._errors import InvalidPrimitiveFormat, MalformedSubstructure

_SCALAR_TYPES = (str, bool, int, float)


@dataclass(frozen=True)
class Primitive:
    """A typed FHIR primitive value.

    Attributes:
        kind:  FHIR primitive type name (``"code"``, ``"dateTime"``, ...).
        value: The raw JSON scalar, stored verbatim.

    Raises:
        ValueError: If *kind* is not a known FHIR primitive type.
        MalformedSubstructure: If *value* is not a JSON scalar.
        InvalidPrimitiveFormat: If *kind* is ``dateTime`` and *value*
            does not match the FHIR dateTime grammar.
    """

    kind: str
    value: Any

    def __post_init__(self) -> None:
        if self.kind not in PRIMITIVE_KINDS:
            raise ValueError(f"Unknown FHIR primitive kind: {self.kind!r}")
        if not isinstance(self.value, _SCALAR_TYPES):
            raise MalformedSubstructure(
                self.kind,
                f"expected a {self.kind} scalar, got {type(self.value).__name__}",
            )
        if self.kind == DATE_TIME and not is_valid_datetime(self.value):
            raise InvalidPrimitiveFormat(self.kind, self.value)

    def __str__(self) -> str:
        return str(self.value)


def is_empty(value: Any) -> bool:
    """Return True when *value* means "not set".

    ``None``, the empty string, and empty lists or mappings are empty.
    ``0`` and ``False`` are real values.
    """
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value) == 0
    return False


def is_valid_datetime(text: Any) -> bool:
    """Check *text* against the FHIR R4 dateTime grammar."""
    if not isinstance(text, str):
        return False
    return FHIR_DATETIME_PATTERN.fullmatch(text) is not None


def parse_primitive(kind: str, value: Any, *, path: str = "") -> Primitive:
    """Wrap *value* as a ``kind`` primitive, failing loudly.

    Raises:
        MalformedSubstructure: If *value* is not a JSON scalar.
        InvalidPrimitiveFormat: If *kind* is ``dateTime`` and *value*
            does not match the FHIR dateTime grammar.
    """
    try:
        return Primitive(kind, value)
    except MalformedSubstructure as exc:
        raise MalformedSubstructure(path or kind, exc.message) from None


def coerce(kind: str, value: Any, *, path: str = "") -> Optional[Primitive]:
    """Coerce a raw value into a primitive, or ``None`` when absent.

    Empty input and a dateTime that fails the grammar both yield
    ``None``; the caller treats either as "field not set".

    Raises:
        MalformedSubstructure: If *value* is a list or mapping.
    """
    if is_empty(value):
        return None
    try:
        return parse_primitive(kind, value, path=path)
    except InvalidPrimitiveFormat:
        return None
