"""
Exception taxonomy for FHIR R4 transcoding.

Only ``InvalidInput`` (and ``ChoiceTypeAmbiguous`` under the ``reject``
policy) ever escapes :func:`deserialize`.  The other conditions are
raised inside builders and converted into diagnostics by the assembler.
"""

from __future__ import annotations

from typing import Any, Sequence


class TranscodeError(Exception):
    """Base class for all transcoding errors."""


class InvalidInput(TranscodeError, TypeError):
    """The caller broke the input contract (e.g. passed a non-mapping)."""


class MalformedSubstructure(TranscodeError, ValueError):
    """A raw sub-value has the wrong shape for its declared type."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class InvalidPrimitiveFormat(TranscodeError, ValueError):
    """A primitive value failed its format check."""

    def __init__(self, kind: str, value: Any) -> None:
        super().__init__(f"{value!r} is not a valid FHIR {kind}")
        self.kind = kind
        self.value = value


class ChoiceTypeAmbiguous(TranscodeError, ValueError):
    """More than one key of a choice family was populated."""

    def __init__(self, family: str, keys: Sequence[str]) -> None:
        super().__init__(
            f"Choice '{family}[x]' populated more than once: {', '.join(keys)}"
        )
        self.family = family
        self.keys = tuple(keys)
