"""Diagnostics collected while transcoding a resource."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Diagnostic:
    path: str
    condition: str
    message: str
    value: Any = None


@dataclass
class TranscodeReport:
    """Report from a transcoding operation.

    Attributes:
        success:           False only when a hard failure aborted the call.
        fields_converted:  Top-level elements attached to the output.
        elements_dropped:  List elements skipped because they were malformed.
        diagnostics:       One entry per non-fatal problem, in encounter order.
        errors:            Messages for hard failures.
    """

    success: bool = True
    fields_converted: int = 0
    elements_dropped: int = 0
    diagnostics: list[Diagnostic] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def record(
        self,
        path: str,
        condition: str,
        message: str,
        value: Any = None,
    ) -> Diagnostic:
        diagnostic = Diagnostic(path, condition, message, value)
        self.diagnostics.append(diagnostic)
        return diagnostic

    @property
    def warnings(self) -> list[str]:
        """Human-readable diagnostic messages, prefixed by their path."""
        return [f"{d.path}: {d.message}" for d in self.diagnostics]

    def conditions(self) -> set[str]:
        return {d.condition for d in self.diagnostics}
