"""
Auxiliary FHIR structures: OperationOutcome, data-absent markers,
narratives, and meta.

These are plain-JSON helpers for the collaborators around the
assembler (response formatting, persistence) plus the typed
"unknown" concepts used when a coded value is missing.
"""

from __future__ import annotations

from typing import Any, Optional

from fhir_transcode.report import TranscodeReport
from fhir_transcode.r4._builders import create_codeable_concept
from fhir_transcode.r4._constants import (
    DATA_ABSENT_REASON_CODE_SYSTEM,
    DATA_ABSENT_REASON_EXTENSION,
    HL7_NULL_FLAVOR,
    UNKNOWNABLE_CODE_DATA_ABSENT,
    UNKNOWNABLE_CODE_NULL_FLAVOR,
)
from fhir_transcode.r4._types import CodeableConcept

_ISSUE_SEVERITIES = ("fatal", "error", "warning", "information")


# ── OperationOutcome ──────────────────────────────────────────────


def _issue(
    severity: str,
    code: str,
    details: Optional[str] = None,
    expression: Optional[str] = None,
) -> dict[str, Any]:
    if severity not in _ISSUE_SEVERITIES:
        raise ValueError(
            f"severity must be one of {', '.join(_ISSUE_SEVERITIES)}, got '{severity}'"
        )
    issue: dict[str, Any] = {"severity": severity, "code": code}
    if details:
        issue["details"] = {"text": details}
    if expression:
        issue["expression"] = [expression]
    return issue


def create_operation_outcome(
    severity: str,
    code: str,
    details: Optional[str] = None,
) -> dict[str, Any]:
    """Build a single-issue FHIR R4 OperationOutcome.

    Args:
        severity: ``fatal``, ``error``, ``warning`` or ``information``.
        code:     IssueType code, e.g. ``"processing"`` or ``"invalid"``.
        details:  Optional free text placed in ``issue.details.text``.

    Raises:
        ValueError: If *severity* is not an IssueSeverity code.
    """
    return {
        "resourceType": "OperationOutcome",
        "issue": [_issue(severity, code, details)],
    }


def report_to_operation_outcome(report: TranscodeReport) -> dict[str, Any]:
    """Turn a transcoding report into an OperationOutcome.

    Each diagnostic becomes a ``warning`` issue whose ``expression`` is
    the element path.  Hard errors become ``error`` issues.  A clean
    report yields one ``information`` issue.
    """
    issues = [
        _issue("error", "processing", message) for message in report.errors
    ]
    issues.extend(
        _issue("warning", "processing", d.message, d.path or None)
        for d in report.diagnostics
    )
    if not issues:
        issues.append(_issue("information", "informational", "success"))
    return {"resourceType": "OperationOutcome", "issue": issues}


# ── Missing data ──────────────────────────────────────────────────


def create_data_absent_extension(reason: str = UNKNOWNABLE_CODE_DATA_ABSENT) -> dict[str, Any]:
    """The data-absent-reason extension (US Core missing-data guidance)."""
    return {"url": DATA_ABSENT_REASON_EXTENSION, "valueCode": reason}


def create_null_flavor_unknown_concept() -> CodeableConcept:
    return create_codeable_concept({
        UNKNOWNABLE_CODE_NULL_FLAVOR: {
            "description": "unknown",
            "system": HL7_NULL_FLAVOR,
        },
    })


def create_data_absent_unknown_concept() -> CodeableConcept:
    return create_codeable_concept({
        UNKNOWNABLE_CODE_DATA_ABSENT: {
            "description": "Unknown",
            "system": DATA_ABSENT_REASON_CODE_SYSTEM,
        },
    })


# ── Narrative & meta ──────────────────────────────────────────────


def create_narrative(message: str, status: str = "generated") -> dict[str, Any]:
    return {
        "status": status,
        "div": f"<div xmlns=\"http://www.w3.org/1999/xhtml\">{message}</div>",
    }


def create_meta(version_id: str, last_updated: str) -> dict[str, Any]:
    return {"versionId": str(version_id), "lastUpdated": last_updated}
