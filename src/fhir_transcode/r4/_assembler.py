"""
FHIR R4 MedicationRequest ↔ typed resource assembler.

Contains ``deserialize()`` / ``serialize()`` and the report-returning
``from_fhir()`` / ``to_fhir()`` wrappers.  Each call is stateless: it
works on its own copy of the input and returns a fresh output tree.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Any, Mapping, Optional

from fhir_transcode.config import ServerConfig, get_server_config
from fhir_transcode.report import TranscodeReport
from fhir_transcode.r4._constants import (
    DATA_ABSENT_REASON_EXTENSION,
    REFERENCE_MISMATCH,
    RESOURCE_TYPE,
    SUPPORTED_FHIR_VERSIONS,
)
from fhir_transcode.r4._errors import ChoiceTypeAmbiguous, InvalidInput
from fhir_transcode.r4._outcome import create_data_absent_extension
from fhir_transcode.r4._references import build_relative_reference, parse_reference
from fhir_transcode.r4._schema import (
    MEDICATION_REQUEST_FIELDS,
    BuildContext,
    build_fields,
    declared_keys,
    new_context,
    serialize_fields,
)
from fhir_transcode.r4._types import MedicationRequest, Reference

logger = logging.getLogger(__name__)

_DECLARED_KEYS = declared_keys(MEDICATION_REQUEST_FIELDS)


# ═══════════════════════════════════════════════════════════════════
# FHIR JSON → TYPED RESOURCE  (deserialize)
# ═══════════════════════════════════════════════════════════════════


def deserialize(
    raw: Mapping[str, Any],
    *,
    config: Optional[ServerConfig] = None,
    report: Optional[TranscodeReport] = None,
) -> MedicationRequest:
    """Build a typed MedicationRequest from a FHIR R4 JSON mapping.

    Every modeled element is routed to its builder; unmodeled keys
    (``id``, ``meta``, ``status``, ``intent``...) are carried in
    ``passthrough`` untouched.  Malformed parts are skipped and recorded
    on *report*, then logged once assembly has finished.

    Args:
        raw:    The JSON-parsed resource.
        config: Server configuration; defaults to ``get_server_config()``.
        report: Optional report that receives diagnostics.

    Returns:
        The assembled resource.  Never ``None``.

    Raises:
        InvalidInput: If *raw* is not a mapping or declares another
            ``resourceType``.
        ChoiceTypeAmbiguous: Only under the ``reject`` choice policy.
    """
    if not isinstance(raw, Mapping):
        raise InvalidInput(
            f"{RESOURCE_TYPE} input must be a mapping, got {type(raw).__name__}"
        )
    resource_type = raw.get("resourceType")
    if resource_type is not None and resource_type != RESOURCE_TYPE:
        raise InvalidInput(
            f"Expected resourceType '{RESOURCE_TYPE}', got '{resource_type}'"
        )

    config = config or get_server_config()
    if report is None:
        report = TranscodeReport()
    ctx = new_context(report, policy=config.choice_policy)

    # Choice families read the original map, before any key is removed.
    try:
        values = build_fields(MEDICATION_REQUEST_FIELDS, raw, ctx)
    except ChoiceTypeAmbiguous as exc:
        report.success = False
        report.errors.append(str(exc))
        raise

    working = {k: v for k, v in raw.items() if k not in _DECLARED_KEYS}
    working.pop("resourceType", None)
    data_absent_reasons = _take_data_absent_reasons(working)

    if "subject" in values:
        values["subject"] = _normalize_subject(values["subject"], ctx.at("subject"), config)

    report.fields_converted = len(values)
    resource = MedicationRequest(
        **values,
        passthrough=copy.deepcopy(working),
        data_absent_reasons=data_absent_reasons,
    )
    _log_diagnostics(report)
    return resource


def _normalize_subject(
    subject: Reference,
    ctx: BuildContext,
    config: ServerConfig,
) -> Reference:
    """Rewrite a local typed subject as ``{type}/{id}``.

    Display and identifier are kept.  Subjects without a type, without
    a parseable id, or pointing at another server are left as given.
    """
    if subject.type is None or subject.reference is None:
        return subject
    reference_text = str(subject.reference.value)
    parsed = parse_reference(reference_text, config=config)
    if parsed.id is None or not parsed.is_local:
        return subject

    resource_type = str(subject.type.value)
    if parsed.resource_type != resource_type:
        ctx.note(
            REFERENCE_MISMATCH,
            f"type '{resource_type}' disagrees with reference '{reference_text}'",
            reference_text,
        )
    rebuilt = build_relative_reference(resource_type, parsed.id)
    return replace(rebuilt, identifier=subject.identifier, display=subject.display)


def _take_data_absent_reasons(working: dict[str, Any]) -> dict[str, str]:
    """Pop data-absent-reason extensions off ``_<element>`` companions.

    Other extensions and keys on the companion stay in *working*.
    """
    reasons: dict[str, str] = {}
    for key in [k for k in working if k.startswith("_")]:
        companion = working[key]
        if not isinstance(companion, Mapping):
            continue
        extensions = companion.get("extension")
        if not isinstance(extensions, list):
            continue

        kept = []
        for ext in extensions:
            if (
                isinstance(ext, Mapping)
                and ext.get("url") == DATA_ABSENT_REASON_EXTENSION
                and isinstance(ext.get("valueCode"), str)
            ):
                reasons[key[1:]] = ext["valueCode"]
            else:
                kept.append(ext)
        if len(kept) == len(extensions):
            continue

        rest = {k: v for k, v in companion.items() if k != "extension"}
        if kept:
            rest["extension"] = kept
        if rest:
            working[key] = rest
        else:
            del working[key]
    return reasons


def _log_diagnostics(report: TranscodeReport) -> None:
    for diagnostic in report.diagnostics:
        logger.warning(
            "%s %s: %s (%s)",
            RESOURCE_TYPE,
            diagnostic.path,
            diagnostic.message,
            diagnostic.condition,
        )
    logger.debug(
        "Deserialized %s: %d fields, %d elements dropped, %d diagnostics",
        RESOURCE_TYPE,
        report.fields_converted,
        report.elements_dropped,
        len(report.diagnostics),
    )


# ═══════════════════════════════════════════════════════════════════
# TYPED RESOURCE → FHIR JSON  (serialize)
# ═══════════════════════════════════════════════════════════════════


def serialize(resource: MedicationRequest) -> dict[str, Any]:
    """Emit the plain FHIR R4 JSON mapping for *resource*.

    The output is ready for ``json.dumps``.  Absent elements and empty
    lists are omitted.

    Raises:
        InvalidInput: If *resource* is not a MedicationRequest.
    """
    if not isinstance(resource, MedicationRequest):
        raise InvalidInput(
            f"Expected a {RESOURCE_TYPE}, got {type(resource).__name__}"
        )

    out: dict[str, Any] = {"resourceType": RESOURCE_TYPE}
    for key, value in resource.passthrough.items():
        if key != "resourceType":
            out[key] = copy.deepcopy(value)
    out.update(serialize_fields(MEDICATION_REQUEST_FIELDS, resource))

    for element, reason in resource.data_absent_reasons.items():
        key = f"_{element}"
        companion = dict(out.get(key) or {})
        companion["extension"] = [
            *companion.get("extension", []),
            create_data_absent_extension(reason),
        ]
        out[key] = companion
    return out


# ═══════════════════════════════════════════════════════════════════
# Report-returning entry points
# ═══════════════════════════════════════════════════════════════════


def _check_version(fhir_version: str) -> None:
    if fhir_version not in SUPPORTED_FHIR_VERSIONS:
        raise InvalidInput(
            f"Unsupported FHIR version '{fhir_version}'. "
            f"Supported: {', '.join(SUPPORTED_FHIR_VERSIONS)}"
        )


def from_fhir(
    resource: Mapping[str, Any],
    *,
    fhir_version: str = "R4",
    config: Optional[ServerConfig] = None,
) -> tuple[MedicationRequest, TranscodeReport]:
    """Import a FHIR MedicationRequest and report what happened.

    Returns:
        A tuple of ``(MedicationRequest, TranscodeReport)``.

    Raises:
        InvalidInput: As :func:`deserialize`, or for an unsupported
            ``fhir_version``.
    """
    _check_version(fhir_version)
    report = TranscodeReport()
    typed = deserialize(resource, config=config, report=report)
    return typed, report


def to_fhir(
    resource: MedicationRequest,
    *,
    fhir_version: str = "R4",
) -> tuple[dict[str, Any], TranscodeReport]:
    """Export a typed MedicationRequest to FHIR JSON.

    Returns:
        A tuple of ``(fhir_json, TranscodeReport)``.
    """
    _check_version(fhir_version)
    out = serialize(resource)
    report = TranscodeReport(
        success=True,
        fields_converted=len(serialize_fields(MEDICATION_REQUEST_FIELDS, resource)),
    )
    return out, report
