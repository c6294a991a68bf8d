"""
Declarative field tables and the generic build / serialize loops.

Each composite type has one table row per element:
``{JSON key -> primitive kind or composite class -> attribute}``.
The tables are the single source of truth for both directions, so the
modeled schema can be audited against the FHIR R4 definitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from fhir_transcode.report import TranscodeReport
from fhir_transcode.r4._choice import (
    AS_NEEDED,
    AUTHOR,
    BOUNDS,
    DOSE,
    MEDICATION,
    RATE,
    REPORTED,
    ChoiceFamily,
    select_variant,
)
from fhir_transcode.r4._constants import (
    BOOLEAN,
    CANONICAL,
    CHOICE_FIRST_MATCH,
    CHOICE_TYPE_AMBIGUOUS,
    CODE,
    DATE_TIME,
    DECIMAL,
    INTEGER,
    INVALID_PRIMITIVE_FORMAT,
    MALFORMED_SUBSTRUCTURE,
    MARKDOWN,
    POSITIVE_INT,
    STRING,
    TIME,
    UNSIGNED_INT,
    URI,
)
from fhir_transcode.r4._errors import InvalidPrimitiveFormat, MalformedSubstructure
from fhir_transcode.r4._primitives import Primitive, is_empty, parse_primitive
from fhir_transcode.r4._types import (
    Annotation,
    Choice,
    CodeableConcept,
    Coding,
    Dosage,
    DoseAndRate,
    Duration,
    Identifier,
    MedicationRequest,
    Period,
    Quantity,
    Range,
    Ratio,
    Reference,
    Timing,
    TimingRepeat,
)


@dataclass(frozen=True)
class FieldSpec:
    """One modeled element.

    Attributes:
        attr:           Attribute name on the typed class.
        key:            JSON key in the FHIR resource.
        kind:           Primitive kind name or composite class.
        many:           Element is a list (``0..*``).
        scalar_or_list: A bare scalar is accepted as a one-element list.
    """

    attr: str
    key: str
    kind: Union[str, type]
    many: bool = False
    scalar_or_list: bool = False


@dataclass(frozen=True)
class ChoiceSpec:
    attr: str
    family: ChoiceFamily


Spec = Union[FieldSpec, ChoiceSpec]


# ── Field tables ──────────────────────────────────────────────────

_CODING: tuple[Spec, ...] = (
    FieldSpec("system", "system", URI),
    FieldSpec("code", "code", CODE),
    FieldSpec("display", "display", STRING),
)

_CODEABLE_CONCEPT: tuple[Spec, ...] = (
    FieldSpec("coding", "coding", Coding, many=True),
    FieldSpec("text", "text", STRING),
)

_PERIOD: tuple[Spec, ...] = (
    FieldSpec("start", "start", DATE_TIME),
    FieldSpec("end", "end", DATE_TIME),
)

_IDENTIFIER: tuple[Spec, ...] = (
    FieldSpec("use", "use", CODE),
    FieldSpec("type", "type", CodeableConcept),
    FieldSpec("system", "system", URI),
    FieldSpec("value", "value", STRING),
    FieldSpec("period", "period", Period),
    FieldSpec("assigner", "assigner", Reference),
)

_REFERENCE: tuple[Spec, ...] = (
    FieldSpec("reference", "reference", STRING),
    FieldSpec("type", "type", URI),
    FieldSpec("identifier", "identifier", Identifier),
    FieldSpec("display", "display", STRING),
)

_QUANTITY: tuple[Spec, ...] = (
    FieldSpec("value", "value", DECIMAL),
    FieldSpec("comparator", "comparator", CODE),
    FieldSpec("unit", "unit", STRING),
    FieldSpec("system", "system", URI),
    FieldSpec("code", "code", CODE),
)

_RATIO: tuple[Spec, ...] = (
    FieldSpec("numerator", "numerator", Quantity),
    FieldSpec("denominator", "denominator", Quantity),
)

_RANGE: tuple[Spec, ...] = (
    FieldSpec("low", "low", Quantity),
    FieldSpec("high", "high", Quantity),
)

_ANNOTATION: tuple[Spec, ...] = (
    ChoiceSpec("author", AUTHOR),
    FieldSpec("time", "time", DATE_TIME),
    FieldSpec("text", "text", MARKDOWN),
)

_TIMING_REPEAT: tuple[Spec, ...] = (
    ChoiceSpec("bounds", BOUNDS),
    FieldSpec("count", "count", POSITIVE_INT),
    FieldSpec("count_max", "countMax", POSITIVE_INT),
    FieldSpec("duration", "duration", DECIMAL),
    FieldSpec("duration_max", "durationMax", DECIMAL),
    FieldSpec("duration_unit", "durationUnit", CODE),
    FieldSpec("frequency", "frequency", POSITIVE_INT),
    FieldSpec("frequency_max", "frequencyMax", POSITIVE_INT),
    FieldSpec("period", "period", DECIMAL),
    FieldSpec("period_max", "periodMax", DECIMAL),
    FieldSpec("period_unit", "periodUnit", CODE),
    FieldSpec("day_of_week", "dayOfWeek", CODE, many=True, scalar_or_list=True),
    FieldSpec("time_of_day", "timeOfDay", TIME, many=True, scalar_or_list=True),
    FieldSpec("when", "when", CODE, many=True, scalar_or_list=True),
    FieldSpec("offset", "offset", UNSIGNED_INT),
)

_TIMING: tuple[Spec, ...] = (
    FieldSpec("event", "event", DATE_TIME, many=True, scalar_or_list=True),
    FieldSpec("repeat", "repeat", TimingRepeat),
    FieldSpec("code", "code", CodeableConcept),
)

_DOSE_AND_RATE: tuple[Spec, ...] = (
    FieldSpec("type", "type", CodeableConcept),
    ChoiceSpec("dose", DOSE),
    ChoiceSpec("rate", RATE),
)

_DOSAGE: tuple[Spec, ...] = (
    FieldSpec("sequence", "sequence", INTEGER),
    FieldSpec("text", "text", STRING),
    FieldSpec(
        "additional_instruction", "additionalInstruction", CodeableConcept,
        many=True,
    ),
    FieldSpec("patient_instruction", "patientInstruction", STRING),
    FieldSpec("timing", "timing", Timing),
    ChoiceSpec("as_needed", AS_NEEDED),
    FieldSpec("site", "site", CodeableConcept),
    FieldSpec("route", "route", CodeableConcept),
    FieldSpec("method", "method", CodeableConcept),
    FieldSpec("dose_and_rate", "doseAndRate", DoseAndRate, many=True),
    FieldSpec("max_dose_per_period", "maxDosePerPeriod", Ratio),
    FieldSpec(
        "max_dose_per_administration", "maxDosePerAdministration", Quantity,
    ),
    FieldSpec("max_dose_per_lifetime", "maxDosePerLifetime", Quantity),
)

MEDICATION_REQUEST_FIELDS: tuple[Spec, ...] = (
    FieldSpec("identifier", "identifier", Identifier, many=True),
    FieldSpec("status_reason", "statusReason", CodeableConcept),
    FieldSpec("category", "category", CodeableConcept, many=True),
    FieldSpec("do_not_perform", "doNotPerform", BOOLEAN),
    ChoiceSpec("reported", REPORTED),
    ChoiceSpec("medication", MEDICATION),
    FieldSpec("subject", "subject", Reference),
    FieldSpec("encounter", "encounter", Reference),
    FieldSpec(
        "supporting_information", "supportingInformation", Reference,
        many=True,
    ),
    FieldSpec("authored_on", "authoredOn", DATE_TIME),
    FieldSpec("requester", "requester", Reference),
    FieldSpec("performer", "performer", Reference),
    FieldSpec("performer_type", "performerType", CodeableConcept),
    FieldSpec("recorder", "recorder", Reference),
    FieldSpec("reason_code", "reasonCode", CodeableConcept, many=True),
    FieldSpec("reason_reference", "reasonReference", Reference, many=True),
    FieldSpec(
        "instantiates_canonical", "instantiatesCanonical", CANONICAL,
        many=True,
    ),
    FieldSpec("instantiates_uri", "instantiatesUri", URI, many=True),
    FieldSpec("based_on", "basedOn", Reference, many=True),
    FieldSpec("group_identifier", "groupIdentifier", Identifier),
    FieldSpec("course_of_therapy_type", "courseOfTherapyType", CodeableConcept),
    FieldSpec("insurance", "insurance", Reference, many=True),
    FieldSpec("note", "note", Annotation, many=True),
    FieldSpec("dosage_instruction", "dosageInstruction", Dosage, many=True),
    FieldSpec("prior_prescription", "priorPrescription", Reference),
    FieldSpec("detected_issue", "detectedIssue", Reference, many=True),
    FieldSpec("event_history", "eventHistory", Reference, many=True),
)

_TABLES: dict[type, tuple[Spec, ...]] = {
    Coding: _CODING,
    CodeableConcept: _CODEABLE_CONCEPT,
    Period: _PERIOD,
    Identifier: _IDENTIFIER,
    Reference: _REFERENCE,
    Quantity: _QUANTITY,
    Duration: _QUANTITY,
    Ratio: _RATIO,
    Range: _RANGE,
    Annotation: _ANNOTATION,
    TimingRepeat: _TIMING_REPEAT,
    Timing: _TIMING,
    DoseAndRate: _DOSE_AND_RATE,
    Dosage: _DOSAGE,
    MedicationRequest: MEDICATION_REQUEST_FIELDS,
}


def declared_keys(table: tuple[Spec, ...]) -> tuple[str, ...]:
    """Every JSON key a table claims, choice candidates included."""
    keys: list[str] = []
    for spec in table:
        if isinstance(spec, ChoiceSpec):
            keys.extend(spec.family.keys)
        else:
            keys.append(spec.key)
    return tuple(keys)


# ── Build context ─────────────────────────────────────────────────


@dataclass
class BuildContext:
    """Diagnostics sink and element path threaded through a build."""

    report: TranscodeReport
    path: str = ""
    policy: str = CHOICE_FIRST_MATCH

    def at(self, segment: Union[str, int]) -> BuildContext:
        if isinstance(segment, int):
            path = f"{self.path}[{segment}]"
        else:
            path = f"{self.path}.{segment}" if self.path else segment
        return BuildContext(self.report, path, self.policy)

    def note(self, condition: str, message: str, value: Any = None) -> None:
        self.report.record(self.path, condition, message, value)


def new_context(
    report: Optional[TranscodeReport] = None,
    path: str = "",
    policy: str = CHOICE_FIRST_MATCH,
) -> BuildContext:
    if report is None:
        report = TranscodeReport()
    return BuildContext(report, path, policy)


# ── Generic build loop ────────────────────────────────────────────


def coding_text(value: Any, path: str) -> str:
    """Normalize one Coding component to a trimmed string ("" when absent)."""
    if value is None:
        return ""
    if not isinstance(value, (str, bool, int, float)):
        raise MalformedSubstructure(
            path, f"expected a string, got {type(value).__name__}",
        )
    return str(value).strip()


def make_coding(code: str, display: str, system: str) -> Coding:
    """Coding from a normalized triple; display and system are always set."""
    return Coding(
        system=Primitive(URI, system),
        code=Primitive(CODE, code) if code else None,
        display=Primitive(STRING, display),
    )


def _build_coding(raw: Mapping[str, Any], ctx: BuildContext) -> Coding:
    return make_coding(
        coding_text(raw.get("code"), ctx.at("code").path),
        coding_text(raw.get("display"), ctx.at("display").path),
        coding_text(raw.get("system"), ctx.at("system").path),
    )


def build_element(cls: type, raw: Any, ctx: BuildContext) -> Any:
    """Build one composite of type *cls* from a raw mapping.

    Raises:
        MalformedSubstructure: If *raw* is not a mapping.  Problems in
            nested elements are recorded on ``ctx`` instead.
    """
    if not isinstance(raw, Mapping):
        raise MalformedSubstructure(
            ctx.path or cls.__name__,
            f"expected a {cls.__name__} object, got {type(raw).__name__}",
        )
    if cls is Coding:
        return _build_coding(raw, ctx)
    return cls(**build_fields(_TABLES[cls], raw, ctx))


def build_fields(
    table: tuple[Spec, ...],
    raw: Mapping[str, Any],
    ctx: BuildContext,
) -> dict[str, Any]:
    """Run every row of *table* against *raw*; absent elements are omitted."""
    values: dict[str, Any] = {}
    for spec in table:
        if isinstance(spec, ChoiceSpec):
            choice = build_choice(raw, spec.family, ctx)
            if choice is not None:
                values[spec.attr] = choice
        elif spec.many:
            items = build_many(spec, raw.get(spec.key), ctx.at(spec.key))
            if items:
                values[spec.attr] = items
        else:
            value = build_one(spec.kind, raw.get(spec.key), ctx.at(spec.key))
            if value is not None:
                values[spec.attr] = value
    return values


def _build_raw(kind: Union[str, type], raw: Any, ctx: BuildContext) -> Any:
    if isinstance(kind, str):
        return parse_primitive(kind, raw, path=ctx.path)
    return build_element(kind, raw, ctx)


def _has_content(kind: Union[str, type], value: Any) -> bool:
    return isinstance(kind, str) or value != kind()


def _note_failure(ctx: BuildContext, exc: Exception, raw: Any) -> None:
    if isinstance(exc, InvalidPrimitiveFormat):
        ctx.note(INVALID_PRIMITIVE_FORMAT, str(exc), raw)
    else:
        ctx.note(MALFORMED_SUBSTRUCTURE, getattr(exc, "message", str(exc)), raw)


def build_one(kind: Union[str, type], raw: Any, ctx: BuildContext) -> Any:
    """Build a singular element; ``None`` when absent or unusable.

    A composite whose every element came out absent is itself absent.
    """
    if is_empty(raw):
        return None
    try:
        value = _build_raw(kind, raw, ctx)
    except (InvalidPrimitiveFormat, MalformedSubstructure) as exc:
        _note_failure(ctx, exc, raw)
        return None
    return value if _has_content(kind, value) else None


def build_many(spec: FieldSpec, raw: Any, ctx: BuildContext) -> tuple[Any, ...]:
    """Build a list element, dropping malformed entries in place.

    A composite entry is malformed only when it is not a mapping; an
    empty mapping still builds (and keeps its position).  A primitive
    entry is malformed when it is empty or fails its format check.
    """
    if is_empty(raw):
        return ()
    if not isinstance(raw, list):
        if spec.scalar_or_list and not isinstance(raw, Mapping):
            raw = [raw]
        else:
            ctx.note(
                MALFORMED_SUBSTRUCTURE,
                f"expected a list, got {type(raw).__name__}",
                raw,
            )
            return ()

    items: list[Any] = []
    for index, item in enumerate(raw):
        item_ctx = ctx.at(index)
        try:
            if isinstance(spec.kind, str) and is_empty(item):
                raise MalformedSubstructure(item_ctx.path, "element has no content")
            value = _build_raw(spec.kind, item, item_ctx)
        except (InvalidPrimitiveFormat, MalformedSubstructure) as exc:
            _note_failure(item_ctx, exc, item)
            ctx.report.elements_dropped += 1
            continue
        items.append(value)
    return tuple(items)


def build_choice(
    raw: Mapping[str, Any],
    family: ChoiceFamily,
    ctx: BuildContext,
) -> Optional[Choice]:
    """Resolve *family* against *raw* into a tagged :class:`Choice`."""
    variant, present = select_variant(raw, family, policy=ctx.policy)
    if variant is None:
        return None
    if len(present) > 1:
        ctx.at(f"{family.name}[x]").note(
            CHOICE_TYPE_AMBIGUOUS,
            f"{', '.join(present)} all populated; using {present[0]}",
            list(present),
        )
    value = build_one(variant.kind, raw[present[0]], ctx.at(present[0]))
    if value is None:
        return None
    return Choice(variant.suffix, value)


# ── Generic serialize loop ────────────────────────────────────────


def serialize_value(value: Any) -> Any:
    if isinstance(value, Primitive):
        return value.value
    return serialize_element(value)


def serialize_element(obj: Any) -> dict[str, Any]:
    """Emit the plain-JSON form of a typed composite."""
    return serialize_fields(_TABLES[type(obj)], obj)


def serialize_fields(table: tuple[Spec, ...], obj: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for spec in table:
        value = getattr(obj, spec.attr)
        if isinstance(spec, ChoiceSpec):
            if value is not None:
                out[value.key(spec.family.name)] = serialize_value(value.value)
        elif spec.many:
            if value:
                out[spec.key] = [serialize_value(v) for v in value]
        elif value is not None:
            out[spec.key] = serialize_value(value)
    return out
