"""
Typed FHIR R4 value objects for the MedicationRequest graph.

Every class is a frozen dataclass.  Collection fields are tuples that
preserve input order and are empty (never ``None``) when absent.
Optional singular fields are ``None`` when absent.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Mapping, Optional

from fhir_transcode.r4._primitives import Primitive


@dataclass(frozen=True)
class Choice:
    """Tagged union for a FHIR choice-type element (``value[x]``).

    Attributes:
        variant: Type suffix of the populated key, e.g. ``"Reference"``
                 for ``medicationReference``.
        value:   The built payload: a :class:`Primitive` or a composite.
    """

    variant: str
    value: Any

    def key(self, prefix: str) -> str:
        """JSON key this choice serializes under, e.g. ``doseQuantity``."""
        return f"{prefix}{self.variant}"


# ── General-purpose datatypes ─────────────────────────────────────


@dataclass(frozen=True)
class Coding:
    system: Optional[Primitive] = None
    code: Optional[Primitive] = None
    display: Optional[Primitive] = None


@dataclass(frozen=True)
class CodeableConcept:
    coding: tuple[Coding, ...] = ()
    text: Optional[Primitive] = None


@dataclass(frozen=True)
class Period:
    start: Optional[Primitive] = None
    end: Optional[Primitive] = None


@dataclass(frozen=True)
class Identifier:
    use: Optional[Primitive] = None
    type: Optional[CodeableConcept] = None
    system: Optional[Primitive] = None
    value: Optional[Primitive] = None
    period: Optional[Period] = None
    assigner: Optional[Reference] = None


@dataclass(frozen=True)
class Reference:
    """A link to another resource by ``Type/id``, identifier, or display."""

    reference: Optional[Primitive] = None
    type: Optional[Primitive] = None
    identifier: Optional[Identifier] = None
    display: Optional[Primitive] = None


@dataclass(frozen=True)
class Quantity:
    value: Optional[Primitive] = None
    comparator: Optional[Primitive] = None
    unit: Optional[Primitive] = None
    system: Optional[Primitive] = None
    code: Optional[Primitive] = None


@dataclass(frozen=True)
class Duration(Quantity):
    """A Quantity measuring elapsed time (UCUM time units)."""


@dataclass(frozen=True)
class Ratio:
    numerator: Optional[Quantity] = None
    denominator: Optional[Quantity] = None


@dataclass(frozen=True)
class Range:
    low: Optional[Quantity] = None
    high: Optional[Quantity] = None


@dataclass(frozen=True)
class Annotation:
    author: Optional[Choice] = None
    time: Optional[Primitive] = None
    text: Optional[Primitive] = None


# ── Scheduling & dosage ───────────────────────────────────────────


@dataclass(frozen=True)
class TimingRepeat:
    """Repetition rules of a Timing.

    ``day_of_week``, ``time_of_day`` and ``when`` are always tuples,
    even when the source supplied a bare scalar.
    """

    bounds: Optional[Choice] = None
    count: Optional[Primitive] = None
    count_max: Optional[Primitive] = None
    duration: Optional[Primitive] = None
    duration_max: Optional[Primitive] = None
    duration_unit: Optional[Primitive] = None
    frequency: Optional[Primitive] = None
    frequency_max: Optional[Primitive] = None
    period: Optional[Primitive] = None
    period_max: Optional[Primitive] = None
    period_unit: Optional[Primitive] = None
    day_of_week: tuple[Primitive, ...] = ()
    time_of_day: tuple[Primitive, ...] = ()
    when: tuple[Primitive, ...] = ()
    offset: Optional[Primitive] = None


@dataclass(frozen=True)
class Timing:
    event: tuple[Primitive, ...] = ()
    repeat: Optional[TimingRepeat] = None
    code: Optional[CodeableConcept] = None


@dataclass(frozen=True)
class DoseAndRate:
    type: Optional[CodeableConcept] = None
    dose: Optional[Choice] = None
    rate: Optional[Choice] = None


@dataclass(frozen=True)
class Dosage:
    sequence: Optional[Primitive] = None
    text: Optional[Primitive] = None
    additional_instruction: tuple[CodeableConcept, ...] = ()
    patient_instruction: Optional[Primitive] = None
    timing: Optional[Timing] = None
    as_needed: Optional[Choice] = None
    site: Optional[CodeableConcept] = None
    route: Optional[CodeableConcept] = None
    method: Optional[CodeableConcept] = None
    dose_and_rate: tuple[DoseAndRate, ...] = ()
    max_dose_per_period: Optional[Ratio] = None
    max_dose_per_administration: Optional[Quantity] = None
    max_dose_per_lifetime: Optional[Quantity] = None


# ── Root resource ─────────────────────────────────────────────────


@dataclass(frozen=True)
class MedicationRequest:
    """FHIR R4 MedicationRequest.

    Modeled elements are typed attributes.  Unmodeled top-level keys
    (``id``, ``meta``, ``status``, ``intent``, ...) are kept verbatim
    in ``passthrough``.  ``data_absent_reasons`` maps a top-level
    primitive element name to its data-absent-reason code.

    Both mappings are copied on construction and exposed read-only.
    Values nested inside ``passthrough`` are plain JSON and are not
    frozen; they take no part in hashing.
    """

    identifier: tuple[Identifier, ...] = ()
    status_reason: Optional[CodeableConcept] = None
    category: tuple[CodeableConcept, ...] = ()
    do_not_perform: Optional[Primitive] = None
    reported: Optional[Choice] = None
    medication: Optional[Choice] = None
    subject: Optional[Reference] = None
    encounter: Optional[Reference] = None
    supporting_information: tuple[Reference, ...] = ()
    authored_on: Optional[Primitive] = None
    requester: Optional[Reference] = None
    performer: Optional[Reference] = None
    performer_type: Optional[CodeableConcept] = None
    recorder: Optional[Reference] = None
    reason_code: tuple[CodeableConcept, ...] = ()
    reason_reference: tuple[Reference, ...] = ()
    instantiates_canonical: tuple[Primitive, ...] = ()
    instantiates_uri: tuple[Primitive, ...] = ()
    based_on: tuple[Reference, ...] = ()
    group_identifier: Optional[Identifier] = None
    course_of_therapy_type: Optional[CodeableConcept] = None
    insurance: tuple[Reference, ...] = ()
    note: tuple[Annotation, ...] = ()
    dosage_instruction: tuple[Dosage, ...] = ()
    prior_prescription: Optional[Reference] = None
    detected_issue: tuple[Reference, ...] = ()
    event_history: tuple[Reference, ...] = ()
    passthrough: Mapping[str, Any] = field(default_factory=dict, hash=False)
    data_absent_reasons: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "passthrough", MappingProxyType(dict(self.passthrough)))
        object.__setattr__(
            self, "data_absent_reasons", MappingProxyType(dict(self.data_absent_reasons))
        )

    def __reduce__(self):
        state = {f.name: getattr(self, f.name) for f in fields(self)}
        state["passthrough"] = dict(self.passthrough)
        state["data_absent_reasons"] = dict(self.data_absent_reasons)
        return (_restore, (type(self), state))

    @property
    def id(self) -> Optional[str]:
        return self.passthrough.get("id")

    @property
    def status(self) -> Optional[str]:
        return self.passthrough.get("status")

    @property
    def intent(self) -> Optional[str]:
        return self.passthrough.get("intent")

    @property
    def priority(self) -> Optional[str]:
        return self.passthrough.get("priority")


def _restore(cls: type, state: dict[str, Any]) -> Any:
    return cls(**state)
