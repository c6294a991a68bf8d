"""
Composite builders for FHIR R4 datatypes.

Each ``build_*`` function turns one raw mapping into a finished, typed
value.  Missing keys leave the matching attribute absent; a wrong shape
anywhere below the top is recorded on ``report`` and the offending
element is skipped.  Only a non-mapping *raw* argument raises.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Union

from fhir_transcode.report import TranscodeReport
from fhir_transcode.r4._choice import CHOICE_FAMILIES, ChoiceFamily
from fhir_transcode.r4._constants import (
    CHOICE_FIRST_MATCH,
    CODE,
    DECIMAL,
    STRING,
    UNITS_OF_MEASURE,
    URI,
)
from fhir_transcode.r4._errors import MalformedSubstructure
from fhir_transcode.r4._primitives import Primitive, is_empty
from fhir_transcode.r4._schema import (
    build_choice,
    build_element,
    coding_text,
    make_coding,
    new_context,
)
from fhir_transcode.r4._types import (
    Annotation,
    Choice,
    CodeableConcept,
    Coding,
    Dosage,
    DoseAndRate,
    Duration,
    Identifier,
    Period,
    Quantity,
    Range,
    Ratio,
    Reference,
    Timing,
    TimingRepeat,
)


def _make_builder(cls: type, name: str) -> Callable[..., Any]:
    """Factory for ``build_<type>(raw, *, report=None, policy=...)``."""

    def builder(
        raw: Optional[Mapping[str, Any]],
        *,
        report: Optional[TranscodeReport] = None,
        policy: str = CHOICE_FIRST_MATCH,
    ) -> Any:
        if is_empty(raw):
            return cls()
        return build_element(cls, raw, new_context(report, cls.__name__, policy))

    builder.__name__ = builder.__qualname__ = name
    builder.__doc__ = (
        f"Build a {cls.__name__} from a raw FHIR mapping.\n\n"
        f"Raises:\n    MalformedSubstructure: If *raw* is not a mapping."
    )
    return builder


build_codeable_concept = _make_builder(CodeableConcept, "build_codeable_concept")
build_identifier = _make_builder(Identifier, "build_identifier")
build_reference = _make_builder(Reference, "build_reference")
build_quantity = _make_builder(Quantity, "build_quantity")
build_duration = _make_builder(Duration, "build_duration")
build_ratio = _make_builder(Ratio, "build_ratio")
build_range = _make_builder(Range, "build_range")
build_period = _make_builder(Period, "build_period")
build_annotation = _make_builder(Annotation, "build_annotation")
build_timing_repeat = _make_builder(TimingRepeat, "build_timing_repeat")
build_timing = _make_builder(Timing, "build_timing")
build_dose_and_rate = _make_builder(DoseAndRate, "build_dose_and_rate")
build_dosage = _make_builder(Dosage, "build_dosage")


def build_coding(
    raw: Optional[Mapping[str, Any]],
    *,
    report: Optional[TranscodeReport] = None,
) -> Coding:
    """Build a Coding from its ``{code, display, system}`` triple.

    Components are trimmed; a missing ``display`` or ``system`` becomes
    an empty-string primitive so those keys are always emitted.
    """
    if raw is None:
        raw = {}
    return build_element(Coding, raw, new_context(report, "Coding"))


def create_coding(code: Any, display: Any = None, system: Any = None) -> Coding:
    """Create a Coding from loose values.

    Non-string codes are stringified; ``None`` display or system becomes
    the empty string.

    Raises:
        MalformedSubstructure: If any component is a list or mapping.
    """
    return make_coding(
        coding_text(code, "Coding.code"),
        coding_text(display, "Coding.display"),
        coding_text(system, "Coding.system"),
    )


def create_codeable_concept(
    codes: Mapping[Any, Mapping[str, Any]],
    default_system: str = "",
    default_display: str = "",
) -> CodeableConcept:
    """Create a CodeableConcept from a ``{code: {system, description}}`` map.

    Each entry's display is its ``description``, else its ``display``,
    else *default_display*.  Entries without a ``system`` use
    *default_system*.
    """
    codings = []
    for code, values in codes.items():
        system = values.get("system") or default_system
        display = values.get("description") or values.get("display") or default_display
        codings.append(create_coding(code, display, system))
    return CodeableConcept(coding=tuple(codings))


def create_quantity(value: Any, unit: str, code: Optional[str] = None) -> Quantity:
    """Create a UCUM Quantity.

    ``code`` defaults to *unit*; the system is always
    ``http://unitsofmeasure.org``.
    """
    return Quantity(
        value=Primitive(DECIMAL, value),
        unit=Primitive(STRING, unit),
        system=Primitive(URI, UNITS_OF_MEASURE),
        code=Primitive(CODE, code if code is not None else unit),
    )


def resolve_choice(
    raw: Mapping[str, Any],
    family: Union[ChoiceFamily, str],
    *,
    report: Optional[TranscodeReport] = None,
    policy: str = CHOICE_FIRST_MATCH,
) -> Optional[Choice]:
    """Resolve a choice family (``medication[x]``, ``dose[x]``...) in *raw*.

    Scans the family's keys in declared precedence and builds the first
    populated one.  Returns ``None`` when no key is populated.

    Raises:
        MalformedSubstructure: If *raw* is not a mapping.
        ChoiceTypeAmbiguous: If *policy* is ``"reject"`` and several
            keys of the family are populated.
        KeyError: If *family* names an undeclared family.
    """
    if isinstance(family, str):
        family = CHOICE_FAMILIES[family]
    if not isinstance(raw, Mapping):
        raise MalformedSubstructure(
            f"{family.name}[x]",
            f"expected an object, got {type(raw).__name__}",
        )
    return build_choice(raw, family, new_context(report, policy=policy))
