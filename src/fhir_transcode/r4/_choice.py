"""
Choice-type families for FHIR R4 ``[x]`` elements.

A family lists its variants in declared precedence order.  Selection
scans the candidate keys in that order and picks the first populated
one; the ``reject`` policy refuses inputs that populate more than one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from fhir_transcode.r4._constants import (
    BOOLEAN,
    CHOICE_FIRST_MATCH,
    CHOICE_POLICIES,
    CHOICE_REJECT,
    STRING,
)
from fhir_transcode.r4._errors import ChoiceTypeAmbiguous
from fhir_transcode.r4._primitives import is_empty
from fhir_transcode.r4._types import (
    CodeableConcept,
    Duration,
    Period,
    Quantity,
    Range,
    Ratio,
    Reference,
)


@dataclass(frozen=True)
class ChoiceVariant:
    """One alternative of a choice family.

    Attributes:
        suffix: Type suffix appended to the family name in JSON.
        kind:   Primitive kind name, or the composite class to build.
    """

    suffix: str
    kind: Union[str, type]


@dataclass(frozen=True)
class ChoiceFamily:
    name: str
    variants: tuple[ChoiceVariant, ...]

    @property
    def keys(self) -> tuple[str, ...]:
        """Candidate JSON keys in precedence order."""
        return tuple(self.name + v.suffix for v in self.variants)

    def variant_for(self, key: str) -> ChoiceVariant:
        for variant in self.variants:
            if self.name + variant.suffix == key:
                return variant
        raise KeyError(f"'{key}' is not a member of {self.name}[x]")


def _family(name: str, *variants: tuple[str, Union[str, type]]) -> ChoiceFamily:
    return ChoiceFamily(name, tuple(ChoiceVariant(s, k) for s, k in variants))


# ── Declared families ─────────────────────────────────────────────

MEDICATION = _family(
    "medication",
    ("CodeableConcept", CodeableConcept),
    ("Reference", Reference),
)
REPORTED = _family("reported", ("Boolean", BOOLEAN), ("Reference", Reference))
AS_NEEDED = _family(
    "asNeeded",
    ("Boolean", BOOLEAN),
    ("CodeableConcept", CodeableConcept),
)
DOSE = _family("dose", ("Range", Range), ("Quantity", Quantity))
RATE = _family(
    "rate",
    ("Ratio", Ratio),
    ("Range", Range),
    ("Quantity", Quantity),
)
BOUNDS = _family(
    "bounds",
    ("Duration", Duration),
    ("Range", Range),
    ("Period", Period),
)
AUTHOR = _family("author", ("Reference", Reference), ("String", STRING))

CHOICE_FAMILIES: dict[str, ChoiceFamily] = {
    f.name: f for f in (MEDICATION, REPORTED, AS_NEEDED, DOSE, RATE, BOUNDS, AUTHOR)
}


def select_variant(
    raw: Mapping[str, Any],
    family: ChoiceFamily,
    *,
    policy: str = CHOICE_FIRST_MATCH,
) -> tuple[Optional[ChoiceVariant], tuple[str, ...]]:
    """Pick the variant of *family* populated in *raw*.

    Returns:
        ``(variant, present_keys)`` where ``variant`` belongs to the
        first populated key in precedence order (``None`` when no key
        is populated) and ``present_keys`` lists every populated key.

    Raises:
        ChoiceTypeAmbiguous: If *policy* is ``"reject"`` and more than
            one key is populated.
        ValueError: If *policy* is unknown.
    """
    if policy not in CHOICE_POLICIES:
        raise ValueError(
            f"Unknown choice policy '{policy}'. "
            f"Supported: {', '.join(CHOICE_POLICIES)}"
        )

    present = tuple(key for key in family.keys if not is_empty(raw.get(key)))
    if not present:
        return None, ()
    if len(present) > 1 and policy == CHOICE_REJECT:
        raise ChoiceTypeAmbiguous(family.name, present)
    return family.variant_for(present[0]), present
