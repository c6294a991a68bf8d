"""
FHIR R4 MedicationRequest transcoding.

Maps between FHIR R4 JSON (untyped nested mappings) and a typed,
immutable MedicationRequest graph, in both directions.

Layers, leaf first:

  - Primitive coercion:  ``coerce()`` wraps scalars as typed
                         :class:`Primitive` values; dateTime is checked
                         against the FHIR grammar.
  - Composite builders:  ``build_quantity()``, ``build_dosage()``...
                         one pure function per datatype, driven by a
                         declarative field table.
  - Choice resolution:   ``resolve_choice()`` turns ``medication[x]``,
                         ``asNeeded[x]``, ``dose[x]``, ``rate[x]``,
                         ``bounds[x]``, ``reported[x]`` and
                         ``author[x]`` into a tagged :class:`Choice`.
  - Reference helpers:   ``parse_reference()``, ``parse_canonical_url()``,
                         ``build_relative_reference()``.
  - Resource assembler:  ``deserialize()`` / ``serialize()`` and the
                         report-returning ``from_fhir()`` / ``to_fhir()``.

Error policy:
  Malformed input never aborts a resource.  A bad list element is
  dropped, a bad singular element is left absent, and each problem is
  recorded in the :class:`TranscodeReport` and logged after assembly.
  Only contract violations (non-mapping input, wrong ``resourceType``)
  raise :class:`InvalidInput`.

Round-trip fidelity scope:
  ``deserialize(serialize(r)) == r`` for any resource produced by
  ``deserialize``.  Unmodeled top-level keys round-trip verbatim via
  ``passthrough``; extensions other than the data-absent-reason marker
  on top-level primitives are only preserved when they sit in such
  unmodeled keys.

References:
  - HL7 FHIR R4 MedicationRequest: https://hl7.org/fhir/R4/medicationrequest.html
  - HL7 FHIR R4 datatypes: https://hl7.org/fhir/R4/datatypes.html
"""

from fhir_transcode.r4._constants import (
    SUPPORTED_FHIR_VERSIONS,
    KNOWN_RESOURCE_TYPES,
    FHIR_DATETIME_PATTERN,
    CHOICE_FIRST_MATCH,
    CHOICE_REJECT,
    DATA_ABSENT_REASON_EXTENSION,
)
from fhir_transcode.r4._errors import (
    TranscodeError,
    InvalidInput,
    MalformedSubstructure,
    InvalidPrimitiveFormat,
    ChoiceTypeAmbiguous,
)
from fhir_transcode.r4._primitives import (
    Primitive,
    coerce,
    parse_primitive,
    is_empty,
    is_valid_datetime,
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
    MedicationRequest,
    Period,
    Quantity,
    Range,
    Ratio,
    Reference,
    Timing,
    TimingRepeat,
)
from fhir_transcode.r4._choice import (
    ChoiceFamily,
    ChoiceVariant,
    CHOICE_FAMILIES,
    select_variant,
)
from fhir_transcode.r4._builders import (
    build_annotation,
    build_codeable_concept,
    build_coding,
    build_dosage,
    build_dose_and_rate,
    build_duration,
    build_identifier,
    build_period,
    build_quantity,
    build_range,
    build_ratio,
    build_reference,
    build_timing,
    build_timing_repeat,
    create_coding,
    create_codeable_concept,
    create_quantity,
    resolve_choice,
)
from fhir_transcode.r4._references import (
    ParsedReference,
    ParsedCanonicalUrl,
    parse_reference,
    parse_canonical_url,
    build_relative_reference,
    build_canonical_url,
    id_from_reference,
)
from fhir_transcode.r4._assembler import (
    deserialize,
    serialize,
    from_fhir,
    to_fhir,
)
from fhir_transcode.r4._outcome import (
    create_operation_outcome,
    report_to_operation_outcome,
    create_data_absent_extension,
    create_null_flavor_unknown_concept,
    create_data_absent_unknown_concept,
    create_narrative,
    create_meta,
)

__all__ = [
    # Assembler
    "deserialize",
    "serialize",
    "from_fhir",
    "to_fhir",
    # Constants
    "SUPPORTED_FHIR_VERSIONS",
    "KNOWN_RESOURCE_TYPES",
    "FHIR_DATETIME_PATTERN",
    "CHOICE_FIRST_MATCH",
    "CHOICE_REJECT",
    "DATA_ABSENT_REASON_EXTENSION",
    # Errors
    "TranscodeError",
    "InvalidInput",
    "MalformedSubstructure",
    "InvalidPrimitiveFormat",
    "ChoiceTypeAmbiguous",
    # Primitives
    "Primitive",
    "coerce",
    "parse_primitive",
    "is_empty",
    "is_valid_datetime",
    # Datatypes
    "Annotation",
    "Choice",
    "CodeableConcept",
    "Coding",
    "Dosage",
    "DoseAndRate",
    "Duration",
    "Identifier",
    "MedicationRequest",
    "Period",
    "Quantity",
    "Range",
    "Ratio",
    "Reference",
    "Timing",
    "TimingRepeat",
    # Choice types
    "ChoiceFamily",
    "ChoiceVariant",
    "CHOICE_FAMILIES",
    "select_variant",
    "resolve_choice",
    # Builders
    "build_annotation",
    "build_codeable_concept",
    "build_coding",
    "build_dosage",
    "build_dose_and_rate",
    "build_duration",
    "build_identifier",
    "build_period",
    "build_quantity",
    "build_range",
    "build_ratio",
    "build_reference",
    "build_timing",
    "build_timing_repeat",
    "create_coding",
    "create_codeable_concept",
    "create_quantity",
    # References
    "ParsedReference",
    "ParsedCanonicalUrl",
    "parse_reference",
    "parse_canonical_url",
    "build_relative_reference",
    "build_canonical_url",
    "id_from_reference",
    # Outcome & missing data
    "create_operation_outcome",
    "report_to_operation_outcome",
    "create_data_absent_extension",
    "create_null_flavor_unknown_concept",
    "create_data_absent_unknown_concept",
    "create_narrative",
    "create_meta",
]
