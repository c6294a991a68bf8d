"""
Shared constants for FHIR R4 transcoding.

Primitive kind names, the dateTime grammar, resource-type names, code
systems, and choice policies used across the ``r4`` sub-package are
centralised here to avoid circular imports.
"""

from __future__ import annotations

import re

# ── Version constants ─────────────────────────────────────────────

SUPPORTED_FHIR_VERSIONS = ("R4",)
"""FHIR versions with implemented transcoding logic."""

RESOURCE_TYPE = "MedicationRequest"

# ── Primitive kinds ───────────────────────────────────────────────

CODE = "code"
STRING = "string"
URI = "uri"
CANONICAL = "canonical"
DATE_TIME = "dateTime"
TIME = "time"
DECIMAL = "decimal"
INTEGER = "integer"
POSITIVE_INT = "positiveInt"
UNSIGNED_INT = "unsignedInt"
BOOLEAN = "boolean"
MARKDOWN = "markdown"

PRIMITIVE_KINDS = frozenset({
    CODE,
    STRING,
    URI,
    CANONICAL,
    DATE_TIME,
    TIME,
    DECIMAL,
    INTEGER,
    POSITIVE_INT,
    UNSIGNED_INT,
    BOOLEAN,
    MARKDOWN,
})

# FHIR R4 dateTime grammar (http://hl7.org/fhir/R4/datatypes.html#dateTime).
# Year, optional month, optional day, and a time part that must carry
# a timezone when present.
FHIR_DATETIME_PATTERN = re.compile(
    r"([0-9]([0-9]([0-9][1-9]|[1-9]0)|[1-9]00)|[1-9]000)"
    r"(-(0[1-9]|1[0-2])"
    r"(-(0[1-9]|[1-2][0-9]|3[0-1])"
    r"(T([01][0-9]|2[0-3]):[0-5][0-9]:([0-5][0-9]|60)(\.[0-9]+)?"
    r"(Z|(\+|-)((0[0-9]|1[0-3]):[0-5][0-9]|14:00)))?)?)?"
)

# ── Choice-type policies ──────────────────────────────────────────
#
# FHIR forbids more than one key of a choice family in the same
# element.  Lenient clients send them anyway; the policy decides
# whether the first declared variant wins or the resource is refused.

CHOICE_FIRST_MATCH = "first-match"
CHOICE_REJECT = "reject"
CHOICE_POLICIES = (CHOICE_FIRST_MATCH, CHOICE_REJECT)

# ── Code systems & extension URLs ─────────────────────────────────

DATA_ABSENT_REASON_EXTENSION = (
    "http://hl7.org/fhir/StructureDefinition/data-absent-reason"
)
DATA_ABSENT_REASON_CODE_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/data-absent-reason"
)
HL7_NULL_FLAVOR = "http://terminology.hl7.org/CodeSystem/v3-NullFlavor"
UNITS_OF_MEASURE = "http://unitsofmeasure.org"

UNKNOWNABLE_CODE_NULL_FLAVOR = "UNK"
UNKNOWNABLE_CODE_DATA_ABSENT = "unknown"

# ── Diagnostic condition names ────────────────────────────────────

MALFORMED_SUBSTRUCTURE = "MalformedSubstructure"
INVALID_PRIMITIVE_FORMAT = "InvalidPrimitiveFormat"
CHOICE_TYPE_AMBIGUOUS = "ChoiceTypeAmbiguous"
REFERENCE_MISMATCH = "ReferenceMismatch"

# ── Known resource types ──────────────────────────────────────────

KNOWN_RESOURCE_TYPES = frozenset({
    "Account", "ActivityDefinition", "AdverseEvent", "AllergyIntolerance",
    "Appointment", "AppointmentResponse", "AuditEvent", "Basic", "Binary",
    "BiologicallyDerivedProduct", "BodyStructure", "Bundle",
    "CapabilityStatement", "CarePlan", "CareTeam", "CatalogEntry",
    "ChargeItem", "ChargeItemDefinition", "Claim", "ClaimResponse",
    "ClinicalImpression", "CodeSystem", "Communication",
    "CommunicationRequest", "CompartmentDefinition", "Composition",
    "ConceptMap", "Condition", "Consent", "Contract", "Coverage",
    "CoverageEligibilityRequest", "CoverageEligibilityResponse",
    "DetectedIssue", "Device", "DeviceDefinition", "DeviceMetric",
    "DeviceRequest", "DeviceUseStatement", "DiagnosticReport",
    "DocumentManifest", "DocumentReference", "EffectEvidenceSynthesis",
    "Encounter", "Endpoint", "EnrollmentRequest", "EnrollmentResponse",
    "EpisodeOfCare", "EventDefinition", "Evidence", "EvidenceVariable",
    "ExampleScenario", "ExplanationOfBenefit", "FamilyMemberHistory",
    "Flag", "Goal", "GraphDefinition", "Group", "GuidanceResponse",
    "HealthcareService", "ImagingStudy", "Immunization",
    "ImmunizationEvaluation", "ImmunizationRecommendation",
    "ImplementationGuide", "InsurancePlan", "Invoice", "Library",
    "Linkage", "List", "Location", "Measure", "MeasureReport", "Media",
    "Medication", "MedicationAdministration", "MedicationDispense",
    "MedicationKnowledge", "MedicationRequest", "MedicationStatement",
    "MedicinalProduct", "MedicinalProductAuthorization",
    "MedicinalProductContraindication", "MedicinalProductIndication",
    "MedicinalProductIngredient", "MedicinalProductInteraction",
    "MedicinalProductManufactured", "MedicinalProductPackaged",
    "MedicinalProductPharmaceutical", "MedicinalProductUndesirableEffect",
    "MessageDefinition", "MessageHeader", "MolecularSequence",
    "NamingSystem", "NutritionOrder", "Observation",
    "ObservationDefinition", "OperationDefinition", "OperationOutcome",
    "Organization", "OrganizationAffiliation", "Parameters", "Patient",
    "PaymentNotice", "PaymentReconciliation", "Person", "PlanDefinition",
    "Practitioner", "PractitionerRole", "Procedure", "Provenance",
    "Questionnaire", "QuestionnaireResponse", "RelatedPerson",
    "RequestGroup", "ResearchDefinition", "ResearchElementDefinition",
    "ResearchStudy", "ResearchSubject", "RiskAssessment",
    "RiskEvidenceSynthesis", "Schedule", "SearchParameter",
    "ServiceRequest", "Slot", "Specimen", "SpecimenDefinition",
    "StructureDefinition", "StructureMap", "Subscription", "Substance",
    "SubstanceNucleicAcid", "SubstancePolymer", "SubstanceProtein",
    "SubstanceReferenceInformation", "SubstanceSourceMaterial",
    "SubstanceSpecification", "SupplyDelivery", "SupplyRequest", "Task",
    "TerminologyCapabilities", "TestReport", "TestScript", "ValueSet",
    "VerificationResult", "VisionPrescription",
})
"""FHIR R4 resource type names, used when parsing canonical URLs."""
