"""Tests for MedicationRequest deserialize / serialize and the report entry points."""

import copy
import json
import logging
import pickle

import pytest

from fhir_transcode import TranscodeReport, from_fhir, to_fhir
from fhir_transcode.config import ServerConfig
from fhir_transcode.r4 import (
    ChoiceTypeAmbiguous,
    CodeableConcept,
    Identifier,
    InvalidInput,
    InvalidPrimitiveFormat,
    MedicationRequest,
    Primitive,
    Reference,
    deserialize,
    serialize,
)

PATIENT_UUID = "98baaf33-849a-443e-ae28-1b5f58194bce"


def _config(policy="first-match"):
    return ServerConfig(
        fhir_url="https://ehr.example.org/apis/default/fhir/",
        choice_policy=policy,
    )


def _dosage(sequence, text="1 tablet daily"):
    return {
        "sequence": sequence,
        "text": text,
        "timing": {"repeat": {"frequency": 1, "period": 1, "periodUnit": "d"}},
        "doseAndRate": [{"doseQuantity": {"value": 1, "unit": "tablet"}}],
    }


def _medication_request(**overrides):
    resource = {
        "resourceType": "MedicationRequest",
        "id": "medrx-1",
        "meta": {"versionId": "3", "lastUpdated": "2023-05-01T10:00:00Z"},
        "status": "active",
        "intent": "order",
        "priority": "routine",
        "identifier": [
            {"system": "urn:oid:1.2.3", "value": "rx-001"},
            {"system": "urn:oid:1.2.3", "value": "rx-002"},
        ],
        "category": [
            {"coding": [{"system": "http://terminology.hl7.org/CodeSystem/medicationrequest-category",
                         "code": "community", "display": "Community"}]},
        ],
        "medicationCodeableConcept": {
            "coding": [{"system": "http://www.nlm.nih.gov/research/umls/rxnorm",
                        "code": "1049502", "display": "Acetaminophen 325 MG"}],
        },
        "subject": {"reference": f"Patient/{PATIENT_UUID}", "type": "Patient",
                    "display": "Jane Doe"},
        "authoredOn": "2023-05-01T10:00:00Z",
        "requester": {"reference": "Practitioner/7", "display": "Dr. Smith"},
        "reasonCode": [{"text": "Headache"}],
        "note": [{"authorString": "Dr. Smith", "text": "Review in 2 weeks"}],
        "dosageInstruction": [_dosage(1), _dosage(2, "2 tablets at night")],
    }
    resource.update(overrides)
    return resource


class TestDeserializeBasics:
    """Modeled elements land in typed attributes."""

    def test_returns_medication_request(self):
        mr = deserialize(_medication_request(), config=_config())
        assert isinstance(mr, MedicationRequest)

    def test_passthrough_properties(self):
        mr = deserialize(_medication_request(), config=_config())
        assert mr.id == "medrx-1"
        assert mr.status == "active"
        assert mr.intent == "order"
        assert mr.priority == "routine"
        assert mr.passthrough["meta"] == {"versionId": "3", "lastUpdated": "2023-05-01T10:00:00Z"}
        assert "resourceType" not in mr.passthrough
        assert "dosageInstruction" not in mr.passthrough

    def test_modeled_fields(self):
        mr = deserialize(_medication_request(), config=_config())
        assert [i.value.value for i in mr.identifier] == ["rx-001", "rx-002"]
        assert mr.category[0].coding[0].code == Primitive("code", "community")
        assert mr.medication.variant == "CodeableConcept"
        assert mr.authored_on == Primitive("dateTime", "2023-05-01T10:00:00Z")
        assert mr.requester.display == Primitive("string", "Dr. Smith")
        assert mr.note[0].author.variant == "String"
        assert len(mr.dosage_instruction) == 2

    def test_reason_code_has_own_collection(self):
        mr = deserialize(_medication_request(), config=_config())
        assert mr.reason_code == (CodeableConcept(text=Primitive("string", "Headache")),)
        assert len(mr.category) == 1

    def test_event_history_has_own_collection(self):
        mr = deserialize(
            _medication_request(
                detectedIssue=[{"reference": "DetectedIssue/d1"}],
                eventHistory=[{"reference": "Provenance/p1"}, {"reference": "Provenance/p2"}],
            ),
            config=_config(),
        )
        assert len(mr.detected_issue) == 1
        assert [r.reference.value for r in mr.event_history] == [
            "Provenance/p1", "Provenance/p2",
        ]

    def test_supplemented_fields(self):
        mr = deserialize(
            _medication_request(
                statusReason={"text": "on hold"},
                doNotPerform=False,
                reportedBoolean=True,
                encounter={"reference": "Encounter/e1"},
                performer={"reference": "Practitioner/8"},
                performerType={"text": "nurse"},
                recorder={"reference": "Practitioner/9"},
                courseOfTherapyType={"coding": [{"code": "acute"}]},
                groupIdentifier={"value": "grp-1"},
                priorPrescription={"reference": "MedicationRequest/old"},
                instantiatesCanonical=["http://example.org/PlanDefinition/p"],
                instantiatesUri=["http://example.org/protocol"],
                basedOn=[{"reference": "CarePlan/cp1"}],
                insurance=[{"reference": "Coverage/c1"}],
                supportingInformation=[{"reference": "Observation/o1"}],
                reasonReference=[{"reference": "Condition/c1"}],
            ),
            config=_config(),
        )
        assert mr.status_reason.text == Primitive("string", "on hold")
        assert mr.do_not_perform == Primitive("boolean", False)
        assert mr.reported.value == Primitive("boolean", True)
        assert mr.encounter.reference.value == "Encounter/e1"
        assert mr.performer_type.text.value == "nurse"
        assert mr.recorder.reference.value == "Practitioner/9"
        assert mr.course_of_therapy_type.coding[0].code.value == "acute"
        assert mr.group_identifier == Identifier(value=Primitive("string", "grp-1"))
        assert mr.prior_prescription.reference.value == "MedicationRequest/old"
        assert mr.instantiates_canonical == (
            Primitive("canonical", "http://example.org/PlanDefinition/p"),
        )
        assert mr.instantiates_uri[0].kind == "uri"
        assert len(mr.based_on) == len(mr.insurance) == len(mr.supporting_information) == 1
        assert mr.reason_reference[0].reference.value == "Condition/c1"

    def test_input_not_mutated(self):
        raw = _medication_request()
        snapshot = copy.deepcopy(raw)
        deserialize(raw, config=_config())
        assert raw == snapshot

    def test_passthrough_is_a_copy(self):
        raw = _medication_request()
        mr = deserialize(raw, config=_config())
        raw["meta"]["versionId"] = "99"
        assert mr.passthrough["meta"]["versionId"] == "3"

    def test_passthrough_is_read_only(self):
        mr = deserialize(_medication_request(), config=_config())
        with pytest.raises(TypeError):
            mr.passthrough["status"] = "stopped"
        with pytest.raises(TypeError):
            mr.data_absent_reasons["authoredOn"] = "unknown"
        assert mr.status == "active"

    def test_hand_built_mappings_detached(self):
        passthrough = {"status": "draft"}
        mr = MedicationRequest(passthrough=passthrough)
        passthrough["status"] = "active"
        assert mr.status == "draft"

    def test_hashable(self):
        a = deserialize(_medication_request(), config=_config())
        b = deserialize(_medication_request(), config=_config())
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_deepcopy_and_pickle(self):
        mr = deserialize(_medication_request(), config=_config())
        assert copy.deepcopy(mr) == mr
        assert pickle.loads(pickle.dumps(mr)) == mr


class TestAbsencePropagation:
    """A missing key yields an absent field, never a default."""

    def test_minimal_resource(self):
        mr = deserialize({"resourceType": "MedicationRequest"}, config=_config())
        assert mr == MedicationRequest()

    def test_missing_resource_type_accepted(self):
        mr = deserialize({"status": "draft"}, config=_config())
        assert mr.status == "draft"

    @pytest.mark.parametrize("key,attr,empty", [
        ("medicationCodeableConcept", "medication", None),
        ("subject", "subject", None),
        ("authoredOn", "authored_on", None),
        ("requester", "requester", None),
        ("identifier", "identifier", ()),
        ("category", "category", ()),
        ("reasonCode", "reason_code", ()),
        ("note", "note", ()),
        ("dosageInstruction", "dosage_instruction", ()),
    ])
    def test_removed_key_is_absent(self, key, attr, empty):
        raw = _medication_request()
        del raw[key]
        mr = deserialize(raw, config=_config())
        assert getattr(mr, attr) == empty

    def test_null_and_empty_values_are_absent(self):
        mr = deserialize(
            _medication_request(subject=None, category=[], authoredOn="", note={}),
            config=_config(),
        )
        assert mr.subject is None
        assert mr.category == ()
        assert mr.authored_on is None
        assert mr.note == ()


class TestDateTimeValidation:

    def test_valid_authored_on_kept_verbatim(self):
        mr = deserialize(_medication_request(authoredOn="2023-05-01T10:00:00Z"), config=_config())
        assert mr.authored_on.value == "2023-05-01T10:00:00Z"

    def test_invalid_authored_on_is_absent(self):
        report = TranscodeReport()
        mr = deserialize(
            _medication_request(authoredOn="not-a-date"), config=_config(), report=report
        )
        assert mr.authored_on is None
        assert mr.medication is not None
        assert len(mr.dosage_instruction) == 2
        assert report.diagnostics[0].path == "authoredOn"
        assert report.diagnostics[0].condition == "InvalidPrimitiveFormat"

    def test_invalid_authored_on_not_passed_through(self):
        mr = deserialize(_medication_request(authoredOn="not-a-date"), config=_config())
        assert "authoredOn" not in mr.passthrough

    def test_hand_built_invalid_authored_on_rejected(self):
        with pytest.raises(InvalidPrimitiveFormat):
            MedicationRequest(authored_on=Primitive("dateTime", "not-a-date"))

    def test_hand_built_authored_on_round_trips(self):
        mr = MedicationRequest(
            authored_on=Primitive("dateTime", "2023-05-01"),
            passthrough={"status": "active", "intent": "order"},
        )
        assert serialize(mr)["authoredOn"] == "2023-05-01"
        assert deserialize(serialize(mr), config=_config()) == mr


class TestMalformedListElements:
    """A malformed list element is dropped; the resource still assembles."""

    def test_bare_string_dosage_dropped(self):
        report = TranscodeReport()
        mr = deserialize(
            _medication_request(dosageInstruction=[_dosage(1), "take daily", _dosage(3)]),
            config=_config(),
            report=report,
        )
        assert [d.sequence.value for d in mr.dosage_instruction] == [1, 3]
        assert report.elements_dropped == 1
        assert report.diagnostics[0].path == "dosageInstruction[1]"
        assert report.success is True

    def test_list_field_given_mapping(self):
        report = TranscodeReport()
        mr = deserialize(
            _medication_request(identifier={"value": "rx-001"}), config=_config(), report=report
        )
        assert mr.identifier == ()
        assert report.diagnostics[0].path == "identifier"

    def test_entry_without_modeled_content_kept(self):
        report = TranscodeReport()
        raw = _medication_request(identifier=[
            {"system": "urn:oid:1.2.3", "value": "rx-001"},
            {"id": "i2", "extension": [{"url": "http://example.org/ext", "valueString": "x"}]},
        ])
        mr = deserialize(raw, config=_config(), report=report)
        assert len(mr.identifier) == 2
        assert mr.identifier[1] == Identifier()
        assert report.elements_dropped == 0
        assert report.diagnostics == []
        assert deserialize(serialize(mr), config=_config()) == mr

    def test_malformed_singular_field(self):
        report = TranscodeReport()
        mr = deserialize(_medication_request(requester="Dr. Smith"), config=_config(), report=report)
        assert mr.requester is None
        assert report.conditions() == {"MalformedSubstructure"}

    def test_deep_path_in_diagnostic(self):
        report = TranscodeReport()
        bad = _dosage(2)
        bad["timing"]["repeat"]["boundsPeriod"] = {"start": "someday"}
        deserialize(
            _medication_request(dosageInstruction=[_dosage(1), bad]),
            config=_config(),
            report=report,
        )
        assert report.diagnostics[0].path == (
            "dosageInstruction[1].timing.repeat.boundsPeriod.start"
        )


class TestChoicePolicy:

    def _both(self):
        return _medication_request(medicationReference={"reference": "Medication/m1"})

    def test_first_match_prefers_declared_order(self):
        report = TranscodeReport()
        mr = deserialize(self._both(), config=_config(), report=report)
        assert mr.medication.variant == "CodeableConcept"
        assert "ChoiceTypeAmbiguous" in report.conditions()
        assert "medicationReference" not in mr.passthrough

    def test_reject_policy_raises(self):
        report = TranscodeReport()
        with pytest.raises(ChoiceTypeAmbiguous):
            deserialize(self._both(), config=_config("reject"), report=report)
        assert report.success is False
        assert report.errors

    def test_reject_policy_single_variant(self):
        mr = deserialize(_medication_request(), config=_config("reject"))
        assert mr.medication.variant == "CodeableConcept"

    def test_as_needed_false_kept(self):
        dosage = _dosage(1)
        dosage["asNeededBoolean"] = False
        mr = deserialize(_medication_request(dosageInstruction=[dosage]), config=_config())
        assert mr.dosage_instruction[0].as_needed.value == Primitive("boolean", False)


class TestSubjectNormalization:

    def test_relative_subject_rebuilt(self):
        mr = deserialize(_medication_request(), config=_config())
        assert mr.subject == Reference(
            reference=Primitive("string", f"Patient/{PATIENT_UUID}"),
            type=Primitive("uri", "Patient"),
            display=Primitive("string", "Jane Doe"),
        )

    def test_absolute_local_subject_made_relative(self):
        mr = deserialize(
            _medication_request(subject={
                "reference": f"https://ehr.example.org/apis/default/fhir/Patient/{PATIENT_UUID}",
                "type": "Patient",
                "identifier": {"value": "mrn-1"},
            }),
            config=_config(),
        )
        assert mr.subject.reference == Primitive("string", f"Patient/{PATIENT_UUID}")
        assert mr.subject.identifier == Identifier(value=Primitive("string", "mrn-1"))

    def test_remote_subject_untouched(self):
        remote = f"http://elsewhere.example.com/fhir/Patient/{PATIENT_UUID}"
        mr = deserialize(
            _medication_request(subject={"reference": remote, "type": "Patient"}),
            config=_config(),
        )
        assert mr.subject.reference == Primitive("string", remote)

    def test_untyped_subject_untouched(self):
        mr = deserialize(
            _medication_request(subject={"reference": "Patient/1/_history/2"}),
            config=_config(),
        )
        assert mr.subject.reference == Primitive("string", "Patient/1/_history/2")
        assert mr.subject.type is None

    def test_type_mismatch_recorded(self):
        report = TranscodeReport()
        mr = deserialize(
            _medication_request(subject={"reference": "Patient/1", "type": "Group"}),
            config=_config(),
            report=report,
        )
        assert mr.subject.reference == Primitive("string", "Group/1")
        assert report.diagnostics[0].condition == "ReferenceMismatch"
        assert report.diagnostics[0].path == "subject"


class TestDataAbsentReason:

    def _raw(self):
        raw = _medication_request()
        del raw["authoredOn"]
        raw["_authoredOn"] = {
            "extension": [{
                "url": "http://hl7.org/fhir/StructureDefinition/data-absent-reason",
                "valueCode": "unknown",
            }],
        }
        return raw

    def test_captured(self):
        mr = deserialize(self._raw(), config=_config())
        assert mr.data_absent_reasons == {"authoredOn": "unknown"}
        assert "_authoredOn" not in mr.passthrough

    def test_emitted(self):
        out = serialize(deserialize(self._raw(), config=_config()))
        assert out["_authoredOn"] == self._raw()["_authoredOn"]

    def test_other_extensions_pass_through(self):
        raw = self._raw()
        other = {"url": "http://example.org/ext", "valueString": "x"}
        raw["_authoredOn"]["extension"].insert(0, other)
        raw["_authoredOn"]["id"] = "ao"
        mr = deserialize(raw, config=_config())
        assert mr.data_absent_reasons == {"authoredOn": "unknown"}
        assert mr.passthrough["_authoredOn"] == {"id": "ao", "extension": [other]}
        assert deserialize(serialize(mr), config=_config()) == mr


class TestInvalidInput:

    @pytest.mark.parametrize("raw", [None, "MedicationRequest", ["a"], 5])
    def test_non_mapping(self, raw):
        with pytest.raises(InvalidInput):
            deserialize(raw, config=_config())

    def test_invalid_input_is_type_error(self):
        with pytest.raises(TypeError):
            deserialize([], config=_config())

    def test_wrong_resource_type(self):
        with pytest.raises(InvalidInput, match="Patient"):
            deserialize({"resourceType": "Patient"}, config=_config())

    def test_serialize_wrong_type(self):
        with pytest.raises(InvalidInput):
            serialize({"resourceType": "MedicationRequest"})


class TestSerialize:

    def test_resource_type_first(self):
        out = serialize(deserialize(_medication_request(), config=_config()))
        assert next(iter(out)) == "resourceType"
        assert out["resourceType"] == "MedicationRequest"

    def test_json_ready(self):
        out = serialize(deserialize(_medication_request(), config=_config()))
        assert json.loads(json.dumps(out)) == out

    def test_absent_elements_omitted(self):
        out = serialize(MedicationRequest())
        assert out == {"resourceType": "MedicationRequest"}

    def test_choice_key_restored(self):
        out = serialize(deserialize(_medication_request(), config=_config()))
        assert "medicationCodeableConcept" in out
        assert "medicationReference" not in out

    def test_modeled_content_reproduced(self):
        raw = _medication_request()
        out = serialize(deserialize(raw, config=_config()))
        for key in ("id", "meta", "status", "intent", "priority", "identifier",
                    "authoredOn", "reasonCode", "note", "dosageInstruction"):
            assert out[key] == raw[key]

    def test_coding_gains_empty_system_and_display(self):
        raw = _medication_request(courseOfTherapyType={"coding": [{"code": "acute"}]})
        out = serialize(deserialize(raw, config=_config()))
        assert out["courseOfTherapyType"] == {
            "coding": [{"system": "", "code": "acute", "display": ""}],
        }

    def test_round_trip(self):
        mr = deserialize(_medication_request(), config=_config())
        assert deserialize(serialize(mr), config=_config()) == mr


class TestEntryPoints:

    def test_from_fhir(self):
        mr, report = from_fhir(_medication_request(), config=_config())
        assert isinstance(mr, MedicationRequest)
        assert report.success
        assert report.fields_converted == 9
        assert report.warnings == []

    def test_from_fhir_warnings(self):
        _, report = from_fhir(_medication_request(authoredOn="bad"), config=_config())
        assert report.warnings == ["authoredOn: 'bad' is not a valid FHIR dateTime"]

    def test_to_fhir(self):
        mr, _ = from_fhir(_medication_request(), config=_config())
        out, report = to_fhir(mr)
        assert out["resourceType"] == "MedicationRequest"
        assert report.success
        assert report.fields_converted == 9

    def test_unsupported_version(self):
        with pytest.raises(InvalidInput, match="R5"):
            from_fhir(_medication_request(), fhir_version="R5", config=_config())
        with pytest.raises(InvalidInput):
            to_fhir(MedicationRequest(), fhir_version="STU3")


class TestLogging:

    def test_diagnostics_logged_after_assembly(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="fhir_transcode.r4._assembler"):
            deserialize(_medication_request(authoredOn="bad"), config=_config())
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "authoredOn" in warnings[0].getMessage()
        assert any("Deserialized MedicationRequest" in r.getMessage() for r in caplog.records)

    def test_clean_resource_logs_no_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="fhir_transcode.r4._assembler"):
            deserialize(_medication_request(), config=_config())
        assert caplog.records == []
