import random
import struct

from pydicom.dataset import Dataset
from pydicom.sequence import Sequence

from IHE_Manifest_QA.validation.orchestrator import ManifestValidator
from IHE_Manifest_QA.validation.report import Report, Severity
from tests.validation._manifest_builders import (
    CT_SOP_CLASS,
    KOS_SOP_CLASS,
    build_kos,
    build_mado,
    template_identification,
    to_part10,
)


def test_valid_xdsi_manifest_bytes(validator):
    report = validator.validate_bytes(to_part10(build_kos()), "IHEXDSIManifest")
    assert report.is_valid, [str(message) for message in report.errors]
    assert report.warnings == []


def test_valid_mado_manifest_dataset(validator, mado_dataset):
    report = validator.validate_dataset(mado_dataset, "IHEMADO")
    assert report.is_valid, [str(message) for message in report.errors]
    assert report.warnings == []


def test_validation_is_idempotent(validator, mado_dataset):
    first = validator.validate_dataset(mado_dataset, "IHEMADO")
    second = validator.validate_dataset(mado_dataset, "IHEMADO")
    assert first == second


def test_precheck_failure_short_circuits(validator):
    report = validator.validate_bytes(b"\x00" * 10)
    assert len(report) == 1
    assert report.errors[0].source == "container"


def test_transfer_syntax_as_content_type_is_reported(validator, kos_dataset):
    kos_dataset.SOPClassUID = "1.2.840.10008.1.2.1"
    report = validator.validate_dataset(kos_dataset)
    assert not report.is_valid
    texts = [message.text for message in report.errors]
    assert any("transport-syntax identifier" in text for text in texts)
    assert texts[-1] == "no validator found for content-type identifier: 1.2.840.10008.1.2.1"


def test_unknown_profile_falls_back_with_warning(validator, kos_dataset):
    report = validator.validate_dataset(kos_dataset, "IHEWHATEVER")
    assert report.is_valid
    assert report.warnings[0].text.startswith("Unknown profile requested: IHEWHATEVER")


def test_mapping_resource_mismatch_invalidates(validator, kos_dataset):
    kos_dataset.ContentTemplateSequence = template_identification("OTHER", "2010")
    report = validator.validate_dataset(kos_dataset)
    assert [message.text for message in report.errors] == [
        "template identifier 2010 found but mapping resource mismatch; expected 'DCMR', found 'OTHER'"
    ]


def test_missing_identification_is_error_only_for_strict_profiles(validator, kos_dataset):
    del kos_dataset.ContentTemplateSequence
    assert validator.validate_dataset(kos_dataset).is_valid
    assert not validator.validate_dataset(kos_dataset, "IHEXDSIManifest").is_valid


def test_xdsi_manifest_fails_mado_profile(validator, kos_dataset):
    report = validator.validate_dataset(kos_dataset, "IHEMADO")
    texts = [message.text for message in report.errors]
    assert "required content item missing: Image Library (111028)" in texts


def test_stage_failures_become_errors(validator, kos_dataset, monkeypatch):
    def explode(dataset):
        raise RuntimeError("boom")

    monkeypatch.setattr(
        "IHE_Manifest_QA.validation.orchestrator.check_private_attributes", explode
    )
    report = validator.validate_dataset(kos_dataset)
    failures = [message for message in report.errors if message.source == "private_attributes"]
    assert len(failures) == 1
    assert "boom" in failures[0].text
    assert any(message.source == "document" for message in report)


def test_empty_content_sequence_is_reported(validator, kos_dataset):
    kos_dataset.ContentSequence = Sequence()
    report = validator.validate_dataset(kos_dataset)
    structural = [message for message in report.errors if message.source == "structure"]
    assert [message.path for message in structural] == ["ContentSequence"]


def test_private_group_scenarios(validator, kos_dataset):
    kos_dataset.add_new(0x00091001, "LO", "a")
    kos_dataset.add_new(0x00091002, "LO", "b")
    kos_dataset.add_new(0x00091003, "LO", "c")
    kos_dataset.add_new(0x00110010, "LO", "ACME")
    kos_dataset.add_new(0x00111001, "LO", "x")
    kos_dataset.add_new(0x00111002, "LO", "y")
    report = validator.validate_dataset(kos_dataset)
    private = [message for message in report if message.source == "structure"]
    assert [message.severity for message in private] == [Severity.ERROR, Severity.WARNING]


def test_missing_file_is_error(validator, tmp_path):
    report = validator.validate_file(tmp_path / "absent.dcm")
    assert not report.is_valid
    assert "unable to read" in report.errors[0].text


def test_validate_files_keeps_input_order(validator, tmp_path):
    good = tmp_path / "good.dcm"
    good.write_bytes(to_part10(build_mado()))
    bad = tmp_path / "bad.dcm"
    bad.write_bytes(b"junk")
    results = validator.validate_files([bad, good], "IHEMADO", max_workers=2)
    assert [path.name for path, _ in results] == ["bad.dcm", "good.dcm"]
    assert [report.is_valid for _, report in results] == [False, True]


def test_dataset_without_sop_class_has_no_validator(validator):
    report = ManifestValidator(validator.catalog).validate_dataset(Dataset())
    assert [message.text for message in report.errors] == [
        "no validator found for content-type identifier: <missing>"
    ]


def test_undecodable_value_is_single_parse_error(validator):
    raw = to_part10(build_kos()).replace(b"\x08\x00\x16\x00UI", b"\x08\x00\x16\x00UE", 1)
    report = validator.validate_bytes(raw, "IHEXDSIManifest")
    assert len(report.errors) == 1
    assert report.errors[0].source == "orchestrator"
    assert report.errors[0].text.startswith("Unable to ")
    assert "(0008,0016)" in report.errors[0].text
    assert not any(message.text.startswith("check '") for message in report)


def test_corrupted_body_never_escapes(validator):
    original = to_part10(build_kos())
    (group_length,) = struct.unpack("<I", original[140:144])
    body_start = 144 + group_length
    rng = random.Random(20240101)
    for _ in range(200):
        raw = bytearray(original)
        for _ in range(rng.randint(1, 4)):
            raw[rng.randrange(body_start, len(raw))] = rng.randrange(256)
        report = validator.validate_bytes(bytes(raw), "IHEXDSIManifest")
        assert isinstance(report, Report)


def test_private_transfer_syntax_still_validates(validator):
    raw = to_part10(build_kos()).replace(b"1.2.840.10008.1.2.1\x00", b"1.2.826.0.1.3680043\x00", 1)
    report = validator.validate_bytes(raw, "IHEXDSIManifest")
    assert report.is_valid, [str(message) for message in report.errors]
    assert [message.text for message in report.warnings] == [
        "non-standard transfer syntax 1.2.826.0.1.3680043; readers may not decode this manifest"
    ]


def test_declared_content_type_is_classified(validator, kos_dataset):
    del kos_dataset.SOPClassUID
    report = validator.validate_dataset(kos_dataset, content_type=KOS_SOP_CLASS)
    classified = [message for message in report if message.source == "content_type"]
    assert [message.text for message in classified] == [
        "SOPClassUID references known content type: Key Object Selection Document Storage"
    ]
    assert classified[0].severity is Severity.INFO


def test_declared_content_type_differing_from_stored_warns(validator, kos_dataset):
    kos_dataset.SOPClassUID = CT_SOP_CLASS
    report = validator.validate_dataset(kos_dataset, content_type=KOS_SOP_CLASS)
    assert (
        f"declared content type {KOS_SOP_CLASS} differs from SOPClassUID {CT_SOP_CLASS}"
        in [message.text for message in report.warnings]
    )
