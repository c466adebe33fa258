import struct

import pytest

from IHE_Manifest_QA.utils.errors import ManifestParseError
from IHE_Manifest_QA.validation.container import (
    check_container,
    check_file_meta,
    parse_dataset,
)
from IHE_Manifest_QA.validation.report import Severity
from tests.validation._manifest_builders import ImplicitVRLittleEndian, build_kos, to_part10


def test_well_formed_file_passes_precheck():
    report = check_container(to_part10(build_kos()))
    assert report.is_valid
    assert any(message.text == "preamble is all zeros" for message in report.infos)


def test_short_file_is_rejected():
    report = check_container(b"\x00" * 64)
    assert [message.severity for message in report] == [Severity.ERROR]
    assert "too small" in report.errors[0].text


def test_missing_prefix_is_rejected():
    raw = bytearray(to_part10(build_kos()))
    raw[128:132] = b"XXXX"
    report = check_container(bytes(raw))
    assert len(report.errors) == 1
    assert "DICM" in report.errors[0].text


def test_inconsistent_group_length_is_rejected():
    raw = bytearray(to_part10(build_kos()))
    (length,) = struct.unpack("<I", raw[140:144])
    raw[140:144] = struct.pack("<I", length + 6)
    report = check_container(bytes(raw))
    assert not report.is_valid
    assert report.errors[0].path == "FileMetaInformationGroupLength"


def test_non_zero_preamble_is_reported_as_info():
    raw = bytearray(to_part10(build_kos()))
    raw[0:4] = b"TIFF"
    report = check_container(bytes(raw))
    assert report.is_valid
    assert any("non-zero" in message.text for message in report.infos)


def test_parse_dataset_round_trip():
    ds = parse_dataset(to_part10(build_kos()))
    assert ds.SOPClassUID == "1.2.840.10008.5.1.4.1.1.88.59"


def test_parse_dataset_wraps_failures():
    with pytest.raises(ManifestParseError):
        parse_dataset(b"not a dicom file")


def test_file_meta_mismatch_is_error():
    ds = parse_dataset(to_part10(build_kos()))
    ds.file_meta.MediaStorageSOPClassUID = "1.2.840.10008.5.1.4.1.1.88.11"
    report = check_file_meta(ds)
    assert len(report.errors) == 1
    assert report.errors[0].path == "MediaStorageSOPClassUID"


def test_explicit_little_endian_is_info():
    report = check_file_meta(parse_dataset(to_part10(build_kos())))
    assert report.is_valid
    assert [message.severity for message in report] == [Severity.INFO]


def test_implicit_little_endian_is_warning():
    ds = parse_dataset(to_part10(build_kos(), transfer_syntax=ImplicitVRLittleEndian))
    report = check_file_meta(ds)
    assert report.is_valid
    assert [message.severity for message in report] == [Severity.WARNING]


def _with_unknown_vr():
    raw = to_part10(build_kos())
    # (0008,0016) SOPClassUID re-labelled with a VR pydicom cannot convert
    return raw.replace(b"\x08\x00\x16\x00UI", b"\x08\x00\x16\x00UE", 1)


def test_parse_dataset_decodes_every_value():
    with pytest.raises(ManifestParseError) as excinfo:
        parse_dataset(_with_unknown_vr())
    assert "UE" in excinfo.value.detail


def _with_transfer_syntax(uid: bytes) -> bytes:
    raw = to_part10(build_kos())
    original = b"1.2.840.10008.1.2.1\x00"
    assert len(uid) == len(original)
    return raw.replace(original, uid, 1)


def test_private_transfer_syntax_is_reported_as_non_standard():
    ds = parse_dataset(_with_transfer_syntax(b"1.2.826.0.1.3680043\x00"))
    report = check_file_meta(ds)
    assert report.is_valid
    assert [message.path for message in report.warnings] == ["TransferSyntaxUID"]
    assert "non-standard transfer syntax 1.2.826.0.1.3680043" in report.warnings[0].text
