import pytest

from IHE_Manifest_QA.validation.content_type import ContentTypeChecker, ContentTypeClass
from IHE_Manifest_QA.validation.report import Severity
from tests.validation._manifest_builders import build_kos, image_reference


@pytest.mark.parametrize(
    ("uid", "expected"),
    [
        ("1.2.840.10008.1.2.1", ContentTypeClass.MISCATEGORIZED),
        ("1.2.840.10008.1.1", ContentTypeClass.SUSPICIOUS),
        ("1.2.840.10008.5.1.4.1.1.2", ContentTypeClass.KNOWN),
        ("1.2.3.4.5.6.7", ContentTypeClass.UNKNOWN),
    ],
)
def test_classification_order(catalog, uid, expected):
    assert ContentTypeChecker(catalog).classify(uid) is expected


def test_every_transfer_syntax_is_miscategorized(catalog):
    checker = ContentTypeChecker(catalog)
    for uid in catalog.known_transport_syntax_ids():
        report = checker.check(uid)
        assert len(report) == 1
        assert report.errors[0].text.startswith("SOPClassUID")
        assert "transport-syntax identifier" in report.errors[0].text


def test_unknown_identifier_yields_single_warning(catalog):
    report = ContentTypeChecker(catalog).check("1.2.3.4.5.6.7")
    assert [message.severity for message in report] == [Severity.WARNING]
    assert "unknown or non-standard" in report.warnings[0].text


def test_known_identifier_names_the_type(catalog):
    report = ContentTypeChecker(catalog).check("1.2.840.10008.5.1.4.1.1.88.59")
    assert [message.severity for message in report] == [Severity.INFO]
    assert report.infos[0].text.endswith("Key Object Selection Document Storage")


def test_missing_identifier_yields_nothing(catalog):
    assert len(ContentTypeChecker(catalog).check(None)) == 0


def test_referenced_transfer_syntax_in_content_tree_is_flagged(catalog):
    ds = build_kos()
    ds.ContentSequence.append(image_reference("1.2.3.4.2", sop_class_uid="1.2.840.10008.1.2"))
    report = ContentTypeChecker(catalog).check_references(ds)
    assert len(report.errors) == 1
    error = report.errors[0]
    assert error.path == "ContentSequence[1].ReferencedSOPSequence[0].ReferencedSOPClassUID"


def test_evidence_references_are_classified(catalog):
    report = ContentTypeChecker(catalog).check_references(build_kos())
    paths = [message.path for message in report]
    assert (
        "CurrentRequestedProcedureEvidenceSequence[0].ReferencedSeriesSequence[0]"
        ".ReferencedSOPSequence[0].ReferencedSOPClassUID"
    ) in paths
    assert report.is_valid
