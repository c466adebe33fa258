from pydicom.sequence import Sequence

from IHE_Manifest_QA.validation.document import check_evidence_consistency, check_root_container
from IHE_Manifest_QA.validation.selector import ValidatorSelector
from tests.validation._manifest_builders import (
    KOS_SOP_CLASS,
    build_kos,
    build_mado,
    code_item,
    evidence,
    image_reference,
)


def _plan(catalog, profile=None):
    return ValidatorSelector(catalog).select(KOS_SOP_CLASS, profile)


def test_manifest_title_accepted_for_xdsi(catalog):
    report = check_root_container(build_kos(), _plan(catalog, "IHEXDSIManifest"))
    assert report.errors == []


def test_rejection_note_title_is_error(catalog):
    ds = build_kos(title=("113001", "DCM", "Rejected for Quality Reasons"))
    report = check_root_container(ds, _plan(catalog))
    assert len(report.errors) == 1
    assert "rejection note" in report.errors[0].text


def test_mado_requires_manifest_title(catalog):
    ds = build_mado(title=("113000", "DCM", "Of Interest"))
    report = check_root_container(ds, _plan(catalog, "IHEMADO"))
    assert len(report.errors) == 1
    assert "not permitted for profile IHEMADO" in report.errors[0].text


def test_continuity_must_be_separate(catalog):
    ds = build_kos()
    ds.ContinuityOfContent = "CONTINUOUS"
    report = check_root_container(ds, _plan(catalog))
    assert [message.path for message in report.errors] == ["ContinuityOfContent"]


def test_missing_title_is_error(catalog):
    ds = build_kos()
    del ds.ConceptNameCodeSequence
    report = check_root_container(ds, _plan(catalog))
    assert [message.path for message in report.errors] == ["ConceptNameCodeSequence"]


def test_consistent_evidence_has_no_findings():
    report = check_evidence_consistency(build_mado())
    assert report.errors == []
    assert report.warnings == []


def test_orphan_reference_is_error():
    ds = build_kos()
    ds.ContentSequence.append(image_reference("1.2.3.4.5.404"))
    report = check_evidence_consistency(ds)
    assert len(report.errors) == 1
    assert "1.2.3.4.5.404" in report.errors[0].text
    assert report.errors[0].path == "ContentSequence[1].ReferencedSOPSequence[0]"


def test_unreferenced_evidence_is_warning():
    ds = build_kos()
    ds.CurrentRequestedProcedureEvidenceSequence = evidence(
        ["1.2.826.0.1.3680043.8.498.1.1.1", "1.2.826.0.1.3680043.8.498.1.1.2"]
    )
    report = check_evidence_consistency(ds)
    assert report.errors == []
    assert len(report.warnings) == 1


def test_missing_evidence_sequence_is_error():
    ds = build_kos()
    del ds.CurrentRequestedProcedureEvidenceSequence
    report = check_evidence_consistency(ds)
    assert report.errors
    assert report.errors[0].path == "CurrentRequestedProcedureEvidenceSequence"


def test_title_matching_ignores_code_meaning(catalog):
    ds = build_mado()
    ds.ConceptNameCodeSequence = Sequence([code_item("113030", "DCM", "KOS Manifest")])
    assert check_root_container(ds, _plan(catalog, "IHEMADO")).errors == []
