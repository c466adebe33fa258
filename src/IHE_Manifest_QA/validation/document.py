"""Document-level module checks for Key Object Selection manifests.

These checks cover the root content item (value type, continuity, document
title) and the consistency between the content tree references and the
``CurrentRequestedProcedureEvidenceSequence``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydicom.dataset import Dataset

from .content_type import iter_content_references, iter_evidence_references
from .report import Report
from .tree import concept_of, text

if TYPE_CHECKING:
    from .selector import ValidationPlan

SOURCE = "document"

__all__ = ["check_evidence_consistency", "check_root_container"]


def check_root_container(dataset: Dataset, plan: ValidationPlan) -> Report:
    """Check the root content item against the plan's title rules."""
    report = Report()

    value_type = text(dataset, "ValueType")
    if value_type != "CONTAINER":
        report.add_error(
            f"root content item must have value type CONTAINER, found '{value_type or ''}'",
            "ValueType",
            SOURCE,
        )

    continuity = text(dataset, "ContinuityOfContent")
    if continuity != "SEPARATE":
        report.add_error(
            f"ContinuityOfContent must be SEPARATE, found '{continuity or ''}'",
            "ContinuityOfContent",
            SOURCE,
        )

    title = concept_of(dataset)
    if title is None:
        report.add_error("document title (ConceptNameCodeSequence) is missing", "ConceptNameCodeSequence", SOURCE)
        return report

    if any(title.matches(code) for code in plan.forbidden_titles):
        report.add_error(
            f"document title {title} is an instance availability rejection note, "
            "not a manifest",
            "ConceptNameCodeSequence",
            SOURCE,
        )
    elif plan.allowed_titles and not any(title.matches(code) for code in plan.allowed_titles):
        expected = " or ".join(str(code) for code in plan.allowed_titles)
        report.add_error(
            f"document title {title} is not permitted for profile {plan.profile.value}; "
            f"expected {expected}",
            "ConceptNameCodeSequence",
            SOURCE,
        )
    else:
        report.add_info(f"document title: {title}", "ConceptNameCodeSequence", SOURCE)
    return report


def check_evidence_consistency(dataset: Dataset) -> Report:
    """Every referenced instance must be listed in the evidence sequence."""
    report = Report()
    path = "CurrentRequestedProcedureEvidenceSequence"

    evidence: set[str] = set()
    for _, item in iter_evidence_references(dataset):
        uid = text(item, "ReferencedSOPInstanceUID")
        if uid:
            evidence.add(uid)
    referenced: dict[str, str] = {}
    for item_path, item in iter_content_references(dataset):
        uid = text(item, "ReferencedSOPInstanceUID")
        if uid:
            referenced.setdefault(uid, item_path)

    if "CurrentRequestedProcedureEvidenceSequence" not in dataset:
        report.add_error(f"{path} is missing", path, SOURCE)

    if not referenced:
        report.add_info("content tree references no instances", "", SOURCE)
    for uid, item_path in referenced.items():
        if uid not in evidence:
            report.add_error(
                f"referenced instance {uid} is not listed in {path}",
                item_path,
                SOURCE,
            )

    unused = sorted(evidence.difference(referenced))
    if unused and referenced:
        report.add_warning(
            f"{len(unused)} instance(s) in {path} are not referenced by the content tree",
            path,
            SOURCE,
        )
    return report
