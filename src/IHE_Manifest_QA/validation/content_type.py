"""Content-type (SOP Class) identifier sanity checks.

A content-type identifier is classified against the rule catalog in a fixed
order and produces exactly one message:

1. a transfer syntax identifier placed where a SOP Class belongs (ERROR),
2. an identifier that is legal but implausible in a manifest (WARNING),
3. a recognised SOP Class (INFO),
4. anything else (WARNING).
"""

from __future__ import annotations

from enum import Enum

from pydicom.dataset import Dataset

from .catalog import RuleCatalog
from .report import Report
from .tree import children, join_path, text

SOURCE = "content_type"


class ContentTypeClass(str, Enum):
    MISCATEGORIZED = "miscategorized"
    SUSPICIOUS = "suspicious"
    KNOWN = "known"
    UNKNOWN = "unknown"


class ContentTypeChecker:
    """Classifies SOP Class identifiers found in a manifest."""

    def __init__(self, catalog: RuleCatalog) -> None:
        self._catalog = catalog

    def classify(self, uid: str) -> ContentTypeClass:
        if uid in self._catalog.known_transport_syntax_ids():
            return ContentTypeClass.MISCATEGORIZED
        if uid in self._catalog.suspicious_content_types():
            return ContentTypeClass.SUSPICIOUS
        if uid in self._catalog.known_content_types():
            return ContentTypeClass.KNOWN
        return ContentTypeClass.UNKNOWN

    def check(self, uid: str | None, path: str = "", attribute: str = "SOPClassUID") -> Report:
        report = Report()
        if not uid:
            return report
        uid = uid.strip().rstrip("\x00")
        kind = self.classify(uid)
        if kind is ContentTypeClass.MISCATEGORIZED:
            name = self._catalog.transport_syntax_name(uid)
            report.add_error(
                f"{attribute} {uid} contains a transport-syntax identifier ({name}) instead of "
                "a content-type identifier; likely copy-paste error",
                path,
                SOURCE,
            )
        elif kind is ContentTypeClass.SUSPICIOUS:
            name = self._catalog.suspicious_content_types()[uid]
            report.add_warning(
                f"{attribute} {uid} ({name}) is unusual in this document type; "
                "might indicate a copy-paste error",
                path,
                SOURCE,
            )
        elif kind is ContentTypeClass.KNOWN:
            name = self._catalog.known_content_types()[uid]
            report.add_info(f"{attribute} references known content type: {name}", path, SOURCE)
        else:
            report.add_warning(
                f"{attribute} {uid} references unknown or non-standard content-type "
                "identifier; verify this is valid",
                path,
                SOURCE,
            )
        return report

    def check_document(self, dataset: Dataset) -> Report:
        return self.check(text(dataset, "SOPClassUID"), "SOPClassUID")

    def check_references(self, dataset: Dataset) -> Report:
        """Classify every referenced SOP Class in the evidence and the content tree."""
        report = Report()
        for path, reference in iter_evidence_references(dataset):
            report = report.merge(
                self.check(
                    text(reference, "ReferencedSOPClassUID"),
                    join_path(path, "ReferencedSOPClassUID"),
                    "ReferencedSOPClassUID",
                )
            )
        for path, reference in iter_content_references(dataset):
            report = report.merge(
                self.check(
                    text(reference, "ReferencedSOPClassUID"),
                    join_path(path, "ReferencedSOPClassUID"),
                    "ReferencedSOPClassUID",
                )
            )
        return report


def iter_evidence_references(dataset: Dataset):
    """Yield ``(path, item)`` for each referenced instance of the evidence sequence."""
    for s, study in enumerate(dataset.get("CurrentRequestedProcedureEvidenceSequence") or ()):
        study_path = f"CurrentRequestedProcedureEvidenceSequence[{s}]"
        for r, series in enumerate(study.get("ReferencedSeriesSequence") or ()):
            series_path = join_path(study_path, "ReferencedSeriesSequence", r)
            for i, item in enumerate(series.get("ReferencedSOPSequence") or ()):
                yield join_path(series_path, "ReferencedSOPSequence", i), item


def iter_content_references(dataset: Dataset):
    """Yield ``(path, item)`` for each ``ReferencedSOPSequence`` item in the content tree."""
    visited: set[int] = set()
    stack: list[tuple[Dataset, str]] = [(dataset, "")]
    while stack:
        node, path = stack.pop()
        if id(node) in visited:
            continue
        visited.add(id(node))
        for index, item in enumerate(node.get("ReferencedSOPSequence") or ()):
            if path:
                yield join_path(path, "ReferencedSOPSequence", index), item
        for index, child in reversed(list(enumerate(children(node)))):
            stack.append((child, join_path(path, "ContentSequence", index)))


__all__ = [
    "ContentTypeChecker",
    "ContentTypeClass",
    "iter_content_references",
    "iter_evidence_references",
]
