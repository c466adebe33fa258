"""Template-independent structural scans.

Both scans cover the whole attribute tree, including content the template
walker never enters, and visit every dataset at most once.
"""

from __future__ import annotations

from collections import Counter

from pydicom.dataset import Dataset

from .report import Report
from .tree import iter_datasets, iter_sequences

SOURCE = "structure"

__all__ = ["check_empty_sequences", "check_private_attributes"]


def check_empty_sequences(dataset: Dataset) -> Report:
    """Flag every sequence attribute that is present with zero items."""
    report = Report()
    for _, element, _, element_path in iter_sequences(dataset):
        if element.value is None or len(element.value) == 0:
            report.add_error(
                f"{element.name} is present but has zero length; "
                "must contain at least one item when present",
                element_path,
                SOURCE,
            )
    return report


def check_private_attributes(dataset: Dataset) -> Report:
    """Summarise private attribute usage per odd group across the whole tree.

    A private creator (gggg,00xx) owns the block (gggg,xx00)-(gggg,xxFF) of
    the dataset it appears in, and nowhere else. A group with a data element
    lacking such an owner is reported as an error; otherwise the group is
    reported once as a warning with its data element count.
    """
    report = Report()
    data_elements: Counter[int] = Counter()
    orphans: Counter[int] = Counter()
    first_seen: dict[int, str] = {}
    first_orphan: dict[int, tuple[str, int]] = {}

    for node, path in iter_datasets(dataset):
        creators = {
            (tag.group, tag.element)
            for tag in node.keys()
            if tag.is_private and 0x0010 <= tag.element <= 0x00FF
        }
        for element in node:
            tag = element.tag
            if not tag.is_private:
                continue
            group = tag.group
            first_seen.setdefault(group, path)
            if 0x0010 <= tag.element <= 0x00FF:
                continue
            data_elements[group] += 1
            block = tag.element >> 8
            if (group, block) not in creators:
                orphans[group] += 1
                first_orphan.setdefault(group, (path, block))

    if not first_seen:
        report.add_info("no private attributes found; clean for sharing", "", SOURCE)
        return report

    for group in sorted(first_seen):
        if orphans[group]:
            path, block = first_orphan[group]
            report.add_error(
                f"private group {group:04X} has {orphans[group]} element(s) but no owning creator "
                f"entry ({group:04X},{block:04X}); structure may be corrupt",
                path,
                SOURCE,
            )
        else:
            report.add_warning(
                f"private attributes found in group {group:04X} ({data_elements[group]} elements); "
                "ideally absent for broad interoperability",
                first_seen[group],
                SOURCE,
            )
    return report
