"""Read-only helpers for navigating pydicom attribute trees."""

from __future__ import annotations

from collections.abc import Iterator

from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.sequence import Sequence

from .catalog import ConceptCode


def join_path(parent: str, keyword: str, index: int | None = None) -> str:
    """Build ``parent.keyword[index]``; the dataset root is the empty path."""
    segment = keyword if index is None else f"{keyword}[{index}]"
    return f"{parent}.{segment}" if parent else segment


def element_name(element: DataElement) -> str:
    if element.keyword:
        return element.keyword
    return f"({element.tag.group:04X},{element.tag.element:04X})"


def text(node: Dataset, keyword: str) -> str | None:
    """Return a stripped string attribute, ``None`` when absent or empty."""
    value = node.get(keyword)
    if value is None:
        return None
    rendered = str(value).strip().rstrip("\x00").strip()
    return rendered or None


def first_item(node: Dataset, keyword: str) -> Dataset | None:
    sequence = node.get(keyword)
    if isinstance(sequence, Sequence) and len(sequence) > 0:
        return sequence[0]
    return None


def concept_of(node: Dataset) -> ConceptCode | None:
    """The concept name of a content item, or ``None`` when it carries none."""
    item = first_item(node, "ConceptNameCodeSequence")
    if item is None:
        return None
    value = text(item, "CodeValue") or text(item, "LongCodeValue") or text(item, "URNCodeValue")
    scheme = text(item, "CodingSchemeDesignator")
    if value is None or scheme is None:
        return None
    return ConceptCode(value=value, scheme=scheme, meaning=text(item, "CodeMeaning") or "")


def children(node: Dataset) -> list[Dataset]:
    sequence = node.get("ContentSequence")
    if isinstance(sequence, Sequence):
        return list(sequence)
    return []


def iter_sequences(
    node: Dataset, path: str = ""
) -> Iterator[tuple[str, DataElement, Dataset, str]]:
    """Yield ``(parent_path, element, parent, element_path)`` for every SQ element.

    Each dataset is entered at most once, so a tree whose items are shared or
    self-referencing still terminates.
    """
    visited: set[int] = set()
    stack: list[tuple[Dataset, str]] = [(node, path)]
    while stack:
        current, current_path = stack.pop()
        if id(current) in visited:
            continue
        visited.add(id(current))
        pending: list[tuple[Dataset, str]] = []
        for element in current:
            if element.VR != "SQ":
                continue
            element_path = join_path(current_path, element_name(element))
            yield current_path, element, current, element_path
            for index, item in enumerate(element.value or ()):
                pending.append((item, f"{element_path}[{index}]"))
        stack.extend(reversed(pending))


def iter_datasets(node: Dataset, path: str = "") -> Iterator[tuple[Dataset, str]]:
    """Yield every dataset of the tree (root first) together with its path."""
    yield node, path
    seen: set[int] = {id(node)}
    for _, element, _, element_path in iter_sequences(node, path):
        for index, item in enumerate(element.value or ()):
            if id(item) in seen:
                continue
            seen.add(id(item))
            yield item, f"{element_path}[{index}]"


__all__ = [
    "children",
    "concept_of",
    "element_name",
    "first_item",
    "iter_datasets",
    "iter_sequences",
    "join_path",
    "text",
]
