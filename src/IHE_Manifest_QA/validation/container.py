"""Part 10 container pre-check, dataset parsing and file meta checks.

The pre-check works on raw bytes so that a truncated or foreign file is
reported without handing it to the parser.

Layout checked:
    bytes 0-127    preamble (any content; all zeros is conventional)
    bytes 128-131  ``DICM`` prefix
    bytes 132-     group 0002 in explicit VR little endian, opened by
                   (0002,0000) UL holding the byte length of the rest of
                   the group
"""

from __future__ import annotations

import struct
from io import BytesIO

import pydicom
from pydicom.dataset import Dataset
from pydicom.errors import BytesLengthException, InvalidDicomError
from pydicom.uid import UID, ExplicitVRBigEndian, ExplicitVRLittleEndian, ImplicitVRLittleEndian

from IHE_Manifest_QA.utils.errors import ManifestParseError

from .report import Report
from .tree import iter_datasets, text

PREAMBLE_LENGTH = 128
PREFIX = b"DICM"
META_START = PREAMBLE_LENGTH + len(PREFIX)
META_GROUP = 0x0002

# VRs whose explicit encoding has two reserved bytes and a 4-byte length.
_LONG_VRS = frozenset(
    {b"OB", b"OD", b"OF", b"OL", b"OV", b"OW", b"SQ", b"SV", b"UC", b"UN", b"UR", b"UT", b"UV"}
)

SOURCE = "container"

# Failures pydicom raises while reading or lazily converting element values.
_DECODE_ERRORS = (
    InvalidDicomError,
    BytesLengthException,
    EOFError,
    OSError,
    LookupError,
    ValueError,
    TypeError,
    AttributeError,
    OverflowError,
    NotImplementedError,
    struct.error,
)

__all__ = [
    "META_START",
    "PREAMBLE_LENGTH",
    "check_container",
    "check_file_meta",
    "decode_dataset",
    "parse_dataset",
]


def check_container(raw: bytes) -> Report:
    """Verify the Part 10 envelope: size, prefix and file meta group length."""
    report = Report()
    if len(raw) < META_START:
        report.add_error(
            f"file too small for a DICOM Part 10 container ({len(raw)} bytes); "
            f"need at least {META_START} bytes for preamble and prefix",
            "",
            SOURCE,
        )
        return report

    if raw[PREAMBLE_LENGTH:META_START] != PREFIX:
        report.add_error(
            "missing DICM prefix at byte offset 128; not a DICOM Part 10 file",
            "",
            SOURCE,
        )
        return report

    if raw[:PREAMBLE_LENGTH].count(0) == PREAMBLE_LENGTH:
        report.add_info("preamble is all zeros", "", SOURCE)
    else:
        report.add_info("preamble contains non-zero bytes (application specific use)", "", SOURCE)

    return report.merge(_check_meta_group(raw))


def _check_meta_group(raw: bytes) -> Report:
    report = Report()
    header = raw[META_START : META_START + 12]
    if len(header) < 12:
        report.add_error("file meta information is truncated", "FileMetaInformationGroupLength", SOURCE)
        return report

    group, element, vr, length = struct.unpack("<HH2sH", header[:8])
    if (group, element) != (META_GROUP, 0x0000) or vr != b"UL" or length != 4:
        report.add_error(
            "file meta information must start with (0002,0000) UL group length "
            "in explicit VR little endian",
            "FileMetaInformationGroupLength",
            SOURCE,
        )
        return report

    (group_length,) = struct.unpack("<I", header[8:12])
    start = META_START + 12
    end = start + group_length
    if end > len(raw):
        report.add_error(
            f"file meta group length {group_length} exceeds the file size",
            "FileMetaInformationGroupLength",
            SOURCE,
        )
        return report

    offset = start
    seen: set[int] = set()
    while offset < end:
        if offset + 8 > len(raw):
            break
        group, element, vr = struct.unpack("<HH2s", raw[offset : offset + 6])
        if group != META_GROUP:
            break
        if vr in _LONG_VRS:
            if offset + 12 > len(raw):
                break
            (value_length,) = struct.unpack("<I", raw[offset + 8 : offset + 12])
            offset += 12 + value_length
        else:
            (value_length,) = struct.unpack("<H", raw[offset + 6 : offset + 8])
            offset += 8 + value_length
        seen.add(element)

    if offset != end:
        report.add_error(
            f"file meta group length {group_length} is inconsistent with the encoded "
            f"group 0002 elements ({offset - start} bytes)",
            "FileMetaInformationGroupLength",
            SOURCE,
        )
        return report

    if end + 2 <= len(raw):
        (next_group,) = struct.unpack("<H", raw[end : end + 2])
        if next_group == META_GROUP:
            report.add_error(
                "group 0002 elements continue past the declared group length",
                "FileMetaInformationGroupLength",
                SOURCE,
            )
            return report

    if 0x0010 not in seen:
        report.add_error("file meta information has no TransferSyntaxUID", "TransferSyntaxUID", SOURCE)
    return report


def parse_dataset(raw: bytes) -> Dataset:
    """Decode Part 10 bytes into a dataset; raises :class:`ManifestParseError`.

    pydicom converts element values on first access, so the whole tree is
    decoded here and later checks never meet an undecodable value.
    """
    try:
        dataset = pydicom.dcmread(BytesIO(raw))
    except _DECODE_ERRORS as exc:
        raise ManifestParseError("Unable to parse DICOM dataset", detail=str(exc)) from exc
    return decode_dataset(dataset)


def decode_dataset(dataset: Dataset) -> Dataset:
    """Convert every element of ``dataset`` (file meta included) up front."""
    try:
        meta = getattr(dataset, "file_meta", None)
        for _ in meta or ():
            pass
        for node, _ in iter_datasets(dataset):
            for element in node:
                if element.VR == "PN":
                    str(element.value)
    except _DECODE_ERRORS as exc:
        raise ManifestParseError(
            "Unable to decode DICOM dataset", detail=f"{type(exc).__name__}: {exc}"
        ) from exc
    return dataset


def check_file_meta(dataset: Dataset) -> Report:
    """Cross-check file meta against the dataset and advise on the transfer syntax."""
    report = Report()
    meta = getattr(dataset, "file_meta", None)
    if meta is None or len(meta) == 0:
        report.add_warning("no file meta information available", "", SOURCE)
        return report

    pairs = (
        ("MediaStorageSOPClassUID", "SOPClassUID"),
        ("MediaStorageSOPInstanceUID", "SOPInstanceUID"),
    )
    for meta_keyword, keyword in pairs:
        meta_value = text(meta, meta_keyword)
        value = text(dataset, keyword)
        if meta_value and value and meta_value != value:
            report.add_error(
                f"{meta_keyword} ({meta_value}) does not match {keyword} ({value})",
                meta_keyword,
                SOURCE,
            )

    syntax = meta.get("TransferSyntaxUID")
    if not syntax:
        return report
    syntax = UID(str(syntax).strip().rstrip("\x00"))
    if syntax == ExplicitVRLittleEndian:
        report.add_info("transfer syntax is Explicit VR Little Endian", "TransferSyntaxUID", SOURCE)
    elif syntax == ImplicitVRLittleEndian:
        report.add_warning(
            "transfer syntax is Implicit VR Little Endian; Explicit VR Little Endian "
            "is preferred for manifest exchange",
            "TransferSyntaxUID",
            SOURCE,
        )
    elif syntax == ExplicitVRBigEndian:
        report.add_warning(
            "transfer syntax is Explicit VR Big Endian (retired)",
            "TransferSyntaxUID",
            SOURCE,
        )
    elif syntax.is_private or not syntax.is_transfer_syntax:
        report.add_warning(
            f"non-standard transfer syntax {syntax}; readers may not decode this manifest",
            "TransferSyntaxUID",
            SOURCE,
        )
    elif syntax.is_compressed:
        report.add_warning(
            f"manifest uses a compressed transfer syntax ({syntax.name}); "
            "uncompressed encoding is expected for manifests",
            "TransferSyntaxUID",
            SOURCE,
        )
    return report
