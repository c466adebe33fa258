"""Attribute-level checks that sit outside the content tree.

Key Responsibilities:
    - Key Object Document attributes: recommended attributes, enumerated
      values, verification and identical documents for multi-study manifests
    - Timezone offset format and range, mandatory for some profiles
    - MADO retrieval addressing on every evidence series
    - Value encoding: character set declaration, UID syntax and value lengths

Collaborators:
    - Upstream: :class:`IHE_Manifest_QA.validation.orchestrator.ManifestValidator`
    - Downstream: ``attribute_rules`` of :class:`RuleCatalog`, the profile
      flags carried by :class:`ValidationPlan`

Side Effects:
    - None; every check returns a new :class:`Report`
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================
import re
from collections.abc import Iterator
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from pydicom.charset import STAND_ALONE_ENCODINGS, python_encoding
from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue
from pydicom.uid import UID

from .catalog import AttributeRules
from .report import Report
from .tree import element_name, iter_datasets, join_path, text

if TYPE_CHECKING:
    from .selector import ValidationPlan

SOURCE = "attributes"

_TIMEZONE = re.compile(r"^([+-])(\d{2})(\d{2})$")
_UID_SYNTAX = re.compile(r"^[0-9]+(\.[0-9]+)*$")
_UID_MAX_LENGTH = 64
_TEXT_VRS = frozenset({"AE", "AS", "CS", "DA", "DS", "DT", "IS", "LO", "LT", "PN", "SH", "ST", "TM", "UC", "UT"})
_ESCAPE = "\x1b"
_EVIDENCE = "CurrentRequestedProcedureEvidenceSequence"

__all__ = [
    "check_document_module",
    "check_encoding",
    "check_retrieval",
    "check_timezone",
    "check_uid",
]


# ==============================================================================
# DOCUMENT MODULE
# ==============================================================================


def check_document_module(dataset: Dataset, rules: AttributeRules) -> Report:
    """Recommended attributes, enumerations, verification and identical documents."""
    report = Report()
    for keyword in rules.recommended:
        if keyword not in dataset:
            report.add_warning(f"{keyword} is missing", keyword, SOURCE)
        elif text(dataset, keyword) is None:
            report.add_warning(f"{keyword} is present but empty", keyword, SOURCE)

    for node, path in iter_datasets(dataset):
        for keyword, allowed in rules.enumerations.items():
            value = text(node, keyword)
            if value is not None and value not in allowed:
                report.add_error(
                    f"{keyword} has invalid enumerated value '{value}'; "
                    f"expected one of {', '.join(allowed)}",
                    join_path(path, keyword),
                    SOURCE,
                )

    report = report.merge(_check_verification(dataset, rules))
    return report.merge(_check_identical_documents(dataset))


def _check_verification(dataset: Dataset, rules: AttributeRules) -> Report:
    report = Report()
    if text(dataset, "VerificationFlag") != "VERIFIED":
        return report

    root_datetime = text(dataset, "VerificationDateTime")
    observers = dataset.get("VerifyingObserverSequence")
    if observers is None:
        report.add_error(
            "VerificationFlag is VERIFIED but VerifyingObserverSequence is missing",
            "VerifyingObserverSequence",
            SOURCE,
        )
        if root_datetime is None:
            report.add_error(
                "VerificationFlag is VERIFIED but VerificationDateTime is missing",
                "VerificationDateTime",
                SOURCE,
            )
        return report

    for index, observer in enumerate(observers):
        item_path = join_path("", "VerifyingObserverSequence", index)
        for keyword in rules.verifying_observer_keys:
            if keyword not in observer:
                report.add_error(
                    f"verifying observer is missing {keyword}",
                    join_path(item_path, keyword),
                    SOURCE,
                )
        if root_datetime is None and text(observer, "VerificationDateTime") is None:
            report.add_error(
                "VerificationFlag is VERIFIED but VerificationDateTime is missing",
                join_path(item_path, "VerificationDateTime"),
                SOURCE,
            )
    return report


def _check_identical_documents(dataset: Dataset) -> Report:
    report = Report()
    studies: set[str] = set()
    for study in dataset.get(_EVIDENCE) or ():
        uid = text(study, "StudyInstanceUID")
        if uid:
            studies.add(uid)

    identical = dataset.get("IdenticalDocumentsSequence")
    if len(studies) > 1:
        if identical is None:
            report.add_error(
                f"manifest references {len(studies)} studies but IdenticalDocumentsSequence "
                "is missing; a multi-study manifest must list its copies in the other studies",
                "IdenticalDocumentsSequence",
                SOURCE,
            )
            return report
        return report.merge(_check_hierarchical_reference(identical, "IdenticalDocumentsSequence"))

    if identical is not None:
        report.add_warning(
            "IdenticalDocumentsSequence is present but the manifest references a single study",
            "IdenticalDocumentsSequence",
            SOURCE,
        )
    return report


def _check_hierarchical_reference(studies, keyword: str) -> Report:
    """Study / series / instance levels each carry their identifying UIDs."""
    report = Report()
    for s, study in enumerate(studies):
        study_path = join_path("", keyword, s)
        _require(report, study, study_path, ("StudyInstanceUID",))
        series_items = study.get("ReferencedSeriesSequence")
        if series_items is None:
            _require(report, study, study_path, ("ReferencedSeriesSequence",))
            continue
        for r, series in enumerate(series_items):
            series_path = join_path(study_path, "ReferencedSeriesSequence", r)
            _require(report, series, series_path, ("SeriesInstanceUID",))
            for i, instance in enumerate(series.get("ReferencedSOPSequence") or ()):
                _require(
                    report,
                    instance,
                    join_path(series_path, "ReferencedSOPSequence", i),
                    ("ReferencedSOPClassUID", "ReferencedSOPInstanceUID"),
                )
    return report


def _require(report: Report, node: Dataset, path: str, keywords: tuple[str, ...]) -> None:
    for keyword in keywords:
        if keyword not in node:
            report.add_error(f"{keyword} is missing", join_path(path, keyword), SOURCE)


# ==============================================================================
# TIMEZONE
# ==============================================================================


def check_timezone(dataset: Dataset, plan: ValidationPlan) -> Report:
    """Validate TimezoneOffsetFromUTC (``+HHMM`` / ``-HHMM``)."""
    report = Report()
    path = "TimezoneOffsetFromUTC"
    offset = text(dataset, path)
    if offset is None:
        if plan.timezone_required:
            report.add_error(
                f"TimezoneOffsetFromUTC is mandatory for profile {plan.profile.value}",
                path,
                SOURCE,
            )
        else:
            report.add_warning(
                "TimezoneOffsetFromUTC is missing; recommended so that dates and times "
                "can be mapped to UTC",
                path,
                SOURCE,
            )
        study_date = text(dataset, "StudyDate")
        content_date = text(dataset, "ContentDate")
        if study_date and content_date and study_date != content_date:
            report.add_warning(
                f"StudyDate ({study_date}) and ContentDate ({content_date}) differ but "
                "TimezoneOffsetFromUTC is missing; dates may shift across midnight",
                path,
                SOURCE,
            )
        return report

    match = _TIMEZONE.match(offset)
    if match is None:
        report.add_error(
            f"TimezoneOffsetFromUTC has invalid format '{offset}'; expected +HHMM or -HHMM",
            path,
            SOURCE,
        )
        return report

    hours, minutes = int(match.group(2)), int(match.group(3))
    if minutes >= 60:
        report.add_error(
            f"TimezoneOffsetFromUTC has invalid minutes '{offset}'; minutes must be 00-59",
            path,
            SOURCE,
        )
    elif hours > 14 or (hours == 14 and minutes > 0):
        report.add_error(
            f"TimezoneOffsetFromUTC is out of range '{offset}'; offsets lie within -1400 to +1400",
            path,
            SOURCE,
        )
    else:
        report.add_info(f"TimezoneOffsetFromUTC: {offset}", path, SOURCE)
    return report


# ==============================================================================
# RETRIEVAL
# ==============================================================================


def check_retrieval(dataset: Dataset, plan: ValidationPlan) -> Report:
    """Every evidence series must say where it can be retrieved from.

    Only profiles with ``retrieval_required`` are checked. A series may use a
    WADO-RS ``RetrieveURL``, a ``RetrieveLocationUID`` or both.
    """
    report = Report()
    if not plan.retrieval_required:
        return report

    urls: set[str] = set()
    locations: set[str] = set()
    url_only = location_only = 0
    for s, study in enumerate(dataset.get(_EVIDENCE) or ()):
        study_path = join_path("", _EVIDENCE, s)
        for r, series in enumerate(study.get("ReferencedSeriesSequence") or ()):
            series_path = join_path(study_path, "ReferencedSeriesSequence", r)
            url = text(series, "RetrieveURL")
            location = text(series, "RetrieveLocationUID")
            if url:
                urls.add(url)
                report = report.merge(_check_retrieve_url(url, join_path(series_path, "RetrieveURL")))
            if location:
                locations.add(location)
                report = report.merge(
                    check_uid(location, join_path(series_path, "RetrieveLocationUID"), "RetrieveLocationUID")
                )
            if not url and not location:
                report.add_error(
                    "series has neither RetrieveURL nor RetrieveLocationUID; "
                    "a retrieval method is required for every series",
                    series_path,
                    SOURCE,
                )
            elif url and not location:
                url_only += 1
            elif location and not url:
                location_only += 1

    if url_only and location_only:
        report.add_warning(
            "series mix RetrieveURL and RetrieveLocationUID addressing; "
            "a community should use a single addressing mode",
            _EVIDENCE,
            SOURCE,
        )
    if urls or locations:
        report.add_info(
            f"retrieval addressing: {len(urls)} retrieve URL(s), {len(locations)} location UID(s)",
            _EVIDENCE,
            SOURCE,
        )
    return report


def _check_retrieve_url(url: str, path: str) -> Report:
    report = Report()
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError as exc:
        report.add_error(f"RetrieveURL is malformed: {url} ({exc})", path, SOURCE)
        return report

    scheme = parts.scheme.lower()
    if not scheme:
        report.add_error(f"RetrieveURL has no scheme: {url}", path, SOURCE)
        return report
    if scheme not in ("http", "https"):
        report.add_warning(
            f"RetrieveURL uses non-HTTP(S) scheme '{scheme}': {url}; expected http or https for WADO-RS",
            path,
            SOURCE,
        )
    elif scheme == "http":
        report.add_warning(f"RetrieveURL uses insecure 'http' scheme: {url}", path, SOURCE)
    if not host:
        report.add_error(f"RetrieveURL has no host: {url}", path, SOURCE)
    if "/studies" not in parts.path:
        report.add_info(f"RetrieveURL does not follow the WADO-RS pattern (/studies/...): {url}", path, SOURCE)
    return report


# ==============================================================================
# ENCODING
# ==============================================================================


def check_uid(value: str, path: str, attribute: str) -> Report:
    """UID syntax: digits in dot separated components, at most 64 characters."""
    report = Report()
    uid = value.strip().rstrip("\x00")
    if len(uid) > _UID_MAX_LENGTH:
        report.add_error(
            f"{attribute} exceeds the {_UID_MAX_LENGTH} character UID limit ({len(uid)} characters)",
            path,
            SOURCE,
        )
    if not _UID_SYNTAX.match(uid):
        report.add_error(
            f"{attribute} has invalid UID syntax '{uid}'; only digits separated by single dots are allowed",
            path,
            SOURCE,
        )
    elif len(uid) <= _UID_MAX_LENGTH and not UID(uid).is_valid:
        report.add_warning(f"{attribute} has a UID component with a leading zero: {uid}", path, SOURCE)
    return report


def check_encoding(dataset: Dataset, rules: AttributeRules) -> Report:
    """Character set declaration, UID syntax and per-VR value length limits."""
    report = _check_character_set(dataset)
    for node, path in iter_datasets(dataset):
        for element in node:
            if element.VR == "SQ":
                continue
            name = element_name(element)
            element_path = join_path(path, name)
            if element.VR == "UI":
                for value in _values(element):
                    report = report.merge(check_uid(value, element_path, name))
                continue
            limit = rules.max_value_lengths.get(element.VR)
            if limit is None:
                continue
            for value in _values(element):
                parts = value.split("=") if element.VR == "PN" else [value]
                longest = max(len(part) for part in parts)
                if longest > limit:
                    report.add_error(
                        f"{name} value exceeds the {limit} character limit of VR {element.VR} "
                        f"({longest} characters)",
                        element_path,
                        SOURCE,
                    )
    return report


def _check_character_set(dataset: Dataset) -> Report:
    report = Report()
    path = "SpecificCharacterSet"
    declared = dataset.get(path)
    terms = [term.strip() for term in _raw_values(declared)]

    if not any(terms):
        report.add_info("SpecificCharacterSet not present; default repertoire assumed", path, SOURCE)
        for element_path, value in _iter_text_values(dataset):
            if any(ord(char) > 0x7F for char in value):
                report.add_error(
                    f"{element_path} contains non-ASCII characters but SpecificCharacterSet "
                    "is not present",
                    element_path,
                    SOURCE,
                )
        return report.merge(_check_escape_sequences(dataset, iso2022=False))

    for term in terms:
        if term and term not in python_encoding:
            report.add_error(f"SpecificCharacterSet has unknown term '{term}'", path, SOURCE)
    stand_alone = [term for term in terms if term in STAND_ALONE_ENCODINGS]
    if stand_alone and len(terms) > 1:
        report.add_error(
            f"SpecificCharacterSet combines {stand_alone[0]} with other character sets; "
            f"{stand_alone[0]} must be the only value",
            path,
            SOURCE,
        )
    iso2022 = any(term.startswith("ISO 2022") for term in terms)
    return report.merge(_check_escape_sequences(dataset, iso2022=iso2022))


def _check_escape_sequences(dataset: Dataset, *, iso2022: bool) -> Report:
    report = Report()
    if iso2022:
        return report
    for element_path, value in _iter_text_values(dataset):
        if _ESCAPE in value:
            report.add_error(
                f"{element_path} contains escape sequences but no ISO 2022 character set is declared",
                element_path,
                SOURCE,
            )
    return report


def _iter_text_values(dataset: Dataset) -> Iterator[tuple[str, str]]:
    for node, path in iter_datasets(dataset):
        for element in node:
            if element.VR not in _TEXT_VRS:
                continue
            element_path = join_path(path, element_name(element))
            for value in _values(element):
                yield element_path, value


def _raw_values(value) -> list[str]:
    if value is None:
        return []
    items = list(value) if isinstance(value, (MultiValue, list, tuple)) else [value]
    return [
        item.decode("ascii", "replace") if isinstance(item, bytes) else str(item)
        for item in items
        if item is not None
    ]


def _values(element: DataElement) -> list[str]:
    """Non-empty string renderings of each value of a multi-valued element."""
    return [value for value in _raw_values(element.value) if value.strip("\x00 ")]
