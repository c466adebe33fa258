"""Rule catalog: static reference data driving every structural check.

The catalog is a YAML document validated into frozen pydantic models. It
holds the content-type (SOP Class) identifiers the engine recognises, the
transfer syntax identifiers used to spot miscategorised content types, the
content templates with their rules, the attribute-level rules (recommended
attributes, enumerated values, value length limits) and the document
families with their per-profile validation settings.

Thread Safety:
    Immutable after load; :func:`get_rule_catalog` caches one instance per
    process and it is safe to share across threads.

Example:
    >>> catalog = get_rule_catalog()
    >>> catalog.template_for("DCMR", "1600").name
    'Image Library'
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================
from collections.abc import Mapping
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from IHE_Manifest_QA.utils.errors import CatalogError

logger = structlog.get_logger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).with_name("data") / "rule_catalog.yaml"

__all__ = [
    "DEFAULT_CATALOG_PATH",
    "AttributeRules",
    "ConceptCode",
    "DocumentFamily",
    "ProfileRules",
    "RelationshipType",
    "RequirementLevel",
    "RuleCatalog",
    "Template",
    "TemplateKey",
    "TemplateRule",
    "ValueType",
    "get_rule_catalog",
    "load_rule_catalog",
]

# ==============================================================================
# ENUMERATIONS
# ==============================================================================


class ValueType(str, Enum):
    """Structured-report content item value types."""

    CONTAINER = "CONTAINER"
    CODE = "CODE"
    NUM = "NUM"
    TEXT = "TEXT"
    UIDREF = "UIDREF"
    IMAGE = "IMAGE"
    COMPOSITE = "COMPOSITE"
    WAVEFORM = "WAVEFORM"
    DATE = "DATE"
    TIME = "TIME"
    DATETIME = "DATETIME"
    PNAME = "PNAME"


class RelationshipType(str, Enum):
    """Relationship between a content item and its parent."""

    CONTAINS = "CONTAINS"
    HAS_ACQ_CONTEXT = "HAS ACQ CONTEXT"
    HAS_CONCEPT_MOD = "HAS CONCEPT MOD"
    HAS_OBS_CONTEXT = "HAS OBS CONTEXT"
    HAS_PROPERTIES = "HAS PROPERTIES"
    INFERRED_FROM = "INFERRED FROM"
    SELECTED_FROM = "SELECTED FROM"


class RequirementLevel(str, Enum):
    REQUIRED = "required"
    REQUIRED_IF_APPLICABLE = "required_if_applicable"
    OPTIONAL = "optional"
    CONDITIONAL = "conditional"


# Attribute that carries the value of a content item, keyed by value type.
VALUE_ATTRIBUTES: Mapping[ValueType, str] = MappingProxyType(
    {
        ValueType.CODE: "ConceptCodeSequence",
        ValueType.NUM: "MeasuredValueSequence",
        ValueType.TEXT: "TextValue",
        ValueType.UIDREF: "UID",
        ValueType.IMAGE: "ReferencedSOPSequence",
        ValueType.COMPOSITE: "ReferencedSOPSequence",
        ValueType.WAVEFORM: "ReferencedSOPSequence",
        ValueType.DATE: "Date",
        ValueType.TIME: "Time",
        ValueType.DATETIME: "DateTime",
        ValueType.PNAME: "PersonName",
    }
)

# ==============================================================================
# DATA MODELS
# ==============================================================================


class ConceptCode(BaseModel):
    """Coded concept. Matching uses ``(value, scheme)``; ``meaning`` is display only."""

    model_config = ConfigDict(frozen=True)

    value: str
    scheme: str
    meaning: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.value, self.scheme)

    def matches(self, other: ConceptCode | tuple[str, str] | None) -> bool:
        if other is None:
            return False
        other_key = other.key if isinstance(other, ConceptCode) else tuple(other)
        return self.key == other_key

    def __str__(self) -> str:
        if self.meaning:
            return f"{self.meaning} ({self.value}, {self.scheme})"
        return f"({self.value}, {self.scheme})"


class TemplateKey(BaseModel):
    """Template identity: mapping resource plus template identifier."""

    model_config = ConfigDict(frozen=True)

    mapping_resource: str
    template_id: str

    def __str__(self) -> str:
        return f"TID {self.template_id} ({self.mapping_resource})"


class TemplateRule(BaseModel):
    """One row of a content template.

    A rule without ``concept`` matches children by relationship and value type
    alone; TID 2010 uses this for its anonymous IMAGE and COMPOSITE references.
    """

    model_config = ConfigDict(frozen=True)

    concept: ConceptCode | None = None
    relationship: RelationshipType
    value_types: tuple[ValueType, ...] = Field(min_length=1)
    requirement: RequirementLevel = RequirementLevel.OPTIONAL
    max_count: int | None = Field(default=None, ge=1)
    nested_template: TemplateKey | None = None
    required_with: ConceptCode | None = None
    label: str | None = None

    @model_validator(mode="after")
    def _conditional_needs_trigger(self) -> TemplateRule:
        if self.requirement is RequirementLevel.CONDITIONAL and self.required_with is None:
            raise ValueError("conditional rules must name the concept they depend on")
        return self

    def describe(self) -> str:
        if self.concept is not None:
            return f"{self.concept.meaning or self.concept.value} ({self.concept.value})"
        kinds = "/".join(value_type.value for value_type in self.value_types)
        return self.label or f"{kinds} reference"


class Template(BaseModel):
    """Ordered set of rules, unique per concept code."""

    model_config = ConfigDict(frozen=True)

    mapping_resource: str
    template_id: str
    name: str
    rules: tuple[TemplateRule, ...] = ()

    @model_validator(mode="after")
    def _unique_concepts(self) -> Template:
        seen: set[tuple[str, str]] = set()
        for rule in self.rules:
            if rule.concept is None:
                continue
            if rule.concept.key in seen:
                raise ValueError(
                    f"template {self.mapping_resource}/{self.template_id} "
                    f"repeats concept {rule.concept.key}"
                )
            seen.add(rule.concept.key)
        return self

    @property
    def key(self) -> TemplateKey:
        return TemplateKey(mapping_resource=self.mapping_resource, template_id=self.template_id)

    def concept_keys(self) -> frozenset[tuple[str, str]]:
        return frozenset(rule.concept.key for rule in self.rules if rule.concept is not None)


class ProfileRules(BaseModel):
    """Validation settings for one profile of a document family."""

    model_config = ConfigDict(frozen=True)

    root_template: TemplateKey
    identification: TemplateKey
    identification_required: bool = False
    allowed_titles: tuple[ConceptCode, ...] = ()
    forbidden_titles: tuple[ConceptCode, ...] = ()
    timezone_required: bool = False
    retrieval_required: bool = False


class AttributeRules(BaseModel):
    """Attribute-level rules applied outside the content tree."""

    model_config = ConfigDict(frozen=True)

    recommended: tuple[str, ...] = ()
    enumerations: Mapping[str, tuple[str, ...]] = Field(default_factory=dict)
    max_value_lengths: Mapping[str, int] = Field(default_factory=dict)
    verifying_observer_keys: tuple[str, ...] = ()


class DocumentFamily(BaseModel):
    """A document kind (identified by content type) and its profile table."""

    model_config = ConfigDict(frozen=True)

    name: str
    content_types: tuple[str, ...] = Field(min_length=1)
    default_profile: str = "default"
    profiles: Mapping[str, ProfileRules]

    @model_validator(mode="after")
    def _default_profile_exists(self) -> DocumentFamily:
        if self.default_profile not in self.profiles:
            raise ValueError(
                f"family {self.name} has no rules for its default profile {self.default_profile!r}"
            )
        return self

    def profile_rules(self, name: str) -> ProfileRules | None:
        """Case-insensitive profile lookup."""
        wanted = name.casefold()
        for profile_name, rules in self.profiles.items():
            if profile_name.casefold() == wanted:
                return rules
        return None


class _CatalogDocument(BaseModel):
    """Raw YAML layout."""

    content_types: dict[str, str] = Field(default_factory=dict)
    suspicious_content_types: dict[str, str] = Field(default_factory=dict)
    transfer_syntaxes: dict[str, str] = Field(default_factory=dict)
    attribute_rules: AttributeRules = Field(default_factory=AttributeRules)
    templates: list[Template] = Field(default_factory=list)
    families: list[DocumentFamily] = Field(default_factory=list)


# ==============================================================================
# CATALOG
# ==============================================================================


class RuleCatalog:
    """Read-only lookup facade over the validated catalog document."""

    def __init__(
        self,
        *,
        content_types: Mapping[str, str],
        suspicious_content_types: Mapping[str, str],
        transfer_syntaxes: Mapping[str, str],
        templates: Mapping[TemplateKey, Template],
        families: tuple[DocumentFamily, ...],
        attribute_rules: AttributeRules | None = None,
    ) -> None:
        self._content_types = MappingProxyType(dict(content_types))
        self._suspicious = MappingProxyType(dict(suspicious_content_types))
        self._transfer_syntaxes = MappingProxyType(dict(transfer_syntaxes))
        self._templates = MappingProxyType(dict(templates))
        self._families = families
        self._attribute_rules = attribute_rules or AttributeRules()
        self._check_references()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RuleCatalog:
        try:
            document = _CatalogDocument.model_validate(data)
        except ValidationError as exc:
            raise CatalogError("Invalid rule catalog", detail=str(exc)) from exc
        templates: dict[TemplateKey, Template] = {}
        for template in document.templates:
            if template.key in templates:
                raise CatalogError(f"Duplicate template definition: {template.key}")
            templates[template.key] = template
        return cls(
            content_types=document.content_types,
            suspicious_content_types=document.suspicious_content_types,
            transfer_syntaxes=document.transfer_syntaxes,
            templates=templates,
            families=tuple(document.families),
            attribute_rules=document.attribute_rules,
        )

    @classmethod
    def from_path(cls, path: Path) -> RuleCatalog:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise CatalogError(f"Unable to read rule catalog {path}", detail=str(exc)) from exc
        if not isinstance(data, Mapping):
            raise CatalogError(f"Rule catalog {path} must be a mapping")
        catalog = cls.from_mapping(data)
        logger.debug(
            "catalog.loaded",
            path=str(path),
            templates=len(catalog._templates),
            families=len(catalog._families),
        )
        return catalog

    def _check_references(self) -> None:
        missing: list[str] = []
        for template in self._templates.values():
            for rule in template.rules:
                if rule.nested_template and rule.nested_template not in self._templates:
                    missing.append(f"{template.key} -> {rule.nested_template}")
        for family in self._families:
            for profile_name, rules in family.profiles.items():
                if rules.root_template not in self._templates:
                    missing.append(f"{family.name}/{profile_name} -> {rules.root_template}")
        if missing:
            raise CatalogError(
                "Rule catalog references undefined templates",
                extra={"missing": missing},
            )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def known_content_types(self) -> Mapping[str, str]:
        return self._content_types

    def suspicious_content_types(self) -> Mapping[str, str]:
        return self._suspicious

    def known_transport_syntax_ids(self) -> frozenset[str]:
        return frozenset(self._transfer_syntaxes)

    def transport_syntax_name(self, uid: str) -> str | None:
        return self._transfer_syntaxes.get(uid)

    def template_for(self, mapping_resource: str, template_id: str) -> Template | None:
        key = TemplateKey(mapping_resource=mapping_resource, template_id=template_id)
        return self._templates.get(key)

    def resolve(self, key: TemplateKey) -> Template | None:
        return self._templates.get(key)

    @property
    def attribute_rules(self) -> AttributeRules:
        return self._attribute_rules

    @property
    def families(self) -> tuple[DocumentFamily, ...]:
        return self._families

    def family_for(self, content_type_id: str) -> DocumentFamily | None:
        for family in self._families:
            if content_type_id in family.content_types:
                return family
        return None


def load_rule_catalog(path: Path | None = None) -> RuleCatalog:
    return RuleCatalog.from_path(path or DEFAULT_CATALOG_PATH)


@lru_cache(maxsize=None)
def get_rule_catalog(path: Path | None = None) -> RuleCatalog:
    """Cached accessor; one catalog per distinct path."""
    return load_rule_catalog(path)
