"""Structural and template validation for Key Object Selection manifests."""

from .catalog import (
    ConceptCode,
    RelationshipType,
    RequirementLevel,
    RuleCatalog,
    Template,
    TemplateKey,
    TemplateRule,
    ValueType,
    get_rule_catalog,
    load_rule_catalog,
)
from .content_type import ContentTypeChecker, ContentTypeClass
from .orchestrator import ManifestValidator
from .report import Message, Report, Severity
from .selector import Profile, ValidationPlan, ValidatorSelector
from .template_walker import TemplateWalker

__all__ = [
    "ConceptCode",
    "ContentTypeChecker",
    "ContentTypeClass",
    "ManifestValidator",
    "Message",
    "Profile",
    "RelationshipType",
    "Report",
    "RequirementLevel",
    "RuleCatalog",
    "Severity",
    "Template",
    "TemplateKey",
    "TemplateRule",
    "TemplateWalker",
    "ValidationPlan",
    "ValidatorSelector",
    "ValueType",
    "get_rule_catalog",
    "load_rule_catalog",
]
