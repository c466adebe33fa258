"""Content template walker for structured-report manifests.

Key Responsibilities:
    - Check that the document identifies its root template through
      ``ContentTemplateSequence``
    - Walk the ``ContentSequence`` tree against the catalog templates, matching
      children to rules by concept code and recursing into nested templates
    - Report value type, relationship type, cardinality and requirement
      violations with a structural path for each

Collaborators:
    - Upstream: :class:`~IHE_Manifest_QA.validation.orchestrator.ManifestValidator`
      supplies the selected :class:`ValidationPlan`
    - Downstream: :class:`RuleCatalog` resolves nested templates

Side Effects:
    - None; datasets are only read

Thread Safety:
    - Thread-safe; every call keeps its own visited set and report

Performance Characteristics:
    - Linear in the number of content items; each dataset is entered once
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================
from typing import TYPE_CHECKING

from pydicom.dataset import Dataset

from .catalog import (
    VALUE_ATTRIBUTES,
    ConceptCode,
    RelationshipType,
    RequirementLevel,
    RuleCatalog,
    Template,
    TemplateKey,
    TemplateRule,
    ValueType,
)
from .report import Report
from .tree import children, concept_of, join_path, text

if TYPE_CHECKING:
    from .selector import ValidationPlan

SOURCE = "template"

__all__ = ["TemplateWalker"]


# ==============================================================================
# WALKER
# ==============================================================================


class TemplateWalker:
    """Validates a content tree against catalog templates."""

    def __init__(self, catalog: RuleCatalog) -> None:
        self._catalog = catalog

    def validate(self, root: Dataset, plan: ValidationPlan) -> Report:
        """Run template identification, then walk the tree from ``plan.root_template``."""
        report = self.check_identification(
            root, plan.identification, required=plan.identification_required
        )
        return report.merge(self.walk(root, plan.root_template))

    # ------------------------------------------------------------------
    # Template identification
    # ------------------------------------------------------------------
    def check_identification(
        self, root: Dataset, expected: TemplateKey, *, required: bool
    ) -> Report:
        report = Report()
        path = "ContentTemplateSequence"
        items = list(root.get("ContentTemplateSequence") or ())
        if not items:
            text_ = (
                f"template identification missing; for compliance this should explicitly "
                f"identify {expected}"
            )
            if required:
                report.add_error(text_, path, SOURCE)
            else:
                report.add_warning(text_, path, SOURCE)
            return report

        for index, item in enumerate(items):
            if text(item, "TemplateIdentifier") != expected.template_id:
                continue
            resource = text(item, "MappingResource")
            item_path = f"{path}[{index}]"
            if resource != expected.mapping_resource:
                report.add_error(
                    f"template identifier {expected.template_id} found but mapping resource "
                    f"mismatch; expected '{expected.mapping_resource}', found '{resource or ''}'",
                    join_path(item_path, "MappingResource"),
                    SOURCE,
                )
            else:
                report.add_info(f"correctly identifies the expected template {expected}", item_path, SOURCE)
            return report

        found = ", ".join(text(item, "TemplateIdentifier") or "?" for item in items)
        report.add_warning(
            f"does not identify the expected template {expected}; found {found}",
            path,
            SOURCE,
        )
        return report

    # ------------------------------------------------------------------
    # Tree walk
    # ------------------------------------------------------------------
    def walk(self, node: Dataset, template: Template, path: str = "") -> Report:
        """Validate ``node``'s children against ``template`` and its nested templates."""
        report = Report()
        self._walk(node, template, path, report, {id(node)})
        return report

    def _walk(
        self,
        node: Dataset,
        template: Template,
        path: str,
        report: Report,
        visited: set[int],
    ) -> None:
        items = [(join_path(path, "ContentSequence", i), child) for i, child in enumerate(children(node))]

        usable: list[tuple[str, Dataset, ConceptCode | None]] = []
        for child_path, child in items:
            if id(child) in visited:
                report.add_error(
                    "structural cycle detected; content item was already visited",
                    child_path,
                    SOURCE,
                )
                continue
            if self._check_determinate(child, child_path, report):
                usable.append((child_path, child, concept_of(child)))

        claimed = template.concept_keys()
        present = {concept.key for _, _, concept in usable if concept is not None}

        for rule in template.rules:
            if rule.concept is not None:
                matches = [
                    (p, c) for p, c, concept in usable
                    if concept is not None and concept.key == rule.concept.key
                ]
            else:
                matches = [
                    (p, c) for p, c, concept in usable
                    if (concept is None or concept.key not in claimed)
                    and _value_type(c) in rule.value_types
                    and _relationship(c) is rule.relationship
                ]

            if not matches:
                self._report_missing(rule, present, path, report)
                continue

            if rule.max_count is not None and len(matches) > rule.max_count:
                report.add_error(
                    f"expected at most {rule.max_count} item(s) for {rule.describe()} "
                    f"but found {len(matches)}",
                    path or "ContentSequence",
                    SOURCE,
                )

            for child_path, child in matches:
                if not self._check_rule(child, child_path, rule, report):
                    continue
                if rule.nested_template is None:
                    continue
                nested = self._catalog.resolve(rule.nested_template)
                if nested is None:
                    report.add_warning(
                        f"{rule.nested_template} is not defined in the rule catalog; "
                        "nested content not checked",
                        child_path,
                        SOURCE,
                    )
                    continue
                visited.add(id(child))
                self._walk(child, nested, child_path, report, visited)

    def _check_determinate(self, child: Dataset, child_path: str, report: Report) -> bool:
        ok = True
        if _value_type(child) is None:
            raw = text(child, "ValueType")
            message = (
                f"content item has unrecognised value type '{raw}'"
                if raw
                else "content item has no value type"
            )
            report.add_error(message, join_path(child_path, "ValueType"), SOURCE)
            ok = False
        if _relationship(child) is None:
            raw = text(child, "RelationshipType")
            message = (
                f"content item has unrecognised relationship type '{raw}'"
                if raw
                else "content item has no relationship type"
            )
            report.add_error(message, join_path(child_path, "RelationshipType"), SOURCE)
            ok = False
        return ok

    def _check_rule(self, child: Dataset, child_path: str, rule: TemplateRule, report: Report) -> bool:
        value_type = _value_type(child)
        relationship = _relationship(child)
        ok = True
        if value_type not in rule.value_types:
            expected = " or ".join(v.value for v in rule.value_types)
            report.add_error(
                f"expected value type {expected} but found {value_type.value} "
                f"for concept {rule.describe()}",
                join_path(child_path, "ValueType"),
                SOURCE,
            )
            ok = False
        if relationship is not rule.relationship:
            report.add_error(
                f"expected relationship type {rule.relationship.value} but found "
                f"{relationship.value} for concept {rule.describe()}",
                join_path(child_path, "RelationshipType"),
                SOURCE,
            )
            ok = False
        if not ok:
            return False

        attribute = VALUE_ATTRIBUTES.get(value_type)
        if attribute is not None and attribute not in child:
            report.add_error(
                f"content item {rule.describe()} has value type {value_type.value} "
                f"but no {attribute}",
                child_path,
                SOURCE,
            )
            return False
        report.add_info(f"content item satisfies template rule: {rule.describe()}", child_path, SOURCE)
        return True

    @staticmethod
    def _report_missing(
        rule: TemplateRule,
        present: set[tuple[str, str]],
        path: str,
        report: Report,
    ) -> None:
        location = path or "ContentSequence"
        if rule.requirement is RequirementLevel.REQUIRED:
            report.add_error(f"required content item missing: {rule.describe()}", location, SOURCE)
        elif rule.requirement is RequirementLevel.REQUIRED_IF_APPLICABLE:
            report.add_warning(
                f"conditionally required item missing; verify applicability: {rule.describe()}",
                location,
                SOURCE,
            )
        elif rule.requirement is RequirementLevel.CONDITIONAL:
            trigger = rule.required_with
            if trigger is not None and trigger.key in present:
                report.add_warning(
                    f"conditional content item missing: {rule.describe()} is required when "
                    f"{trigger.meaning or trigger.value} is present",
                    location,
                    SOURCE,
                )


def _value_type(node: Dataset) -> ValueType | None:
    raw = text(node, "ValueType")
    if raw is None:
        return None
    try:
        return ValueType(raw.upper())
    except ValueError:
        return None


def _relationship(node: Dataset) -> RelationshipType | None:
    raw = text(node, "RelationshipType")
    if raw is None:
        return None
    try:
        return RelationshipType(raw.upper())
    except ValueError:
        return None
