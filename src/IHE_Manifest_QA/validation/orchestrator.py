"""Validation pipeline for manifest documents.

Key Responsibilities:
    - Run the container pre-check and stop early when the envelope is broken
    - Parse the dataset and select the validation plan for its content type
      and the requested profile
    - Run every check in a fixed order and merge the results into one report

Collaborators:
    - Upstream: :mod:`IHE_Manifest_QA.cli` and embedding services
    - Downstream: container, content type, template walker, document,
      structure and attribute checks; :class:`RuleCatalog`

Side Effects:
    - Reads files in :meth:`ManifestValidator.validate_file`
    - Emits Structlog events tagged with a per-run identifier

Thread Safety:
    - Thread-safe; runs share only the immutable catalog, and the profile is
      passed explicitly to every call

Performance Characteristics:
    - Linear in document size; :meth:`ManifestValidator.validate_files` runs
      independent documents on a thread pool
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import structlog
from pydicom.dataset import Dataset

from IHE_Manifest_QA.utils.errors import ManifestParseError
from IHE_Manifest_QA.utils.logging import bind_run_id, reset_run_id

from .attributes import check_document_module, check_encoding, check_retrieval, check_timezone
from .catalog import RuleCatalog, get_rule_catalog
from .container import check_container, check_file_meta, decode_dataset, parse_dataset
from .content_type import ContentTypeChecker
from .document import check_evidence_consistency, check_root_container
from .report import Report
from .selector import Profile, ValidationPlan, ValidatorSelector
from .structure import check_empty_sequences, check_private_attributes
from .template_walker import TemplateWalker
from .tree import text

logger = structlog.get_logger(__name__)

SOURCE = "orchestrator"

__all__ = ["ManifestValidator"]


# ==============================================================================
# ORCHESTRATOR
# ==============================================================================


class ManifestValidator:
    """Validates manifest documents against a rule catalog."""

    def __init__(self, catalog: RuleCatalog | None = None, *, max_workers: int = 4) -> None:
        self.catalog = catalog or get_rule_catalog()
        self.max_workers = max_workers
        self._selector = ValidatorSelector(self.catalog)
        self._content_types = ContentTypeChecker(self.catalog)
        self._walker = TemplateWalker(self.catalog)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def validate_file(self, path: str | Path, profile: str | Profile | None = None) -> Report:
        file_path = Path(path)
        try:
            raw = file_path.read_bytes()
        except OSError as exc:
            logger.warning("validation.file_unreadable", path=str(file_path), error=str(exc))
            report = Report()
            report.add_error(f"unable to read {file_path}: {exc.strerror or exc}", "", SOURCE)
            return report
        return self.validate_bytes(raw, profile)

    def validate_files(
        self,
        paths: Iterable[str | Path],
        profile: str | Profile | None = None,
        *,
        max_workers: int | None = None,
    ) -> list[tuple[Path, Report]]:
        """Validate independent files concurrently; results keep input order."""
        targets = [Path(path) for path in paths]
        if not targets:
            return []
        workers = max(1, min(max_workers or self.max_workers, len(targets)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            reports = list(pool.map(lambda target: self.validate_file(target, profile), targets))
        return list(zip(targets, reports))

    def validate_bytes(self, raw: bytes, profile: str | Profile | None = None) -> Report:
        token = bind_run_id(uuid.uuid4().hex)
        try:
            report = check_container(raw)
            if not report.is_valid:
                logger.info("validation.precheck_failed", errors=len(report.errors))
                return report
            try:
                dataset = parse_dataset(raw)
            except ManifestParseError as exc:
                return report.merge(self._parse_failure(exc))
            report = report.merge(self._run_stage("file_meta", lambda: check_file_meta(dataset)))
            return report.merge(self._validate(dataset, profile))
        finally:
            reset_run_id(token)

    def validate_dataset(
        self,
        dataset: Dataset,
        profile: str | Profile | None = None,
        *,
        content_type: str | None = None,
    ) -> Report:
        token = bind_run_id(uuid.uuid4().hex)
        try:
            try:
                decode_dataset(dataset)
            except ManifestParseError as exc:
                return self._parse_failure(exc)
            return self._validate(dataset, profile, content_type)
        finally:
            reset_run_id(token)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def _validate(
        self,
        dataset: Dataset,
        profile: str | Profile | None,
        content_type: str | None = None,
    ) -> Report:
        content_type = content_type or text(dataset, "SOPClassUID")
        plan = self._selector.select(content_type, profile)
        if plan is None:
            report = self._content_types.check(content_type, "SOPClassUID")
            report.add_error(
                f"no validator found for content-type identifier: {content_type or '<missing>'}",
                "SOPClassUID",
                SOURCE,
            )
            logger.info("validation.no_validator", content_type=content_type)
            return report

        report = Report()
        if plan.fallback:
            report.add_warning(
                f"Unknown profile requested: {plan.requested_profile}; "
                "performed standard validation instead",
                "",
                SOURCE,
            )
        report.add_info(
            f"validating {plan.family} with profile {plan.profile.value} "
            f"against {plan.root_template.name}",
            "",
            SOURCE,
        )

        stages: list[tuple[str, Callable[[], Report]]] = [
            ("content_type", lambda: self._check_content_type(dataset, content_type)),
            ("referenced_content_types", lambda: self._content_types.check_references(dataset)),
            ("template", lambda: self._walker.validate(dataset, plan)),
            ("root_container", lambda: check_root_container(dataset, plan)),
            ("empty_sequences", lambda: check_empty_sequences(dataset)),
            ("private_attributes", lambda: check_private_attributes(dataset)),
            ("evidence", lambda: check_evidence_consistency(dataset)),
            ("document_module", lambda: check_document_module(dataset, self.catalog.attribute_rules)),
            ("timezone", lambda: check_timezone(dataset, plan)),
            ("retrieval", lambda: check_retrieval(dataset, plan)),
            ("encoding", lambda: check_encoding(dataset, self.catalog.attribute_rules)),
        ]
        for name, stage in stages:
            report = report.merge(self._run_stage(name, stage))

        self._log_outcome(plan, report)
        return report

    def _check_content_type(self, dataset: Dataset, content_type: str) -> Report:
        """Classify the declared identifier and compare it with the stored one."""
        report = self._content_types.check(content_type, "SOPClassUID")
        stored = text(dataset, "SOPClassUID")
        if stored and stored != content_type.strip().rstrip("\x00"):
            report.add_warning(
                f"declared content type {content_type} differs from SOPClassUID {stored}",
                "SOPClassUID",
                SOURCE,
            )
        return report

    @staticmethod
    def _parse_failure(exc: ManifestParseError) -> Report:
        logger.info("validation.parse_failed", detail=exc.detail)
        report = Report()
        report.add_error(f"{exc}: {exc.detail}", "", SOURCE)
        return report

    @staticmethod
    def _run_stage(name: str, stage: Callable[[], Report]) -> Report:
        """Run one check; an unexpected failure becomes a single ERROR."""
        try:
            return stage()
        except Exception as exc:
            logger.exception("validation.stage_failed", stage=name)
            report = Report()
            report.add_error(f"check '{name}' failed: {type(exc).__name__}: {exc}", "", name)
            return report

    @staticmethod
    def _log_outcome(plan: ValidationPlan, report: Report) -> None:
        counts = report.counts()
        logger.info(
            "validation.completed",
            family=plan.family,
            profile=plan.profile.value,
            valid=report.is_valid,
            errors=counts["ERROR"],
            warnings=counts["WARNING"],
        )
