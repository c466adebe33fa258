"""Command line entry-point: validate manifest files and print their reports."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog

from IHE_Manifest_QA.config.settings import get_settings
from IHE_Manifest_QA.utils.errors import CatalogError
from IHE_Manifest_QA.utils.logging import configure_logging
from IHE_Manifest_QA.validation.catalog import get_rule_catalog
from IHE_Manifest_QA.validation.orchestrator import ManifestValidator
from IHE_Manifest_QA.validation.report import Report, Severity

logger = structlog.get_logger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="manifest-qa",
        description="Validate DICOM Key Object Selection manifests against IHE profiles",
    )
    parser.add_argument("files", nargs="+", type=Path, help="DICOM Part 10 files to validate")
    parser.add_argument(
        "--profile",
        default=None,
        help="Validation profile: IHEXDSIManifest, IHEMADO or default",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Include INFO messages in the output",
    )
    parser.add_argument("--json", action="store_true", help="Print reports as JSON")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads for batch runs")
    return parser.parse_args(argv)


def _render_text(path: Path, report: Report, *, verbose: bool) -> str:
    lines = [f"{path}: {'VALID' if report.is_valid else 'INVALID'}"]
    floor = Severity.INFO if verbose else Severity.WARNING
    lines.extend(f"  {message}" for message in report.at_least(floor))
    counts = report.counts()
    lines.append(
        f"  {counts['ERROR']} error(s), {counts['WARNING']} warning(s), {counts['INFO']} info"
    )
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings=settings.logging)

    verbose = args.verbose or settings.verbose
    profile = args.profile if args.profile is not None else settings.default_profile

    try:
        catalog = get_rule_catalog(settings.catalog_path)
    except CatalogError as exc:
        logger.error("cli.catalog_invalid", **exc.model_dump())
        print(f"error: {exc}", file=sys.stderr)
        return 1

    validator = ManifestValidator(catalog, max_workers=settings.max_workers)
    results = validator.validate_files(args.files, profile, max_workers=args.workers)

    if args.json:
        payload = [
            {"file": str(path), **report.model_dump(include_info=verbose)} for path, report in results
        ]
        print(json.dumps(payload, indent=2))
    else:
        for path, report in results:
            print(_render_text(path, report, verbose=verbose))

    return 0 if all(report.is_valid for _, report in results) else 1


if __name__ == "__main__":
    sys.exit(main())
