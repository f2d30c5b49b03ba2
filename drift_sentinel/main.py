#!/usr/bin/env python3
"""
Command line entry points for the drift sentinel.

    detect-drift <environment> [region] [format]
    suggest-remediation <report-path>

Or as a module:
    python -m drift_sentinel detect prod us-east-1 structured
    python -m drift_sentinel suggest drift-reports/prod-us-east-1-drift-20251029_123456.json
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
from pydantic_settings import SettingsError

from .config.settings import Settings
from .core.drift_detector import DriftDetector
from .core.exit_codes import EXIT_ERROR
from .core.report import render_suggestions
from .errors import DriftSentinelError, ExternalToolError
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)

DETECT_EPILOG = """
Examples:
  detect-drift non-prod
  detect-drift prod us-east-1 structured
  detect-drift non-prod us-east-1 human

Exit Codes:
  0 - No drift detected
  1 - Error running detection
  2 - Drift detected (acceptable or high)
  3 - Critical drift detected
"""


def _add_detect_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("environment", help="Target environment (e.g. non-prod, prod)")
    parser.add_argument("region", nargs="?", default=None, help="AWS region (default: AWS_REGION setting)")
    parser.add_argument(
        "format",
        nargs="?",
        default="console",
        help="Output format: structured, human or console (default: console)",
    )
    parser.add_argument("--output-dir", default=None, help="Directory for plan artifacts and reports")
    parser.add_argument("--no-notify", action="store_true", help="Do not send notifications")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")


def _add_suggest_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("report_path", help="Path to a structured (JSON) drift report")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")


def _load_settings(output_dir: Optional[str] = None) -> Settings:
    settings = Settings()
    if output_dir:
        settings = settings.model_copy(update={"drift_output_dir": Path(output_dir)})
    return settings


def _report_failure(error: Exception) -> None:
    """Write a stage-identifying diagnostic to stderr."""
    if isinstance(error, DriftSentinelError):
        print(f"Drift detection failed at stage '{error.stage}': {error.message}", file=sys.stderr)
        if isinstance(error, ExternalToolError):
            if error.artifact_path:
                print(f"Raw tool output saved to: {error.artifact_path}", file=sys.stderr)
            if error.output:
                print(error.output, file=sys.stderr)
    else:
        print(f"Drift detection failed at stage 'configuration': {error}", file=sys.stderr)


def run_detect(args: argparse.Namespace) -> int:
    try:
        config = _load_settings(args.output_dir)
    except (ValidationError, SettingsError) as e:
        _report_failure(e)
        return EXIT_ERROR

    setup_logging(config, verbose=args.verbose)

    try:
        detector = DriftDetector(config)
        result = detector.detect(
            args.environment,
            region=args.region,
            output_format=args.format,
            notify=not args.no_notify,
        )
    except DriftSentinelError as e:
        logger.error(f"Drift detection failed: {e}")
        _report_failure(e)
        return EXIT_ERROR

    sys.stdout.write(result.rendered)
    if result.report.drift_detected:
        logger.warning(f"Drift detected! Review the report: {result.report_path}")
    else:
        logger.info("No drift detected - infrastructure in sync")
    return result.exit_code


def run_suggest(args: argparse.Namespace) -> int:
    try:
        config = _load_settings()
    except (ValidationError, SettingsError) as e:
        _report_failure(e)
        return EXIT_ERROR

    setup_logging(config, verbose=args.verbose)

    try:
        suggestions = DriftDetector(config).suggest_remediation(args.report_path)
    except DriftSentinelError as e:
        _report_failure(e)
        return EXIT_ERROR

    sys.stdout.write(render_suggestions(suggestions))
    logger.info("Remediation analysis complete")
    return 0


def detect_drift_main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the ``detect-drift`` command."""
    parser = argparse.ArgumentParser(
        prog="detect-drift",
        description="Detect configuration drift between Terraform state and live AWS resources",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=DETECT_EPILOG,
    )
    _add_detect_arguments(parser)
    return run_detect(parser.parse_args(argv))


def suggest_remediation_main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the ``suggest-remediation`` command."""
    parser = argparse.ArgumentParser(
        prog="suggest-remediation",
        description="Suggest remediation actions for a previously produced drift report",
    )
    _add_suggest_arguments(parser)
    return run_suggest(parser.parse_args(argv))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for ``python -m drift_sentinel``."""
    parser = argparse.ArgumentParser(
        prog="drift_sentinel",
        description="Infrastructure drift detection and remediation guidance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=DETECT_EPILOG,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect_parser = subparsers.add_parser("detect", help="Run drift detection")
    _add_detect_arguments(detect_parser)
    detect_parser.set_defaults(handler=run_detect)

    suggest_parser = subparsers.add_parser("suggest", help="Suggest remediation for a report")
    _add_suggest_arguments(suggest_parser)
    suggest_parser.set_defaults(handler=run_suggest)

    args = parser.parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
