"""
Unit tests for the DriftDetector class.

Tests the detection pipeline end to end with a stubbed plan source, so the
extraction, classification, reporting, notification and exit code stages
run for real against canned plan output.
"""

import json
import tempfile
import unittest
from unittest.mock import Mock
from datetime import datetime, timezone
from pathlib import Path
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from drift_sentinel.config.settings import Settings
from drift_sentinel.core.dispatcher import NotificationDispatcher
from drift_sentinel.core.drift_detector import DriftDetector
from drift_sentinel.core.models import Severity
from drift_sentinel.errors import (
    ConfigurationError,
    ExternalToolError,
    NotificationError,
    ParseInconsistencyError,
)
from drift_sentinel.tools.terraform import PlanResult

TIMESTAMP = datetime(2025, 10, 29, 12, 34, 56, tzinfo=timezone.utc)

CRITICAL_PLAN = b"""\
  # aws_security_group.web will be destroyed
  - resource "aws_security_group" "web" {
      - name = "web" -> null
    }

  # aws_ecs_service.api will be updated in-place
  ~ resource "aws_ecs_service" "api" {
      ~ desired_count = 3 -> 2
    }

Plan: 0 to add, 1 to change, 1 to destroy.
"""

ACCEPTABLE_PLAN = b"""\
  # aws_s3_bucket.logs will be updated in-place
  ~ resource "aws_s3_bucket" "logs" {
      ~ tags = {
          + "Owner" = "platform"
        }
    }

Plan: 0 to add, 1 to change, 0 to destroy.
"""

CLEAN_PLAN = b"No changes. Your infrastructure matches the configuration.\n"


class FakePlanSource:
    """Plan source returning canned output."""

    def __init__(self, output, exit_code, artifact_path="reports/plan.txt"):
        self.result = PlanResult(raw_output=output, exit_code=exit_code, artifact_path=artifact_path)
        self.validated = []
        self.runs = 0

    def validate_target(self, environment, region):
        if environment not in ("non-prod", "prod"):
            raise ConfigurationError(f"Invalid environment: {environment}")
        self.validated.append((environment, region))

    def run(self, environment, region, timestamp=None):
        self.runs += 1
        return self.result


def make_channel(name, error=None):
    channel = Mock()
    channel.name = name
    channel.enabled = True
    channel.should_notify.return_value = True
    if error is not None:
        channel.send.side_effect = error
    return channel


class TestDriftDetector(unittest.TestCase):
    """Test cases for DriftDetector class."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()
        self.output_dir = Path(self.tmp.name) / "reports"
        self.config = Settings(
            _env_file=None,
            drift_output_dir=self.output_dir,
            aws_region="us-east-1",
            verify_credentials=False,
        )
        self.channel = make_channel("slack")

    def tearDown(self):
        self.tmp.cleanup()

    def make_detector(self, plan_source, channels=None, aws_client=None):
        return DriftDetector(
            self.config,
            plan_source=plan_source,
            dispatcher=NotificationDispatcher(channels if channels is not None else [self.channel]),
            aws_client=aws_client,
        )

    def test_critical_drift(self):
        """Test a destroyed security group is critical with exit code 3."""
        detector = self.make_detector(FakePlanSource(CRITICAL_PLAN, 2))

        result = detector.detect("prod", "us-east-1", output_format="structured", timestamp=TIMESTAMP)

        self.assertEqual(result.report.severity, Severity.CRITICAL)
        self.assertEqual(result.exit_code, 3)
        self.assertEqual(result.report.summary.total, 2)
        self.assertEqual(result.notifications, {"slack": "sent"})
        self.assertEqual(result.report.cloud_account, "unknown")

        data = json.loads(result.report_path.read_text(encoding="utf-8"))
        self.assertEqual(data["severity"], "CRITICAL")
        self.assertEqual(data["planArtifactPath"], "reports/plan.txt")
        self.assertEqual(result.report_path.name, "prod-us-east-1-drift-20251029_123456.json")
        self.assertEqual(result.rendered, result.report_path.read_text(encoding="utf-8"))

        categories = [s.category for s in result.report.suggestions]
        self.assertIn("security-group", categories)
        self.assertIn("autoscaling", categories)
        self.assertEqual(categories[-1], "general")

    def test_acceptable_drift(self):
        """Test tag-only updates exit with code 2."""
        detector = self.make_detector(FakePlanSource(ACCEPTABLE_PLAN, 2))

        with self.assertLogs("drift_sentinel.core.drift_detector", level="INFO") as logs:
            result = detector.detect("non-prod", "us-east-1", timestamp=TIMESTAMP)

        self.assertEqual(result.report.severity, Severity.ACCEPTABLE)
        self.assertEqual(result.exit_code, 2)
        self.assertEqual(result.report_path.suffix, ".txt")
        self.assertIn("tag-only", [s.category for s in result.report.suggestions])
        self.assertTrue(any("reported pending changes (exit code 2)" in line for line in logs.output))

    def test_no_drift(self):
        """Test a clean plan exits 0 without notifications."""
        detector = self.make_detector(FakePlanSource(CLEAN_PLAN, 0))

        result = detector.detect("prod", "us-east-1", output_format="human", timestamp=TIMESTAMP)

        self.assertEqual(result.report.severity, Severity.NONE)
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.report.suggestions, ())
        self.assertEqual(result.notifications, {"slack": "skipped"})
        self.channel.send.assert_not_called()
        self.assertTrue(result.report_path.is_file())

    def test_default_region(self):
        """Test the configured region is used when none is given."""
        source = FakePlanSource(CLEAN_PLAN, 0)

        self.make_detector(source).detect("prod", timestamp=TIMESTAMP)

        self.assertEqual(source.validated, [("prod", "us-east-1")])

    def test_notification_failure_keeps_exit_code(self):
        """Test a failing channel still yields exit code 3 and a written report."""
        failing = make_channel("slack", error=NotificationError("webhook timed out", channel="slack"))
        detector = self.make_detector(FakePlanSource(CRITICAL_PLAN, 2), channels=[failing])

        result = detector.detect("prod", "us-east-1", timestamp=TIMESTAMP)

        self.assertEqual(result.exit_code, 3)
        self.assertEqual(result.notifications, {"slack": "failed"})
        self.assertTrue(result.report_path.is_file())

    def test_no_notify(self):
        """Test notifications can be switched off for a run."""
        detector = self.make_detector(FakePlanSource(CRITICAL_PLAN, 2))

        result = detector.detect("prod", "us-east-1", notify=False, timestamp=TIMESTAMP)

        self.assertEqual(result.notifications, {})
        self.channel.send.assert_not_called()

    def test_invalid_environment(self):
        """Test configuration errors abort before the plan runs."""
        source = FakePlanSource(CRITICAL_PLAN, 2)

        with self.assertRaises(ConfigurationError):
            self.make_detector(source).detect("staging", "us-east-1", timestamp=TIMESTAMP)

        self.assertEqual(source.runs, 0)
        self.assertFalse(self.output_dir.exists())

    def test_invalid_format(self):
        """Test an unknown output format is rejected before the plan runs."""
        source = FakePlanSource(CRITICAL_PLAN, 2)

        with self.assertRaises(ConfigurationError):
            self.make_detector(source).detect("prod", "us-east-1", output_format="yaml")

        self.assertEqual(source.runs, 0)

    def test_tool_failure(self):
        """Test tool errors are fatal and produce no report."""
        detector = self.make_detector(FakePlanSource(b"Error: error acquiring the state lock\n", 1))

        with self.assertRaises(ExternalToolError) as ctx:
            detector.detect("prod", "us-east-1", timestamp=TIMESTAMP)

        self.assertEqual(ctx.exception.exit_code, 1)
        self.assertIn("state lock", ctx.exception.output)
        self.assertEqual(ctx.exception.artifact_path, "reports/plan.txt")
        self.assertFalse(self.output_dir.exists())

    def test_parse_inconsistency(self):
        """Test unparseable changes are fatal instead of under-reported."""
        detector = self.make_detector(FakePlanSource(b"unexpected output\n", 2))

        with self.assertRaises(ParseInconsistencyError):
            detector.detect("prod", "us-east-1", timestamp=TIMESTAMP)

        self.assertFalse(self.output_dir.exists())
        self.channel.send.assert_not_called()

    def test_credentials_verified_and_account_recorded(self):
        """Test the AWS account is recorded when credentials are verified."""
        self.config = self.config.model_copy(update={"verify_credentials": True})
        aws_client = Mock()
        aws_client.get_account_id.return_value = "123456789012"
        detector = self.make_detector(FakePlanSource(ACCEPTABLE_PLAN, 2), aws_client=aws_client)

        result = detector.detect("prod", "us-east-1", timestamp=TIMESTAMP)

        aws_client.verify_credentials.assert_called_once()
        self.assertEqual(result.report.cloud_account, "123456789012")

    def test_credential_failure(self):
        """Test invalid credentials abort before the plan runs."""
        self.config = self.config.model_copy(update={"verify_credentials": True})
        aws_client = Mock()
        aws_client.verify_credentials.side_effect = ConfigurationError("No AWS credentials found")
        source = FakePlanSource(ACCEPTABLE_PLAN, 2)

        with self.assertRaises(ConfigurationError):
            self.make_detector(source, aws_client=aws_client).detect("prod", "us-east-1", timestamp=TIMESTAMP)

        self.assertEqual(source.runs, 0)


class TestSuggestRemediation(unittest.TestCase):
    """Test cases for DriftDetector.suggest_remediation."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()
        self.output_dir = Path(self.tmp.name) / "reports"
        self.config = Settings(
            _env_file=None,
            drift_output_dir=self.output_dir,
            aws_region="us-east-1",
            verify_credentials=False,
        )

    def tearDown(self):
        self.tmp.cleanup()

    def make_detector(self, source):
        return DriftDetector(self.config, plan_source=source, dispatcher=NotificationDispatcher([]))

    def test_suggest_from_report(self):
        """Test suggestions are rebuilt from a structured report."""
        detector = self.make_detector(FakePlanSource(CRITICAL_PLAN, 2))
        result = detector.detect("prod", "us-east-1", output_format="structured", timestamp=TIMESTAMP)

        suggestions = detector.suggest_remediation(result.report_path)

        self.assertEqual(tuple(suggestions), result.report.suggestions)

    def test_suggest_from_plan_artifact(self):
        """Test reports without recorded changes fall back to the plan artifact."""
        artifact = Path(self.tmp.name) / "plan.txt"
        artifact.write_bytes(ACCEPTABLE_PLAN)
        report = Path(self.tmp.name) / "legacy.json"
        report.write_text(
            json.dumps({"severity": "ACCEPTABLE", "summary": {}, "planArtifactPath": str(artifact)}),
            encoding="utf-8",
        )

        suggestions = self.make_detector(FakePlanSource(CLEAN_PLAN, 0)).suggest_remediation(report)

        self.assertIn("tag-only", [s.category for s in suggestions])

    def test_missing_plan_artifact(self):
        """Test a dangling artifact reference is a configuration error."""
        report = Path(self.tmp.name) / "legacy.json"
        report.write_text(
            json.dumps({"severity": "HIGH", "summary": {}, "planArtifactPath": "/nonexistent/plan.txt"}),
            encoding="utf-8",
        )

        with self.assertRaises(ConfigurationError) as ctx:
            self.make_detector(FakePlanSource(CLEAN_PLAN, 0)).suggest_remediation(report)

        self.assertIn("Could not find plan output file", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
