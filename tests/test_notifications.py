"""
Unit tests for the notification dispatcher and its channels.

HTTP sessions are mocked; no webhook or API is contacted.
"""

import unittest
from unittest.mock import Mock
from datetime import datetime, timezone
import sys
import os

import requests

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from drift_sentinel.config.settings import Settings
from drift_sentinel.core.dispatcher import NotificationDispatcher
from drift_sentinel.core.models import ChangeAction, DriftReport, DriftSummary, ResourceChange, Severity
from drift_sentinel.errors import NotificationError
from drift_sentinel.tools.github import GitHubIssueNotifier
from drift_sentinel.tools.slack import SlackNotifier

REPORT_PATH = "drift-reports/prod-us-east-1-drift-20251029_123456.json"


def make_report(severity=Severity.CRITICAL):
    changes = ()
    if severity != Severity.NONE:
        changes = (
            ResourceChange("aws_security_group.web", "aws_security_group", ChangeAction.DESTROY, True),
        )
    return DriftReport(
        environment="prod",
        region="us-east-1",
        timestamp=datetime(2025, 10, 29, 12, 34, 56, tzinfo=timezone.utc),
        severity=severity,
        summary=DriftSummary.from_changes(changes),
        changes=changes,
    )


def make_settings(**overrides):
    values = {
        "slack_webhook_url": "https://hooks.slack.com/services/T000/B000/XXXX",
        "slack_channel": "#infra-alerts",
        "github_token": "ghp_test",
        "github_repository": "acme/infrastructure",
        "notification_timeout": 5,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_channel(name, enabled=True, should_notify=True, error=None):
    channel = Mock()
    channel.name = name
    channel.enabled = enabled
    channel.should_notify.return_value = should_notify
    if error is not None:
        channel.send.side_effect = error
    return channel


class TestNotificationDispatcher(unittest.TestCase):
    """Test cases for NotificationDispatcher class."""

    def test_no_drift_skips_all_channels(self):
        """Test nothing is sent when there is no drift."""
        channel = make_channel("slack")

        results = NotificationDispatcher([channel]).dispatch(make_report(Severity.NONE), REPORT_PATH)

        self.assertEqual(results, {"slack": "skipped"})
        channel.send.assert_not_called()

    def test_channel_statuses(self):
        """Test each channel gets its own status."""
        sent = make_channel("slack")
        disabled = make_channel("github", enabled=False)
        not_applicable = make_channel("pager", should_notify=False)

        results = NotificationDispatcher([sent, disabled, not_applicable]).dispatch(
            make_report(), REPORT_PATH
        )

        self.assertEqual(results, {"slack": "sent", "github": "disabled", "pager": "skipped"})
        sent.send.assert_called_once()
        disabled.send.assert_not_called()
        not_applicable.send.assert_not_called()

    def test_failure_is_isolated(self):
        """Test a failing channel does not stop the others."""
        failing = make_channel("slack", error=NotificationError("webhook timed out", channel="slack"))
        broken = make_channel("github", error=RuntimeError("boom"))
        working = make_channel("pager")

        with self.assertLogs("drift_sentinel.core.dispatcher", level="WARNING") as logs:
            results = NotificationDispatcher([failing, broken, working]).dispatch(
                make_report(), REPORT_PATH
            )

        self.assertEqual(results, {"slack": "failed", "github": "failed", "pager": "sent"})
        self.assertEqual(len(logs.records), 2)

    def test_send_receives_report_path(self):
        """Test channels are given the written report's path."""
        channel = make_channel("slack")
        report = make_report()

        NotificationDispatcher([channel]).dispatch(report, REPORT_PATH)

        channel.send.assert_called_once_with(report, REPORT_PATH)


class TestSlackNotifier(unittest.TestCase):
    """Test cases for SlackNotifier class."""

    def setUp(self):
        """Set up test fixtures."""
        self.session = Mock()
        self.notifier = SlackNotifier(make_settings(), session=self.session)

    def test_enabled(self):
        """Test the channel is enabled only with a webhook URL."""
        self.assertTrue(self.notifier.enabled)
        self.assertFalse(SlackNotifier(make_settings(slack_webhook_url=None)).enabled)

    def test_should_notify(self):
        """Test Slack is notified for any drift."""
        self.assertTrue(self.notifier.should_notify(make_report(Severity.ACCEPTABLE)))
        self.assertFalse(self.notifier.should_notify(make_report(Severity.NONE)))

    def test_payload(self):
        """Test the payload carries environment, severity, counts and report."""
        payload = self.notifier.build_payload(make_report(), REPORT_PATH)

        self.assertEqual(payload["environment"], "prod")
        self.assertEqual(payload["severity"], "CRITICAL")
        self.assertEqual(payload["totalChanges"], 1)
        self.assertEqual(payload["timestamp"], "2025-10-29T12:34:56Z")
        self.assertEqual(payload["report"], REPORT_PATH)
        self.assertEqual(payload["channel"], "#infra-alerts")
        self.assertEqual(payload["attachments"][0]["color"], "danger")

    def test_send(self):
        """Test the webhook is posted with a bounded timeout."""
        result = self.notifier.send(make_report(), REPORT_PATH)

        self.assertEqual(result["status"], "sent")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://hooks.slack.com/services/T000/B000/XXXX")
        self.assertEqual(kwargs["timeout"], 5)
        self.assertEqual(kwargs["json"]["severity"], "CRITICAL")

    def test_send_failure(self):
        """Test request errors become notification errors."""
        self.session.post.side_effect = requests.Timeout("timed out")

        with self.assertRaises(NotificationError) as ctx:
            self.notifier.send(make_report(), REPORT_PATH)

        self.assertEqual(ctx.exception.channel, "slack")
        self.assertEqual(ctx.exception.stage, "notify")


class TestGitHubIssueNotifier(unittest.TestCase):
    """Test cases for GitHubIssueNotifier class."""

    def setUp(self):
        """Set up test fixtures."""
        self.session = Mock()
        self.session.post.return_value.json.return_value = {
            "html_url": "https://github.com/acme/infrastructure/issues/7"
        }
        self.notifier = GitHubIssueNotifier(make_settings(), session=self.session)

    def test_enabled(self):
        """Test the channel needs both token and repository."""
        self.assertTrue(self.notifier.enabled)
        self.assertFalse(GitHubIssueNotifier(make_settings(github_token=None)).enabled)

    def test_critical_only(self):
        """Test issues are opened for critical drift only."""
        self.assertTrue(self.notifier.should_notify(make_report(Severity.CRITICAL)))
        self.assertFalse(self.notifier.should_notify(make_report(Severity.HIGH)))

    def test_send(self):
        """Test the issue is created with labels and the human report."""
        result = self.notifier.send(make_report(), REPORT_PATH)

        self.assertEqual(result["issue_url"], "https://github.com/acme/infrastructure/issues/7")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://api.github.com/repos/acme/infrastructure/issues")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer ghp_test")
        self.assertIn("drift-detection", kwargs["json"]["labels"])
        self.assertIn("# Infrastructure Drift Report", kwargs["json"]["body"])
        self.assertIn("prod/us-east-1", kwargs["json"]["title"])

    def test_send_failure(self):
        """Test HTTP errors become notification errors."""
        self.session.post.return_value.raise_for_status.side_effect = requests.HTTPError("401")

        with self.assertRaises(NotificationError):
            self.notifier.send(make_report(), REPORT_PATH)


if __name__ == "__main__":
    unittest.main()
