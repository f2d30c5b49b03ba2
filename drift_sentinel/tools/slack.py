"""
Slack integration tool for drift notifications.

Posts a summary of the drift report to an incoming webhook whenever drift
was detected.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..core.models import DriftReport, Severity
from ..core.report import format_timestamp
from ..errors import NotificationError

logger = logging.getLogger(__name__)

SEVERITY_STYLE = {
    Severity.CRITICAL: ("🚨", "danger"),
    Severity.HIGH: ("⚠️", "warning"),
    Severity.ACCEPTABLE: ("ℹ️", "good"),
    Severity.NONE: ("✅", "good"),
}


class SlackNotifier:
    """Slack webhook channel for drift detection notifications."""

    name = "slack"

    def __init__(self, config, session: Optional[requests.Session] = None):
        """Initialize Slack notifier."""
        self.config = config
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return self.config.is_slack_enabled()

    def should_notify(self, report: DriftReport) -> bool:
        """Don't spam Slack when there is no drift."""
        return report.severity > Severity.NONE

    def build_payload(self, report: DriftReport, report_path: str) -> Dict[str, Any]:
        emoji, color = SEVERITY_STYLE[report.severity]
        timestamp = format_timestamp(report.timestamp)

        payload = {
            "text": f"{emoji} Infrastructure Drift Detected",
            "environment": report.environment,
            "severity": report.severity.name,
            "totalChanges": report.summary.total,
            "timestamp": timestamp,
            "report": str(report_path),
            "attachments": [
                {
                    "color": color,
                    "fields": [
                        {"title": "Environment", "value": report.environment, "short": True},
                        {"title": "Severity", "value": report.severity.name, "short": True},
                        {"title": "Total Changes", "value": str(report.summary.total), "short": True},
                        {"title": "Timestamp", "value": timestamp, "short": True},
                        {"title": "Report", "value": str(report_path), "short": False},
                    ],
                    "footer": f"Drift Detection | {report.region}",
                }
            ],
        }
        if self.config.slack_channel:
            payload["channel"] = self.config.slack_channel
        return payload

    def send(self, report: DriftReport, report_path: str) -> Dict[str, Any]:
        """
        Send notification to Slack.

        Raises:
            NotificationError: when the webhook call fails or times out
        """
        logger.info(f"Sending Slack notification (severity: {report.severity.name})")

        try:
            response = self.session.post(
                self.config.slack_webhook_url,
                json=self.build_payload(report, report_path),
                timeout=self.config.notification_timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"Failed to send Slack notification: {e}", channel=self.name)

        logger.info("Slack notification sent successfully")
        return {"status": "sent", "channel": self.config.slack_channel}
