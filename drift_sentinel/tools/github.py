"""
GitHub issue tracker tool.

Opens a tracked issue for critical drift only, carrying the full
human-readable report as its body.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..core.models import DriftReport, Severity
from ..core.report import render_human
from ..errors import NotificationError

logger = logging.getLogger(__name__)

ISSUE_LABELS = ["drift-detection", "critical", "infrastructure"]


class GitHubIssueNotifier:
    """Issue tracker channel backed by the GitHub REST API."""

    name = "github"

    def __init__(self, config, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return self.config.is_github_enabled()

    def should_notify(self, report: DriftReport) -> bool:
        """Issues are reserved for critical drift to avoid alert fatigue."""
        return report.severity == Severity.CRITICAL

    def build_payload(self, report: DriftReport, report_path: str) -> Dict[str, Any]:
        body = render_human(report)
        body += f"\n_Report file: `{report_path}`_\n"
        return {
            "title": (
                f"Critical infrastructure drift: {report.environment}/{report.region} "
                f"({report.summary.total} changes)"
            ),
            "body": body,
            "labels": list(ISSUE_LABELS),
        }

    def send(self, report: DriftReport, report_path: str) -> Dict[str, Any]:
        """
        Create the issue.

        Raises:
            NotificationError: when the API call fails or times out
        """
        url = f"{self.config.github_api_url.rstrip('/')}/repos/{self.config.github_repository}/issues"
        headers = {
            "Authorization": f"Bearer {self.config.github_token}",
            "Accept": "application/vnd.github+json",
        }

        logger.info(f"Creating GitHub issue in {self.config.github_repository}")

        try:
            response = self.session.post(
                url,
                json=self.build_payload(report, report_path),
                headers=headers,
                timeout=self.config.notification_timeout,
            )
            response.raise_for_status()
            issue = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NotificationError(f"Failed to create GitHub issue: {e}", channel=self.name)

        logger.info(f"GitHub issue created: {issue.get('html_url', 'unknown')}")
        return {"status": "sent", "issue_url": issue.get("html_url")}
