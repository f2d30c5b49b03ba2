"""Tools package: the provisioning tool and notification channel boundaries."""

from .terraform import PlanResult, TerragruntPlanSource
from .slack import SlackNotifier
from .github import GitHubIssueNotifier

__all__ = [
    "PlanResult",
    "TerragruntPlanSource",
    "SlackNotifier",
    "GitHubIssueNotifier",
]
