"""
Core drift detection pipeline.

Runs one (environment, region) pair through plan source, change extraction,
severity classification, remediation advice, reporting, notification and
exit code resolution, sequentially and without shared state between runs.
"""

import getpass
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import ConfigurationError, ExternalToolError
from ..tools.github import GitHubIssueNotifier
from ..tools.slack import SlackNotifier
from ..tools.terraform import TerragruntPlanSource, tail_output
from ..utils.aws_client import UNKNOWN_ACCOUNT, AWSClientManager
from .dispatcher import NotificationDispatcher
from .exit_codes import resolve_exit_code
from .models import DriftReport, RemediationSuggestion, Severity
from .plan_parser import PlanParser
from .registry import SecurityRegistry
from .remediation import RemediationEngine
from .report import OutputFormat, ReportBuilder, changes_from_report, load_structured_report, render_report
from .risk_analyzer import RiskAnalyzer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of a completed drift detection run."""
    report: DriftReport
    report_path: Path
    rendered: str
    exit_code: int
    notifications: Dict[str, str] = field(default_factory=dict)


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class DriftDetector:
    """
    Drift detection engine.

    Components are built from the configuration unless supplied, which lets
    callers substitute any stage (tests, alternative plan sources).
    """

    def __init__(
        self,
        config,
        plan_source=None,
        parser: Optional[PlanParser] = None,
        risk_analyzer: Optional[RiskAnalyzer] = None,
        remediation_engine: Optional[RemediationEngine] = None,
        report_builder: Optional[ReportBuilder] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        aws_client=None,
    ):
        """
        Initialize the drift detector.

        Args:
            config: Application configuration
            plan_source: Plan source adapter (defaults to TerragruntPlanSource)
            parser: Change extractor
            risk_analyzer: Severity classifier
            remediation_engine: Remediation advisor
            report_builder: Report builder writing into the output directory
            dispatcher: Notification dispatcher
            aws_client: AWS client manager used for credentials and provenance
        """
        self.config = config
        self.plan_source = plan_source or TerragruntPlanSource(config)
        self.parser = parser or PlanParser(SecurityRegistry(config.extra_security_sensitive_types))
        self.risk_analyzer = risk_analyzer or RiskAnalyzer()
        self.remediation_engine = remediation_engine or RemediationEngine()
        self.report_builder = report_builder or ReportBuilder(config.drift_output_dir)
        self.dispatcher = dispatcher or NotificationDispatcher(
            [SlackNotifier(config), GitHubIssueNotifier(config)]
        )
        self.aws_client = aws_client

    def detect(
        self,
        environment: str,
        region: Optional[str] = None,
        output_format="console",
        notify: bool = True,
        timestamp: Optional[datetime] = None,
    ) -> DetectionResult:
        """
        Detect drift for one environment/region pair.

        Args:
            environment: Deployment environment
            region: AWS region (defaults to the configured region)
            output_format: structured, human or console (aliases accepted)
            notify: Dispatch notifications for drift
            timestamp: Run timestamp (defaults to now, UTC)

        Returns:
            DetectionResult with the written report and resolved exit code

        Raises:
            ConfigurationError, ExternalToolError, ParseInconsistencyError:
                fatal errors; no report is written
        """
        region = region or self.config.aws_region
        output_format = OutputFormat.parse(output_format)
        timestamp = timestamp or datetime.now(timezone.utc).replace(microsecond=0)

        logger.info(f"=== DRIFT DETECTION: {environment}/{region} ===")

        self.plan_source.validate_target(environment, region)
        aws_client = self._aws_client(region)
        if self.config.verify_credentials and aws_client is not None:
            aws_client.verify_credentials()

        plan = self.plan_source.run(environment, region, timestamp)
        if plan.failed:
            raise ExternalToolError(
                f"{self.config.plan_command} plan exited with code {plan.exit_code}",
                exit_code=plan.exit_code,
                output=tail_output(plan.raw_output),
                artifact_path=plan.artifact_path,
            )
        if plan.changes_detected:
            logger.info(f"{self.config.plan_command} reported pending changes (exit code {plan.exit_code})")
        else:
            logger.info(f"{self.config.plan_command} reported no pending changes")

        changes = self.parser.parse(plan.raw_output, plan.exit_code)

        severity = self.risk_analyzer.classify(changes)
        if severity == Severity.CRITICAL:
            logger.error(
                "Critical drift detected: security-related resources affected: "
                + ", ".join(self.risk_analyzer.explain(changes))
            )
        elif severity == Severity.HIGH:
            logger.warning("High severity drift: resources will be destroyed or replaced")

        suggestions = self.remediation_engine.suggest(changes)

        report = self.report_builder.build(
            environment=environment,
            region=region,
            timestamp=timestamp,
            severity=severity,
            changes=changes,
            suggestions=suggestions,
            plan_artifact_path=plan.artifact_path,
            detected_by=_current_user(),
            cloud_account=aws_client.get_account_id() if aws_client is not None else UNKNOWN_ACCOUNT,
        )

        report_path = self.report_builder.write(report, output_format)
        rendered = render_report(report, output_format)

        notifications = {}
        if notify:
            notifications = self.dispatcher.dispatch(report, report_path)

        exit_code = resolve_exit_code(severity)
        logger.info(
            f"Drift detection summary: environment={environment}, "
            f"total changes={report.summary.total}, severity={severity.name}, exit code={exit_code}"
        )

        return DetectionResult(
            report=report,
            report_path=report_path,
            rendered=rendered,
            exit_code=exit_code,
            notifications=notifications,
        )

    def suggest_remediation(self, report_path) -> List[RemediationSuggestion]:
        """
        Re-run the remediation advisor over a previously written structured report.

        Reports carrying ``resourceChanges`` are used directly; older reports
        fall back to re-parsing the plan artifact they reference.

        Raises:
            ConfigurationError: when the report or its plan artifact is unusable
        """
        logger.info(f"Analyzing drift report: {report_path}")
        data = load_structured_report(report_path)

        changes = changes_from_report(data)
        if changes is None:
            plan_artifact = Path(data.get("planArtifactPath") or "")
            if not plan_artifact.is_file():
                raise ConfigurationError(
                    f"Could not find plan output file referenced in report: {plan_artifact}"
                )
            changes = self.parser.parse(plan_artifact.read_bytes())

        return self.remediation_engine.suggest(changes)

    def _aws_client(self, region: str):
        if self.aws_client is None and self.config.verify_credentials:
            self.aws_client = AWSClientManager(self.config, region=region)
        return self.aws_client
