"""
Drift report builder and renderers.

A DriftReport is built once per run; the structured, human and console
renderings are pure projections of that single value, so rendering the
same report twice in the same format yields identical output.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ConfigurationError
from .models import (
    ChangeAction,
    DriftReport,
    DriftSummary,
    RemediationSuggestion,
    ResourceChange,
    Severity,
)
from .risk_analyzer import SEVERITY_RATIONALE

logger = logging.getLogger(__name__)

RULE = "=" * 80


class OutputFormat(Enum):
    """Report representations understood by the report builder."""

    STRUCTURED = "structured"
    HUMAN = "human"
    CONSOLE = "console"

    @property
    def extension(self) -> str:
        return {"structured": "json", "human": "md", "console": "txt"}[self.value]

    @classmethod
    def parse(cls, value) -> "OutputFormat":
        """Resolve a format name or one of its aliases (json, markdown, text)."""
        if isinstance(value, OutputFormat):
            return value

        aliases = {
            "structured": cls.STRUCTURED,
            "json": cls.STRUCTURED,
            "human": cls.HUMAN,
            "markdown": cls.HUMAN,
            "md": cls.HUMAN,
            "console": cls.CONSOLE,
            "text": cls.CONSOLE,
            "txt": cls.CONSOLE,
        }
        try:
            return aliases[str(value).strip().lower()]
        except KeyError:
            raise ConfigurationError(
                f"Invalid output format: {value}. Must be one of: structured, human, console"
            )


def format_timestamp(timestamp: datetime) -> str:
    """RFC3339 UTC timestamp with a Z suffix."""
    return timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _display_timestamp(timestamp: datetime) -> str:
    return timestamp.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


class ReportBuilder:
    """Builds immutable drift reports and writes them to durable storage."""

    def __init__(self, output_dir):
        """
        Initialize the report builder.

        Args:
            output_dir: Directory receiving rendered reports
        """
        self.output_dir = Path(output_dir)

    def build(
        self,
        environment: str,
        region: str,
        timestamp: datetime,
        severity: Severity,
        changes: Sequence[ResourceChange],
        suggestions: Sequence[RemediationSuggestion],
        plan_artifact_path: str = "",
        detected_by: str = "unknown",
        cloud_account: str = "unknown",
    ) -> DriftReport:
        """Assemble the single DriftReport of a run."""
        changes = tuple(changes)
        return DriftReport(
            environment=environment,
            region=region,
            timestamp=timestamp,
            severity=severity,
            summary=DriftSummary.from_changes(changes),
            changes=changes,
            suggestions=tuple(suggestions),
            plan_artifact_path=str(plan_artifact_path),
            detected_by=detected_by,
            cloud_account=cloud_account,
        )

    def report_path(self, report: DriftReport, output_format: OutputFormat) -> Path:
        stamp = report.timestamp.astimezone(timezone.utc).strftime("%Y%m%d_%H%M%S")
        name = f"{report.environment}-{report.region}-drift-{stamp}.{output_format.extension}"
        return self.output_dir / name

    def write(self, report: DriftReport, output_format: OutputFormat) -> Path:
        """
        Render and write a report atomically.

        The report only appears at its canonical path once fully written, so
        downstream automation can treat its presence as a completion signal.
        """
        output_format = OutputFormat.parse(output_format)
        path = self.report_path(report, output_format)
        content = render_report(report, output_format)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.output_dir), prefix=".drift-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.info(f"Report saved to: {path}")
        return path


def render_report(report: DriftReport, output_format) -> str:
    """Render a report in the requested representation."""
    output_format = OutputFormat.parse(output_format)
    if output_format == OutputFormat.STRUCTURED:
        return render_structured(report)
    if output_format == OutputFormat.HUMAN:
        return render_human(report)
    return render_console(report)


# ----------------------------------------------------------------------
# Structured (JSON)
# ----------------------------------------------------------------------

def serialize_change(change: ResourceChange) -> Dict[str, Any]:
    return {
        "address": change.address,
        "resourceType": change.resource_type,
        "action": change.action.value,
        "securitySensitive": change.security_sensitive,
        "changedAttributes": list(change.changed_attributes),
    }


def deserialize_change(data: Dict[str, Any]) -> ResourceChange:
    return ResourceChange(
        address=data["address"],
        resource_type=data["resourceType"],
        action=ChangeAction(data["action"]),
        security_sensitive=bool(data.get("securitySensitive", False)),
        changed_attributes=tuple(data.get("changedAttributes") or ()),
    )


def serialize_suggestion(suggestion: RemediationSuggestion) -> Dict[str, Any]:
    return {
        "category": suggestion.category,
        "title": suggestion.title,
        "level": suggestion.level,
        "resources": list(suggestion.resources),
        "steps": list(suggestion.steps),
    }


def report_to_dict(report: DriftReport) -> Dict[str, Any]:
    """Structured report with the stable field names automation relies on."""
    summary = report.summary
    return {
        "timestamp": format_timestamp(report.timestamp),
        "environment": report.environment,
        "region": report.region,
        "driftDetected": report.drift_detected,
        "severity": report.severity.name,
        "summary": {
            "resourcesToAdd": summary.to_add,
            "resourcesToChange": summary.to_change,
            "resourcesToDestroy": summary.to_destroy,
            "resourcesToReplace": summary.to_replace,
            "totalChanges": summary.total,
        },
        "planArtifactPath": report.plan_artifact_path,
        "detectedBy": report.detected_by,
        "cloudAccount": report.cloud_account,
        "resourceChanges": [serialize_change(c) for c in report.changes],
        "remediationSuggestions": [serialize_suggestion(s) for s in report.suggestions],
    }


def render_structured(report: DriftReport) -> str:
    return json.dumps(report_to_dict(report), indent=2) + "\n"


# ----------------------------------------------------------------------
# Human-readable (Markdown)
# ----------------------------------------------------------------------

SEVERITY_BADGES = {
    Severity.CRITICAL: "🚨",
    Severity.HIGH: "⚠️",
    Severity.ACCEPTABLE: "ℹ️",
    Severity.NONE: "✅",
}


def _recommended_actions(report: DriftReport) -> List[str]:
    if not report.drift_detected:
        return []

    actions = [
        f"Review the detailed plan output: `{report.plan_artifact_path}`",
        "Investigate the source of changes (manual AWS console changes?)",
        "Determine if drift is acceptable or needs remediation",
        "Follow the drift resolution procedure and apply the remediation suggestions below",
    ]
    if report.severity == Severity.CRITICAL:
        actions.insert(0, "Notify the security team and review security-sensitive changes immediately")
    if report.summary.to_destroy or report.summary.to_replace:
        actions.append("Back up any data held by resources that will be destroyed or replaced")
    return actions


def render_human(report: DriftReport) -> str:
    summary = report.summary
    lines = [
        "# Infrastructure Drift Report",
        "",
        "## Summary",
        "",
        f"- **Environment:** {report.environment}",
        f"- **Region:** {report.region}",
        f"- **Timestamp:** {_display_timestamp(report.timestamp)}",
        f"- **Drift Detected:** {'Yes ⚠️' if report.drift_detected else 'No ✅'}",
        f"- **Severity:** {report.severity.name}",
        "",
        "## Resource Changes",
        "",
        "| Change Type | Count |",
        "|------------|-------|",
        f"| Resources to Add | {summary.to_add} |",
        f"| Resources to Update | {summary.to_change} |",
        f"| Resources to Destroy | {summary.to_destroy} |",
        f"| Resources to Replace | {summary.to_replace} |",
        f"| **Total Changes** | **{summary.total}** |",
        "",
    ]

    if report.changes:
        lines += [
            "| Address | Type | Action | Security Sensitive |",
            "|---------|------|--------|--------------------|",
        ]
        for change in report.changes:
            sensitive = "yes" if change.security_sensitive else "no"
            lines.append(
                f"| `{change.address}` | {change.resource_type} | {change.action.value} | {sensitive} |"
            )
        lines.append("")

    lines += [
        "## Severity Classification",
        "",
        f"{SEVERITY_BADGES[report.severity]} **{report.severity.name}** - "
        f"{SEVERITY_RATIONALE[report.severity]}",
        "",
        "## Recommended Actions",
        "",
    ]

    actions = _recommended_actions(report)
    if actions:
        lines += [f"- [ ] {action}" for action in actions]
    else:
        lines.append("No action required - infrastructure is in sync with Terraform state.")
    lines.append("")

    if report.suggestions:
        lines += ["## Remediation Suggestions", ""]
        for suggestion in report.suggestions:
            lines += [f"### {suggestion.title} ({suggestion.level})", ""]
            if suggestion.resources:
                lines.append("Resources: " + ", ".join(f"`{r}`" for r in suggestion.resources))
                lines.append("")
            lines += [f"{i}. {step}" for i, step in enumerate(suggestion.steps, 1)]
            lines.append("")

    lines += [
        "## Details",
        "",
        f"For full plan output, see: `{report.plan_artifact_path}`",
        "",
        "---",
        "",
        "*Generated by drift detection automation*",
        f"*Detected by: {report.detected_by}*",
        f"*AWS Account: {report.cloud_account}*",
    ]
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# Console (plain text)
# ----------------------------------------------------------------------

def render_console(report: DriftReport) -> str:
    summary = report.summary
    lines = [
        RULE,
        "INFRASTRUCTURE DRIFT REPORT",
        RULE,
        f"Environment:     {report.environment}",
        f"Region:          {report.region}",
        f"Timestamp:       {_display_timestamp(report.timestamp)}",
        f"Drift Detected:  {'Yes' if report.drift_detected else 'No'}",
        f"Severity:        {report.severity.name} - {SEVERITY_RATIONALE[report.severity]}",
        "",
        f"Resources to Add:       {summary.to_add}",
        f"Resources to Update:    {summary.to_change}",
        f"Resources to Destroy:   {summary.to_destroy}",
        f"Resources to Replace:   {summary.to_replace}",
        f"Total Changes:          {summary.total}",
    ]

    if report.changes:
        lines += ["", "Changes:"]
        for change in report.changes:
            marker = " [security]" if change.security_sensitive else ""
            lines.append(f"  {change.action.value:<8} {change.address}{marker}")

    specific = [s for s in report.suggestions if s.category != "general"]
    if specific:
        lines += ["", "Remediation:"]
        for suggestion in specific:
            lines.append(f"  [{suggestion.level.upper()}] {suggestion.title}")

    lines += [
        "",
        f"Full plan output: {report.plan_artifact_path}",
        f"Detected by: {report.detected_by}",
        f"AWS Account: {report.cloud_account}",
        RULE,
    ]
    return "\n".join(lines) + "\n"


def render_suggestions(suggestions: Sequence[RemediationSuggestion]) -> str:
    """Render advisor output on its own, as printed by suggest-remediation."""
    lines = [RULE, "DRIFT REMEDIATION SUGGESTIONS", RULE, ""]

    if not suggestions:
        lines += ["No drift recorded in this report - nothing to remediate.", ""]

    for suggestion in suggestions:
        lines.append(f"{suggestion.title} [{suggestion.level.upper()}]")
        lines.append("-" * 75)
        if suggestion.resources:
            lines.append("Resources:")
            lines += [f"  - {address}" for address in suggestion.resources]
        lines += [f"  {i}. {step}" for i, step in enumerate(suggestion.steps, 1)]
        lines.append("")

    lines.append(RULE)
    return "\n".join(lines) + "\n"


def load_structured_report(path) -> Dict[str, Any]:
    """
    Load a previously written structured report.

    Raises:
        ConfigurationError: when the file is missing or not a structured report
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"File not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Not a structured drift report: {path} ({e})")

    if not isinstance(data, dict) or "severity" not in data or "summary" not in data:
        raise ConfigurationError(f"Not a structured drift report: {path}")
    return data


def changes_from_report(data: Dict[str, Any]) -> Optional[List[ResourceChange]]:
    """Rebuild the change list recorded in a structured report, if present."""
    if "resourceChanges" not in data:
        return None
    try:
        return [deserialize_change(item) for item in data["resourceChanges"]]
    except (KeyError, ValueError, TypeError) as e:
        raise ConfigurationError(f"Malformed resourceChanges in report: {e}")
