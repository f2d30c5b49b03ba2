"""
Remediation engine for infrastructure drift.

Scans the normalized change list for recognised resource-type patterns and
produces advisory guidance. The engine never reads or writes Severity:
adding a pattern here cannot change how a run is classified, and nothing
here performs the remediation itself.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Set

from .models import ChangeAction, RemediationSuggestion, ResourceChange

logger = logging.getLogger(__name__)

TAG_ATTRIBUTES = ("tags", "tags_all")


@dataclass(frozen=True)
class RemediationPattern:
    """A named predicate over the change list producing suggestions."""
    category: str
    evaluate: Callable[[Sequence[ResourceChange]], List[RemediationSuggestion]]


def _addresses(changes: Iterable[ResourceChange]) -> tuple:
    return tuple(c.address for c in changes)


def _is_security_group(change: ResourceChange) -> bool:
    return change.resource_type.startswith(
        ("aws_security_group", "aws_vpc_security_group_", "aws_default_security_group")
    )


def _is_security_group_rule(change: ResourceChange) -> bool:
    return change.resource_type in (
        "aws_security_group_rule",
        "aws_vpc_security_group_ingress_rule",
        "aws_vpc_security_group_egress_rule",
    )


def _security_group_suggestions(changes: Sequence[ResourceChange]) -> List[RemediationSuggestion]:
    matched = [c for c in changes if _is_security_group(c)]
    if not matched:
        return []

    suggestions = []

    destroyed = [c for c in matched if c.action.is_destructive]
    if destroyed:
        suggestions.append(RemediationSuggestion(
            category="security-group",
            title="Security group will be destroyed or replaced",
            level="critical",
            resources=_addresses(destroyed),
            steps=(
                "Identify why the security group was changed",
                "Check AWS CloudTrail for manual changes",
                "Review the security group configuration in code",
                "If the manual changes are correct: update Terraform code to match, "
                "then run terragrunt apply",
                "If Terraform is correct: apply Terraform to revert the manual changes, "
                "then document and communicate with the team",
            ),
        ))

    rule_changes = [
        c for c in matched
        if not c.action.is_destructive
        and (_is_security_group_rule(c)
             or (c.action == ChangeAction.UPDATE
                 and (c.touches("ingress", "egress") or not c.changed_attributes)))
    ]
    if rule_changes:
        suggestions.append(RemediationSuggestion(
            category="security-group",
            title="Security group rules have changed",
            level="warning",
            resources=_addresses(rule_changes),
            steps=(
                "Review the ingress/egress rule changes in the plan output",
                "Check whether rules were added manually in the AWS console",
                "Determine whether the changes are intentional or accidental",
                "Update Terraform code if the manual changes should be kept",
                "Apply Terraform to restore the original rules if they are unwanted",
            ),
        ))

    return suggestions


def _identity_access_suggestions(changes: Sequence[ResourceChange]) -> List[RemediationSuggestion]:
    matched = [c for c in changes if c.resource_type.startswith("aws_iam_")]
    if not matched:
        return []

    return [RemediationSuggestion(
        category="identity-access",
        title="IAM resources have changed - security impact possible",
        level="critical" if any(c.action.is_destructive for c in matched) else "warning",
        resources=_addresses(matched),
        steps=(
            "Check CloudTrail for IAM changes: aws cloudtrail lookup-events "
            "--lookup-attributes AttributeKey=ResourceType,AttributeValue=AWS::IAM::Role "
            "--max-items 20",
            "Review the changed IAM resources in the plan output",
            "If policies were updated manually: export the current policy "
            "(aws iam get-role-policy --role-name <name> --policy-name <name>), "
            "update Terraform code to match and apply",
            "If roles were modified by AWS services (ECS, Lambda): review the service "
            "console and consider lifecycle ignore_changes for those attributes",
            "Security review: ensure least privilege is maintained, check for privilege "
            "escalation and notify the security team if anything looks suspicious",
        ),
    )]


DATABASE_INSTANCE_TYPES = ("aws_db_instance", "aws_rds_cluster", "aws_rds_cluster_instance")
DATABASE_CONFIG_ATTRIBUTES = (
    "parameter_group_name",
    "db_parameter_group_name",
    "backup_retention_period",
    "multi_az",
    "instance_class",
    "engine_version",
    "allocated_storage",
)


def _database_suggestions(changes: Sequence[ResourceChange]) -> List[RemediationSuggestion]:
    matched = [c for c in changes if c.resource_type.startswith(("aws_db_", "aws_rds_"))]
    if not matched:
        return []

    suggestions = []

    data_loss = [
        c for c in matched
        if c.resource_type in DATABASE_INSTANCE_TYPES and c.action.is_destructive
    ]
    if data_loss:
        suggestions.append(RemediationSuggestion(
            category="database",
            title="Database instance will be destroyed or replaced - DATA LOSS RISK",
            level="critical",
            resources=_addresses(data_loss),
            steps=(
                "DO NOT APPLY without creating a backup",
                "Create a manual snapshot: aws rds create-db-snapshot "
                "--db-instance-identifier <name> --db-snapshot-identifier pre-drift-fix-<date>",
                "Review what changed: instance class, engine version or storage type",
                "Determine whether replacement is necessary; some parameters can change "
                "without replacement (consider apply_immediately = false)",
                "Plan a migration window during low traffic, notify stakeholders and "
                "test the restore procedure first",
            ),
        ))

    config_changes = [
        c for c in matched
        if c not in data_loss
        and (c.resource_type not in DATABASE_INSTANCE_TYPES
             or c.touches(*DATABASE_CONFIG_ATTRIBUTES)
             or c.action == ChangeAction.UPDATE)
    ]
    if config_changes:
        suggestions.append(RemediationSuggestion(
            category="database",
            title="Database configuration has changed",
            level="warning",
            resources=_addresses(config_changes),
            steps=(
                "Check whether the changes were made in the RDS console",
                "Review parameter group modifications",
                "If the manual changes are correct: update Terraform code and apply "
                "during a maintenance window",
                "If Terraform is correct: schedule the apply during a low-traffic window; "
                "some changes restart the instance",
            ),
        ))

    return suggestions


def _compute_service_suggestions(changes: Sequence[ResourceChange]) -> List[RemediationSuggestion]:
    matched = [
        c for c in changes
        if c.resource_type == "aws_ecs_task_definition"
        or (c.resource_type == "aws_ecs_service"
            and (c.touches("task_definition") or not c.changed_attributes or c.action != ChangeAction.UPDATE))
    ]
    if not matched:
        return []

    return [RemediationSuggestion(
        category="compute-service",
        title="ECS task definition or service has changed",
        level="warning",
        resources=_addresses(matched),
        steps=(
            "Check whether a deployment occurred outside Terraform",
            "Review the task definition revision: aws ecs describe-task-definition "
            "--task-definition <family>",
            "If the manual deployment was necessary: update Terraform code with the new "
            "configuration and apply to sync state",
        ),
    )]


def _autoscaling_suggestions(changes: Sequence[ResourceChange]) -> List[RemediationSuggestion]:
    matched = [
        c for c in changes
        if c.resource_type.startswith("aws_appautoscaling_")
        or (c.resource_type in ("aws_ecs_service", "aws_autoscaling_group")
            and c.touches("desired_count", "desired_capacity"))
    ]
    if not matched:
        return []

    return [RemediationSuggestion(
        category="autoscaling",
        title="Auto-scaling or desired count has changed",
        level="info",
        resources=_addresses(matched),
        steps=(
            "This is often acceptable drift caused by auto-scaling events or manual "
            "scaling during an incident",
            "Review whether scaling policies were modified manually",
            "If manual scaling was intentional, update desired_count in Terraform",
            "Manage only the baseline capacity in Terraform and let Application Auto "
            "Scaling manage current values",
            "Add lifecycle { ignore_changes = [desired_count] } to the resource",
        ),
    )]


def _tag_only_suggestions(changes: Sequence[ResourceChange]) -> List[RemediationSuggestion]:
    matched = [
        c for c in changes
        if c.action == ChangeAction.UPDATE
        and c.changed_attributes
        and set(c.changed_attributes) <= set(TAG_ATTRIBUTES)
    ]
    if not matched:
        return []

    return [RemediationSuggestion(
        category="tag-only",
        title="Only resource tags have changed",
        level="info",
        resources=_addresses(matched),
        steps=(
            "Tags are often added by AWS Cost Explorer, AWS Config or third-party "
            "monitoring and security tools",
            "Review the tag changes in the plan output and check who added them (CloudTrail)",
            "If the tags belong in Terraform, add them to the resource tags block and apply",
            "If the tags are managed externally, add lifecycle { ignore_changes = [tags] }",
        ),
    )]


DEFAULT_PATTERNS: List[RemediationPattern] = [
    RemediationPattern("security-group", _security_group_suggestions),
    RemediationPattern("identity-access", _identity_access_suggestions),
    RemediationPattern("database", _database_suggestions),
    RemediationPattern("compute-service", _compute_service_suggestions),
    RemediationPattern("autoscaling", _autoscaling_suggestions),
    RemediationPattern("tag-only", _tag_only_suggestions),
]

GENERAL_WORKFLOW_STEPS = (
    "Step 1: Investigate source - check AWS CloudTrail for manual changes, review "
    "recent deployments and incidents, decide whether the drift is intentional",
    "Step 2: Classify drift - acceptable (auto-scaling, AWS-managed), intentional "
    "(manual incident fixes), unintended (console edits) or critical (security, data stores)",
    "Step 3: Choose a strategy - A: update Terraform when the manual change was correct; "
    "B: revert with terragrunt apply when Terraform is correct; "
    "C: ignore expected drift with a documented lifecycle ignore rule",
    "Step 4: Prevent future drift - document change procedures, use AWS Config rules, "
    "alert on CloudTrail events for critical resources, restrict console access",
)


class RemediationEngine:
    """Engine for generating drift remediation guidance."""

    def __init__(self, patterns: Optional[Iterable[RemediationPattern]] = None):
        """
        Initialize remediation engine.

        Args:
            patterns: Ordered pattern registry (defaults to the built-in patterns)
        """
        self.patterns = list(DEFAULT_PATTERNS if patterns is None else patterns)

    def suggest(self, changes: Sequence[ResourceChange]) -> List[RemediationSuggestion]:
        """
        Generate remediation suggestions for a change list.

        Patterns are evaluated independently in registry order. A general
        workflow suggestion is appended whenever any change exists.
        """
        changes = tuple(changes)
        if not changes:
            return []

        logger.info("Generating remediation recommendations")

        suggestions = []
        for pattern in self.patterns:
            matched = pattern.evaluate(changes)
            if matched:
                logger.debug(f"Remediation pattern '{pattern.category}' produced {len(matched)} suggestions")
            suggestions.extend(matched)

        suggestions.append(self.general_workflow(changes, suggestions))

        logger.info(f"Generated {len(suggestions)} remediation suggestions")
        return suggestions

    def general_workflow(
        self,
        changes: Sequence[ResourceChange],
        suggestions: Sequence[RemediationSuggestion],
    ) -> RemediationSuggestion:
        """Build the generic workflow covering every change, matched or not."""
        covered: Set[str] = set()
        for suggestion in suggestions:
            covered.update(suggestion.resources)

        unmatched = [c for c in changes if c.address not in covered]

        return RemediationSuggestion(
            category="general",
            title=(
                f"General drift remediation workflow ({len(changes)} changes, "
                f"{len(unmatched)} without a specific suggestion)"
            ),
            level="info",
            resources=_addresses(unmatched),
            steps=GENERAL_WORKFLOW_STEPS,
        )
