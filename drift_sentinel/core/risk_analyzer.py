"""
Risk analyzer core module.

Assigns exactly one Severity to a run from its normalized change list using
an ordered rule set (first match wins). Destructive operations on security
primitives dominate regardless of how many other changes are present.
"""

import logging
from typing import Callable, Iterable, List, Sequence, Tuple

from .models import ResourceChange, Severity

logger = logging.getLogger(__name__)

SeverityRule = Tuple[Severity, str, Callable[[Sequence[ResourceChange]], bool]]


def _security_destruction(changes: Sequence[ResourceChange]) -> bool:
    return any(c.security_sensitive and c.action.is_destructive for c in changes)


def _any_destruction(changes: Sequence[ResourceChange]) -> bool:
    return any(c.action.is_destructive for c in changes)


def _any_change(changes: Sequence[ResourceChange]) -> bool:
    return len(changes) > 0


SEVERITY_RULES: List[SeverityRule] = [
    (
        Severity.CRITICAL,
        "Security-sensitive resources will be destroyed or replaced",
        _security_destruction,
    ),
    (
        Severity.HIGH,
        "Resources will be destroyed or replaced",
        _any_destruction,
    ),
    (
        Severity.ACCEPTABLE,
        "Only additive or in-place changes detected",
        _any_change,
    ),
]

SEVERITY_RATIONALE = {
    Severity.CRITICAL: "Security-related resources affected. Immediate action required.",
    Severity.HIGH: "Resources will be destroyed or replaced. Review carefully.",
    Severity.ACCEPTABLE: "Minor configuration changes detected.",
    Severity.NONE: "No drift detected.",
}


class RiskAnalyzer:
    """
    Severity classifier for infrastructure drift.

    A pure function over the change list: no I/O and no state beyond the
    rule table, so the same input always yields the same severity.
    """

    def __init__(self, rules: Iterable[SeverityRule] = SEVERITY_RULES):
        self.rules = list(rules)

    def classify(self, changes: Sequence[ResourceChange]) -> Severity:
        """
        Classify the overall severity of a change list.

        Args:
            changes: Normalized resource changes for one run

        Returns:
            The severity of the first matching rule, or Severity.NONE
        """
        changes = tuple(changes)

        for severity, description, predicate in self.rules:
            if predicate(changes):
                logger.debug(f"Severity rule matched: {severity.name} ({description})")
                return severity

        return Severity.NONE

    def explain(self, changes: Sequence[ResourceChange]) -> List[str]:
        """List the addresses responsible for a destructive classification."""
        changes = tuple(changes)
        severity = self.classify(changes)

        if severity == Severity.CRITICAL:
            return [c.address for c in changes if c.security_sensitive and c.action.is_destructive]
        if severity == Severity.HIGH:
            return [c.address for c in changes if c.action.is_destructive]
        return []
