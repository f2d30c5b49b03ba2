"""
Data model shared by detection, classification, remediation and reporting.

Every type here is immutable; a run builds its values once and never
mutates them afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Tuple


class ChangeAction(Enum):
    """Action the provisioning tool proposes for a single resource."""

    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
    REPLACE = "replace"

    @property
    def is_destructive(self) -> bool:
        return self in (ChangeAction.DESTROY, ChangeAction.REPLACE)


class Severity(Enum):
    """Risk classification of a drift result, ordered NONE < ... < CRITICAL."""

    NONE = 0
    ACCEPTABLE = 1
    HIGH = 2
    CRITICAL = 3

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.value < other.value

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.value <= other.value

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.value >= other.value


@dataclass(frozen=True)
class ResourceChange:
    """One proposed change to one resource."""
    address: str
    resource_type: str
    action: ChangeAction
    security_sensitive: bool = False
    changed_attributes: Tuple[str, ...] = ()

    def touches(self, *attributes: str) -> bool:
        """Return True if any of the given top-level attributes changed."""
        return any(attr in self.changed_attributes for attr in attributes)


@dataclass(frozen=True)
class DriftSummary:
    """Aggregate counts over a list of resource changes."""
    to_add: int = 0
    to_change: int = 0
    to_destroy: int = 0
    to_replace: int = 0

    @property
    def total(self) -> int:
        return self.to_add + self.to_change + self.to_destroy + self.to_replace

    @classmethod
    def from_changes(cls, changes: Iterable[ResourceChange]) -> "DriftSummary":
        counts = {action: 0 for action in ChangeAction}
        for change in changes:
            counts[change.action] += 1

        return cls(
            to_add=counts[ChangeAction.CREATE],
            to_change=counts[ChangeAction.UPDATE],
            to_destroy=counts[ChangeAction.DESTROY],
            to_replace=counts[ChangeAction.REPLACE],
        )


@dataclass(frozen=True)
class RemediationSuggestion:
    """Advisory guidance bound to a recognised change pattern."""
    category: str
    title: str
    level: str  # "info", "warning", "critical"
    steps: Tuple[str, ...] = ()
    resources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DriftReport:
    """Complete, immutable output of one drift detection run."""
    environment: str
    region: str
    timestamp: datetime
    severity: Severity
    summary: DriftSummary
    changes: Tuple[ResourceChange, ...] = ()
    suggestions: Tuple[RemediationSuggestion, ...] = ()
    plan_artifact_path: str = ""
    detected_by: str = "unknown"
    cloud_account: str = "unknown"

    @property
    def drift_detected(self) -> bool:
        return self.summary.total > 0
