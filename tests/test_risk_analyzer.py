"""
Unit tests for severity classification and the exit code contract.
"""

import unittest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from drift_sentinel.core.exit_codes import (
    EXIT_CRITICAL,
    EXIT_DRIFT,
    EXIT_NO_DRIFT,
    resolve_exit_code,
)
from drift_sentinel.core.models import ChangeAction, DriftSummary, ResourceChange, Severity
from drift_sentinel.core.remediation import RemediationEngine
from drift_sentinel.core.risk_analyzer import RiskAnalyzer


def make_change(address, action, security_sensitive=False, changed_attributes=()):
    resource_type = address.split(".")[0]
    return ResourceChange(
        address=address,
        resource_type=resource_type,
        action=action,
        security_sensitive=security_sensitive,
        changed_attributes=tuple(changed_attributes),
    )


class TestRiskAnalyzer(unittest.TestCase):
    """Test cases for RiskAnalyzer class."""

    def setUp(self):
        """Set up test fixtures."""
        self.analyzer = RiskAnalyzer()
        self.engine = RemediationEngine()

    def test_no_changes(self):
        """Test an empty change list has no drift and no suggestions."""
        severity = self.analyzer.classify([])

        self.assertEqual(severity, Severity.NONE)
        self.assertEqual(resolve_exit_code(severity), EXIT_NO_DRIFT)
        self.assertEqual(self.engine.suggest([]), [])

    def test_in_place_updates_are_acceptable(self):
        """Test in-place updates of ordinary resources."""
        changes = [make_change(f"aws_instance.web{i}", ChangeAction.UPDATE) for i in range(3)]

        severity = self.analyzer.classify(changes)

        self.assertEqual(severity, Severity.ACCEPTABLE)
        self.assertEqual(resolve_exit_code(severity), EXIT_DRIFT)
        self.assertEqual(DriftSummary.from_changes(changes).to_change, 3)

    def test_security_destruction_is_critical(self):
        """Test destroying a security-sensitive resource."""
        changes = [make_change("aws_security_group_rule.ssh", ChangeAction.DESTROY, security_sensitive=True)]

        severity = self.analyzer.classify(changes)

        self.assertEqual(severity, Severity.CRITICAL)
        self.assertEqual(resolve_exit_code(severity), EXIT_CRITICAL)
        categories = [s.category for s in self.engine.suggest(changes)]
        self.assertIn("security-group", categories)

    def test_database_replacement_is_high(self):
        """Test replacing a non-sensitive data store."""
        changes = [make_change("aws_db_instance.main", ChangeAction.REPLACE)]

        severity = self.analyzer.classify(changes)

        self.assertEqual(severity, Severity.HIGH)
        self.assertEqual(resolve_exit_code(severity), EXIT_DRIFT)
        categories = [s.category for s in self.engine.suggest(changes)]
        self.assertIn("database", categories)

    def test_critical_dominates(self):
        """Test one security destruction outweighs any number of other changes."""
        changes = [make_change(f"aws_instance.web{i}", ChangeAction.CREATE) for i in range(50)]
        changes += [make_change("aws_s3_bucket.logs", ChangeAction.DESTROY)]
        changes += [make_change("aws_iam_role.deploy", ChangeAction.REPLACE, security_sensitive=True)]

        self.assertEqual(self.analyzer.classify(changes), Severity.CRITICAL)
        self.assertEqual(self.analyzer.explain(changes), ["aws_iam_role.deploy"])

    def test_sensitive_update_is_not_critical(self):
        """Test in-place updates of security resources stay acceptable."""
        changes = [make_change("aws_security_group.web", ChangeAction.UPDATE, security_sensitive=True)]

        self.assertEqual(self.analyzer.classify(changes), Severity.ACCEPTABLE)
        self.assertEqual(self.analyzer.explain(changes), [])

    def test_explain_high(self):
        """Test destructive addresses are listed for high severity."""
        changes = [
            make_change("aws_instance.web", ChangeAction.UPDATE),
            make_change("aws_s3_bucket.logs", ChangeAction.DESTROY),
        ]

        self.assertEqual(self.analyzer.classify(changes), Severity.HIGH)
        self.assertEqual(self.analyzer.explain(changes), ["aws_s3_bucket.logs"])

    def test_classification_is_deterministic(self):
        """Test repeated classification of the same input."""
        changes = [make_change("aws_s3_bucket.logs", ChangeAction.DESTROY)]

        results = {self.analyzer.classify(changes) for _ in range(5)}
        self.assertEqual(results, {Severity.HIGH})

    def test_suggestions_do_not_change_severity(self):
        """Test an advisor with no patterns leaves classification untouched."""
        changes = [make_change("aws_db_instance.main", ChangeAction.REPLACE)]
        before = self.analyzer.classify(changes)

        RemediationEngine(patterns=[]).suggest(changes)
        self.engine.suggest(changes)

        self.assertEqual(self.analyzer.classify(changes), before)

    def test_severity_ordering(self):
        """Test severities compare by rank."""
        self.assertLess(Severity.NONE, Severity.ACCEPTABLE)
        self.assertLess(Severity.ACCEPTABLE, Severity.HIGH)
        self.assertGreater(Severity.CRITICAL, Severity.HIGH)
        self.assertEqual(max([Severity.HIGH, Severity.CRITICAL, Severity.NONE]), Severity.CRITICAL)


if __name__ == "__main__":
    unittest.main()
