"""
Infrastructure Drift Sentinel

Detects drift between Terraform/Terragrunt configuration and live AWS
infrastructure, classifies its severity, suggests remediation and reports
the result through files, notifications and a stable exit code contract.
"""

__version__ = "1.0.0"

from .core.drift_detector import DetectionResult, DriftDetector
from .core.plan_parser import PlanParser
from .core.remediation import RemediationEngine
from .core.risk_analyzer import RiskAnalyzer

__all__ = [
    "DetectionResult",
    "DriftDetector",
    "PlanParser",
    "RemediationEngine",
    "RiskAnalyzer",
]
