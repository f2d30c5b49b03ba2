"""Core functionality for drift detection, classification and remediation."""

from .drift_detector import DetectionResult, DriftDetector
from .plan_parser import PlanParser
from .risk_analyzer import RiskAnalyzer
from .remediation import RemediationEngine

__all__ = [
    "DetectionResult",
    "DriftDetector",
    "PlanParser",
    "RiskAnalyzer",
    "RemediationEngine",
]
