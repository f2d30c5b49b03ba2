"""
Exit code contract consumed by CI pipelines and schedulers.

    0 - No drift detected
    1 - Error running detection
    2 - Drift detected (acceptable or high)
    3 - Critical drift detected

This mapping is part of the external interface; schedulers page on-call
rotations from it.
"""

from .models import Severity

EXIT_NO_DRIFT = 0
EXIT_ERROR = 1
EXIT_DRIFT = 2
EXIT_CRITICAL = 3

SEVERITY_EXIT_CODES = {
    Severity.NONE: EXIT_NO_DRIFT,
    Severity.ACCEPTABLE: EXIT_DRIFT,
    Severity.HIGH: EXIT_DRIFT,
    Severity.CRITICAL: EXIT_CRITICAL,
}


def resolve_exit_code(severity: Severity) -> int:
    """Map the run's final severity to its process exit code."""
    return SEVERITY_EXIT_CODES[severity]
