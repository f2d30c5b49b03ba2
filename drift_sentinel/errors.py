"""
Error taxonomy for the drift sentinel.

ConfigurationError, ExternalToolError and ParseInconsistencyError are fatal:
they abort the run before any report is written. NotificationError is
recovered by the dispatcher and never changes the run's outcome.
"""

from typing import Optional


class DriftSentinelError(Exception):
    """Base class for all drift sentinel errors."""

    stage = "unknown"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if stage:
            self.stage = stage


class ConfigurationError(DriftSentinelError):
    """Invalid environment, region, format or missing prerequisite."""

    stage = "configuration"


class ExternalToolError(DriftSentinelError):
    """The provisioning tool failed (network, auth, lock or syntax problems)."""

    stage = "plan"

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        output: str = "",
        artifact_path: Optional[str] = None,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output
        self.artifact_path = artifact_path


class ParseInconsistencyError(DriftSentinelError):
    """Extracted changes disagree with what the provisioning tool reported."""

    stage = "extract"


class NotificationError(DriftSentinelError):
    """A notification channel could not deliver its payload."""

    stage = "notify"

    def __init__(self, message: str, channel: str = "unknown"):
        super().__init__(message)
        self.channel = channel
