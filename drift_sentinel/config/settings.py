"""
Configuration settings for the drift sentinel.

Uses Pydantic Settings for environment variable management with validation.
A single frozen Settings value is built at process start and passed to every
component; nothing reads the environment mid-pipeline.
"""

import json
import re
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

REGION_PATTERN = re.compile(r"^[a-z]{2}(-gov|-iso[a-z]?)?-[a-z]+-\d+$")


class Settings(BaseSettings):
    """Configuration settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # AWS Configuration
    # Leave AWS_PROFILE unset to let boto3 and the provisioning tool use the
    # default credential chain (aws-vault, instance roles, OIDC, ...)
    aws_region: str = Field(default="us-east-1")
    aws_profile: Optional[str] = Field(default=None)
    verify_credentials: bool = Field(default=True)

    # Deployment layout
    allowed_environments: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["non-prod", "prod"])
    infra_root: Path = Field(default=Path("."))
    drift_output_dir: Path = Field(default=Path("drift-reports"))

    # Provisioning tool
    plan_command: str = Field(default="terragrunt")
    plan_timeout: int = Field(default=3600)  # 1 hour
    use_json_plan: bool = Field(default=False)

    # Security-sensitive resource registry (added to the built-in prefixes)
    extra_security_sensitive_types: Annotated[List[str], NoDecode] = Field(default_factory=list)

    # Slack Integration (Optional)
    slack_webhook_url: Optional[str] = Field(default=None)
    slack_channel: Optional[str] = Field(default=None)

    # GitHub issue tracker (Optional, critical drift only)
    github_token: Optional[str] = Field(default=None)
    github_repository: Optional[str] = Field(default=None)
    github_api_url: str = Field(default="https://api.github.com")

    notification_timeout: float = Field(default=5.0)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text")
    enable_debug_logs: bool = Field(default=False)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format is supported."""
        valid_formats = ["json", "text"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v.lower()

    @field_validator("aws_region")
    @classmethod
    def validate_aws_region(cls, v):
        """Validate the default region looks like an AWS region name."""
        if not REGION_PATTERN.match(v):
            raise ValueError(f"Invalid AWS region: {v}")
        return v

    @field_validator("allowed_environments", "extra_security_sensitive_types", mode="before")
    @classmethod
    def split_list(cls, v):
        """Accept comma-separated strings as well as JSON lists."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    raise ValueError(f"Invalid list value: {v}")
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("allowed_environments")
    @classmethod
    def validate_allowed_environments(cls, v):
        """Validate at least one deployment environment is declared."""
        environments = [env.strip() for env in v if env.strip()]
        if not environments:
            raise ValueError("At least one deployment environment must be allowed")
        return environments

    @field_validator("plan_timeout")
    @classmethod
    def validate_plan_timeout(cls, v):
        """Validate plan timeout is reasonable."""
        if not 60 <= v <= 14400:  # 1 minute to 4 hours
            raise ValueError("Plan timeout must be between 60 and 14400 seconds")
        return v

    @field_validator("notification_timeout")
    @classmethod
    def validate_notification_timeout(cls, v):
        """Validate notification timeout stays short."""
        if not 1.0 <= v <= 30.0:
            raise ValueError("Notification timeout must be between 1 and 30 seconds")
        return v

    @field_validator("github_repository")
    @classmethod
    def validate_github_repository(cls, v):
        """Validate repository is given as owner/name."""
        if v and not re.match(r"^[\w.-]+/[\w.-]+$", v):
            raise ValueError("GitHub repository must be in 'owner/name' form")
        return v

    def is_slack_enabled(self) -> bool:
        """Check if Slack integration is properly configured."""
        return bool(self.slack_webhook_url)

    def is_github_enabled(self) -> bool:
        """Check if the GitHub issue tracker is properly configured."""
        return bool(self.github_token and self.github_repository)

    def get_environment_dir(self, environment: str, region: str) -> Path:
        """
        Get the Terragrunt working directory for an environment/region pair.

        Args:
            environment: Deployment environment name (e.g. ``prod``)
            region: AWS region name

        Returns:
            Path of the directory holding the environment's Terragrunt stack
        """
        return Path(self.infra_root) / environment / region
