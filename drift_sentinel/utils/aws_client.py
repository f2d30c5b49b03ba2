"""
AWS Client Manager utility.

The sentinel never describes or mutates cloud resources itself: STS is used
for the credential prerequisite check and to record which account a report
was produced against.
"""

import logging
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

UNKNOWN_ACCOUNT = "unknown"


class AWSClientManager:
    """
    AWS client manager for centralized AWS service access.

    Sessions are created lazily so that constructing the manager never
    touches the network; the caller identity is looked up once and cached.
    """

    def __init__(self, config, region: Optional[str] = None):
        """
        Initialize AWS client manager.

        Args:
            config: Application configuration containing AWS settings
            region: Region override for this run (defaults to config.aws_region)
        """
        self.config = config
        self.region = region or config.aws_region
        self._session = None
        self._clients = {}
        self._identity = None

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> boto3.Session:
        """Create boto3 session with the configured profile, if any."""
        if self.config.aws_profile:
            logger.info(f"Created boto3 session with AWS profile: {self.config.aws_profile}")
            return boto3.Session(profile_name=self.config.aws_profile, region_name=self.region)

        logger.info("Created boto3 session with default credential chain")
        return boto3.Session(region_name=self.region)

    def get_client(self, service_name: str, region: Optional[str] = None) -> Any:
        """
        Get AWS service client with caching.

        Args:
            service_name: AWS service name (e.g., 'sts')
            region: Optional region override

        Returns:
            Boto3 client for the specified service
        """
        client_region = region or self.region
        client_key = f"{service_name}_{client_region}"

        if client_key in self._clients:
            return self._clients[client_key]

        config = Config(
            region_name=client_region,
            retries={
                'max_attempts': 3,
                'mode': 'adaptive'
            },
            read_timeout=30,
            connect_timeout=10
        )

        client = self.session.client(service_name, config=config)
        self._clients[client_key] = client

        logger.debug(f"Created {service_name} client for region {client_region}")
        return client

    def get_caller_identity(self) -> Dict[str, Any]:
        """
        Get caller identity information, looked up once per run.

        Raises:
            NoCredentialsError, ClientError, BotoCoreError: when STS is unreachable
        """
        if self._identity is None:
            self._identity = self.get_client("sts").get_caller_identity()
        return self._identity

    def verify_credentials(self) -> Dict[str, Any]:
        """
        Validate AWS credentials by making a simple API call.

        Returns:
            Caller identity of the validated credentials

        Raises:
            ConfigurationError: when no usable credentials are configured
        """
        profile = self.config.aws_profile or "default credential chain"
        try:
            identity = self.get_caller_identity()
        except NoCredentialsError:
            raise ConfigurationError(f"No AWS credentials found for {profile}")
        except (ClientError, BotoCoreError) as e:
            raise ConfigurationError(f"AWS credentials not valid for {profile}: {e}")

        logger.info("AWS credentials validated successfully")
        logger.info(f"Account ID: {identity.get('Account', UNKNOWN_ACCOUNT)}")
        logger.debug(f"User ARN: {identity.get('Arn', UNKNOWN_ACCOUNT)}")
        return identity

    def get_account_id(self) -> str:
        """
        Get the AWS account ID.

        Returns:
            AWS account ID, or "unknown" if it cannot be determined
        """
        try:
            identity = self.get_caller_identity()
        except (NoCredentialsError, ClientError, BotoCoreError) as e:
            logger.warning(f"Could not determine AWS account ID: {e}")
            return UNKNOWN_ACCOUNT

        return identity.get("Account") or UNKNOWN_ACCOUNT
