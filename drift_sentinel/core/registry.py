"""
Registry of security-sensitive resource types.

A resource type is security-sensitive when changing it can affect access
control, network exposure or key material. The built-in prefixes cover
IAM, security groups, KMS and network ACLs; deployments may add prefixes
through configuration but cannot remove the built-in ones.
"""

import logging
from typing import Iterable, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SECURITY_SENSITIVE_PREFIXES: Tuple[str, ...] = (
    # Identity and access management
    "aws_iam_",
    # Network ingress/egress controls
    "aws_security_group",
    "aws_vpc_security_group_",
    "aws_default_security_group",
    # Key management
    "aws_kms_",
    # Network ACLs
    "aws_network_acl",
    "aws_default_network_acl",
)


class SecurityRegistry:
    """Prefix-based lookup of security-sensitive resource types."""

    def __init__(self, extra_prefixes: Iterable[str] = ()):
        prefixes = list(DEFAULT_SECURITY_SENSITIVE_PREFIXES)
        for prefix in extra_prefixes:
            prefix = prefix.strip().lower()
            if prefix and prefix not in prefixes:
                prefixes.append(prefix)
                logger.debug(f"Registered extra security-sensitive prefix: {prefix}")

        self.prefixes: Tuple[str, ...] = tuple(prefixes)

    def is_sensitive(self, resource_type: str) -> bool:
        resource_type = (resource_type or "").lower()
        return any(resource_type.startswith(prefix) for prefix in self.prefixes)
