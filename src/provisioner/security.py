"""Credential handling for the ARM client.

The provisioner authenticates with a managed identity only. Service principal
secrets, certificates and passwords in the environment are treated as a
misconfiguration and block client construction.

SECURITY INVARIANTS:
1. AZURE_CLIENT_SECRET and related variables must never be present
2. ManagedIdentityCredential is the only credential type handed out
"""

from __future__ import annotations

import logging
import os

from azure.identity import ManagedIdentityCredential
from azure.mgmt.resource import ResourceManagementClient

from .config import ArmSettings

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "Credential environment variable {env_var} is set. The provisioner only "
    "authenticates with a managed identity: remove the variable and assign a "
    "user-assigned or system-assigned identity to the host instead."
)


class SecretlessViolationError(Exception):
    """Raised when credential secrets are found in the environment."""

    pass


def enforce_secretless_architecture() -> None:
    """Refuse to continue when any credential secret is in the environment.

    Raises:
        SecretlessViolationError: If a forbidden variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "client_blocked",
                },
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))

    logger.debug("Secretless architecture verified", extra={"credential_type": "ManagedIdentity"})


def get_managed_identity_credential(client_id: str | None = None) -> ManagedIdentityCredential:
    """Return a managed identity credential after the secretless check.

    Args:
        client_id: Client id of a user-assigned identity; None selects the
            system-assigned identity.
    """
    enforce_secretless_architecture()

    if client_id:
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity")
    return ManagedIdentityCredential()


def build_resource_client(settings: ArmSettings) -> ResourceManagementClient:
    """Construct the ARM client for the configured subscription."""
    credential = get_managed_identity_credential(settings.client_id)
    return ResourceManagementClient(credential=credential, subscription_id=settings.subscription_id)
