"""Service principal credentials for the Azure control plane.

The provisioner authenticates with a service principal (tenant, client id,
client secret) scoped to a single subscription. The secret is held only in
memory and never appears in logs or reprs.

SECURITY INVARIANTS:
1. AzureCredentials.client_secret is excluded from repr()
2. Client ids are truncated before being logged
3. A token is requested eagerly so bad credentials fail before any resource call
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from azure.core.exceptions import ClientAuthenticationError, ServiceRequestError
from azure.identity import ClientSecretCredential

from .config import MANAGEMENT_SCOPE, ConfigurationError

logger = logging.getLogger(__name__)

# Environment variables holding the service principal
CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_TENANT_ID",
    "AZURE_CLIENT_ID",
    "AZURE_CLIENT_SECRET",
    "AZURE_SUBSCRIPTION_ID",
)


class AuthenticationFailure(Exception):
    """Raised when authentication against the Azure control plane fails.

    This is fatal for the run; there is no retry.
    """

    pass


def mask_identifier(value: str) -> str:
    """Truncate an identifier for logging."""
    return value[:8] + "..." if len(value) > 8 else value


@dataclass(frozen=True)
class AzureCredentials:
    """Immutable service principal credentials for one subscription."""

    tenant_id: str
    client_id: str
    client_secret: str = field(repr=False)
    subscription_id: str

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("tenant_id", "client_id", "client_secret", "subscription_id")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(f"Credentials are missing required values: {missing}")

    @classmethod
    def from_env(cls) -> AzureCredentials:
        """Load credentials from AZURE_TENANT_ID, AZURE_CLIENT_ID,
        AZURE_CLIENT_SECRET and AZURE_SUBSCRIPTION_ID.

        Raises:
            ConfigurationError: If any variable is unset or empty.
        """
        missing = [key for key in CREDENTIAL_ENV_VARS if not os.environ.get(key)]
        if missing:
            raise ConfigurationError(
                "Configuration validation failed:\n  - "
                + "\n  - ".join(f"{key} is required" for key in missing)
            )

        return cls(
            tenant_id=os.environ["AZURE_TENANT_ID"],
            client_id=os.environ["AZURE_CLIENT_ID"],
            client_secret=os.environ["AZURE_CLIENT_SECRET"],
            subscription_id=os.environ["AZURE_SUBSCRIPTION_ID"],
        )


def get_client_secret_credential(credentials: AzureCredentials) -> ClientSecretCredential:
    """Build a ClientSecretCredential and verify it by acquiring a token.

    Args:
        credentials: Service principal credentials.

    Returns:
        ClientSecretCredential that has successfully issued a management token.

    Raises:
        AuthenticationFailure: If the token request is rejected or the token
            endpoint cannot be reached.
    """
    logger.info(
        "Authenticating with service principal",
        extra={
            "client_id": mask_identifier(credentials.client_id),
            "subscription_id": credentials.subscription_id,
        },
    )

    credential = ClientSecretCredential(
        tenant_id=credentials.tenant_id,
        client_id=credentials.client_id,
        client_secret=credentials.client_secret,
    )

    try:
        credential.get_token(MANAGEMENT_SCOPE)
    except (ClientAuthenticationError, ServiceRequestError) as e:
        logger.error(
            "Authentication failed",
            extra={"client_id": mask_identifier(credentials.client_id), "error": str(e)},
        )
        raise AuthenticationFailure(f"Authentication with Azure failed: {e}") from e

    logger.info("Authenticated with service principal")
    return credential
