"""
Cosmos DB connection settings.

Settings are loaded once at application startup and handed to
``CosmosStore``. The repository itself never reads configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import AuthenticationError

DEFAULT_DATABASE = "cosmos-repository"
DEFAULT_APPLICATION_NAME = "cosmos-repository"


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use the account key (not recommended for production)
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
        - Works with Azure CLI, Managed Identity, Environment variables, etc.
    MANAGED_IDENTITY: Use Azure Managed Identity explicitly
    SERVICE_PRINCIPAL: Use Service Principal with client_id/client_secret
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


@dataclass
class CosmosSettings:
    """Settings for the Cosmos DB store.

    Environment Variables:
        COSMOS_ENDPOINT: Cosmos DB endpoint URL
        COSMOS_KEY: Cosmos DB key (if using key auth)
        COSMOS_DATABASE: Database name (default: cosmos-repository)
        COSMOS_AUTH_METHOD: Auth method (default: key when COSMOS_KEY is set,
            default_credential otherwise)
        COSMOS_APPLICATION_NAME: User agent suffix reported to the service
        AZURE_TENANT_ID: Azure tenant ID (for service principal)
        AZURE_CLIENT_ID: Azure client ID (for service principal/managed identity)
        AZURE_CLIENT_SECRET: Azure client secret (for service principal)

    Attributes:
        endpoint: Cosmos DB endpoint URL
        database_name: Database holding the containers
        auth_method: Authentication method
        key: Account key (only for KEY auth method)
        azure_tenant_id: Azure tenant ID (for SERVICE_PRINCIPAL)
        azure_client_id: Azure client/app ID (for SERVICE_PRINCIPAL/MANAGED_IDENTITY)
        azure_client_secret: Azure client secret (for SERVICE_PRINCIPAL)
        application_name: User agent suffix
        client_options: Extra keyword arguments for CosmosClient
    """

    endpoint: str
    database_name: str = DEFAULT_DATABASE
    auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    key: str | None = None

    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    application_name: str = DEFAULT_APPLICATION_NAME
    client_options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> CosmosSettings:
        """Create settings from environment variables.

        Raises:
            AuthenticationError: If COSMOS_ENDPOINT is not set
        """
        endpoint = os.environ.get("COSMOS_ENDPOINT")
        if not endpoint:
            raise AuthenticationError("cosmos", "COSMOS_ENDPOINT environment variable not set")

        key = os.environ.get("COSMOS_KEY")
        default_method = "key" if key else "default_credential"
        auth_method_str = os.environ.get("COSMOS_AUTH_METHOD", default_method)
        try:
            auth_method = CosmosAuthMethod(auth_method_str.lower())
        except ValueError:
            auth_method = CosmosAuthMethod.DEFAULT_CREDENTIAL

        return cls(
            endpoint=endpoint,
            database_name=os.environ.get("COSMOS_DATABASE", DEFAULT_DATABASE),
            auth_method=auth_method,
            key=key,
            azure_tenant_id=os.environ.get("AZURE_TENANT_ID"),
            azure_client_id=os.environ.get("AZURE_CLIENT_ID"),
            azure_client_secret=os.environ.get("AZURE_CLIENT_SECRET"),
            application_name=os.environ.get("COSMOS_APPLICATION_NAME", DEFAULT_APPLICATION_NAME),
        )


def get_credential(settings: CosmosSettings) -> Any:
    """Get the credential matching the configured auth method.

    Args:
        settings: Cosmos settings with auth configuration

    Returns:
        Credential object for Cosmos DB authentication

    Raises:
        AuthenticationError: If the credential cannot be created
    """
    auth_method = settings.auth_method

    if auth_method == CosmosAuthMethod.KEY:
        if not settings.key:
            raise AuthenticationError(settings.endpoint, "key required for KEY authentication")
        return settings.key

    if auth_method == CosmosAuthMethod.DEFAULT_CREDENTIAL:
        from azure.identity.aio import DefaultAzureCredential

        return DefaultAzureCredential()

    if auth_method == CosmosAuthMethod.MANAGED_IDENTITY:
        from azure.identity.aio import ManagedIdentityCredential

        # User-assigned identity when a client id is given, system-assigned otherwise
        if settings.azure_client_id:
            return ManagedIdentityCredential(client_id=settings.azure_client_id)
        return ManagedIdentityCredential()

    if auth_method == CosmosAuthMethod.SERVICE_PRINCIPAL:
        if not all(
            [settings.azure_tenant_id, settings.azure_client_id, settings.azure_client_secret]
        ):
            raise AuthenticationError(
                settings.endpoint,
                "azure_tenant_id, azure_client_id, and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication",
            )
        from azure.identity.aio import ClientSecretCredential

        return ClientSecretCredential(
            tenant_id=settings.azure_tenant_id,
            client_id=settings.azure_client_id,
            client_secret=settings.azure_client_secret,
        )

    raise AuthenticationError(settings.endpoint, f"Unsupported auth method: {auth_method}")
