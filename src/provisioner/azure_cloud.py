"""Azure SDK implementation of the provisioner capabilities.

Clients:
- ResourceManagementClient: resource groups
- StorageManagementClient: storage accounts and their keys
- CosmosDBManagementClient: Cosmos DB accounts
- CosmosClient: Cosmos DB databases and containers (data plane)
- WebSiteManagementClient: consumption plans and function apps
- SignalRManagementClient: SignalR services

The SDK clients are synchronous. Every call runs in the default executor and
is bounded by Settings.operation_timeout_seconds so a hung request cannot
block the run forever. Long-running operations are awaited to completion
inside the same executor call.

ResourceNotFoundError from a lookup is translated to None; every other
AzureError propagates unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from azure.core.credentials import TokenCredential
from azure.core.exceptions import ResourceNotFoundError
from azure.cosmos import CosmosClient, PartitionKey
from azure.mgmt.cosmosdb import CosmosDBManagementClient
from azure.mgmt.cosmosdb.models import (
    ConsistencyPolicy,
    DatabaseAccountCreateUpdateParameters,
    Location,
)
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import ResourceGroup
from azure.mgmt.signalr import SignalRManagementClient
from azure.mgmt.signalr.models import NameAvailabilityParameters, SignalRResource
from azure.mgmt.signalr.models import ResourceSku as SignalRResourceSku
from azure.mgmt.storage import StorageManagementClient
from azure.mgmt.storage.models import Sku, StorageAccountCreateParameters
from azure.mgmt.web import WebSiteManagementClient
from azure.mgmt.web.models import (
    AppServicePlan,
    NameValuePair,
    Site,
    SiteConfig,
    SkuDescription,
    StringDictionary,
)

from .capabilities import (
    DocumentDbKeys,
    FunctionAppInfo,
    ResourceGroupInfo,
    StorageAccountInfo,
)
from .config import (
    AZURE_WEB_JOBS_STORAGE_SETTING,
    CONSUMPTION_PLAN_SKU_NAME,
    CONSUMPTION_PLAN_SKU_TIER,
    CONSUMPTION_PLAN_SUFFIX,
    DOCUMENT_DB_KIND,
    DOCUMENT_DB_PARTITION_KEY_PATH,
    FUNCTIONS_EXTENSION_VERSION_SETTING,
    STORAGE_ACCOUNT_KIND,
    STORAGE_ACCOUNT_SKU,
    Settings,
)
from .credentials import AzureCredentials, get_client_secret_credential
from .models import ResourceSku

logger = logging.getLogger(__name__)

T = TypeVar("T")

FUNCTION_APP_KIND = "functionapp"


async def run_blocking(
    operation: Callable[[], T],
    timeout_seconds: int,
    operation_name: str,
) -> T:
    """Run a blocking SDK call in the executor with a timeout.

    Args:
        operation: Zero-argument callable performing the SDK call.
        timeout_seconds: Maximum time to wait for completion.
        operation_name: Human-readable name for logging.

    Raises:
        TimeoutError: If the call exceeds the timeout.
        AzureError: If the Azure API returns an error.
    """
    loop = asyncio.get_event_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, operation),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        logger.error(
            "Azure operation timed out",
            extra={"operation": operation_name, "timeout_seconds": timeout_seconds},
        )
        raise


class _AzureOperations:
    """Common plumbing for an operation group."""

    def __init__(self, timeout_seconds: int) -> None:
        self._timeout = timeout_seconds

    async def _call(self, operation: Callable[[], T], operation_name: str) -> T:
        return await run_blocking(operation, self._timeout, operation_name)

    async def _lookup(self, operation: Callable[[], T], operation_name: str) -> T | None:
        try:
            return await self._call(operation, operation_name)
        except ResourceNotFoundError:
            return None


# =============================================================================
# Resource groups
# =============================================================================


class AzureResourceGroups(_AzureOperations):
    def __init__(self, client: ResourceManagementClient, timeout_seconds: int) -> None:
        super().__init__(timeout_seconds)
        self._client = client

    async def exists(self, name: str) -> bool:
        return await self._call(
            lambda: self._client.resource_groups.check_existence(name),
            "resource_groups.check_existence",
        )

    async def create(self, name: str, region: str) -> None:
        await self._call(
            lambda: self._client.resource_groups.create_or_update(
                name, ResourceGroup(location=region)
            ),
            "resource_groups.create_or_update",
        )

    async def delete(self, name: str) -> None:
        await self._call(
            lambda: self._client.resource_groups.begin_delete(name).result(),
            "resource_groups.begin_delete",
        )

    async def list_all(self) -> list[ResourceGroupInfo]:
        groups = await self._call(
            lambda: list(self._client.resource_groups.list()),
            "resource_groups.list",
        )
        return [ResourceGroupInfo(name=g.name, region=g.location) for g in groups]


# =============================================================================
# Storage accounts
# =============================================================================


class AzureStorageAccounts(_AzureOperations):
    def __init__(self, client: StorageManagementClient, timeout_seconds: int) -> None:
        super().__init__(timeout_seconds)
        self._client = client

    async def get_by_group(self, group: str, name: str) -> StorageAccountInfo | None:
        account = await self._lookup(
            lambda: self._client.storage_accounts.get_properties(group, name),
            "storage_accounts.get_properties",
        )
        if account is None:
            return None
        return StorageAccountInfo(
            name=account.name, resource_group_name=group, region=account.location
        )

    async def create(self, group: str, name: str, region: str) -> StorageAccountInfo:
        parameters = StorageAccountCreateParameters(
            sku=Sku(name=STORAGE_ACCOUNT_SKU),
            kind=STORAGE_ACCOUNT_KIND,
            location=region,
        )
        account = await self._call(
            lambda: self._client.storage_accounts.begin_create(group, name, parameters).result(),
            "storage_accounts.begin_create",
        )
        return StorageAccountInfo(
            name=account.name, resource_group_name=group, region=account.location
        )

    async def delete(self, group: str, name: str) -> None:
        await self._call(
            lambda: self._client.storage_accounts.delete(group, name),
            "storage_accounts.delete",
        )

    async def connection_string(self, group: str, name: str) -> str:
        """Build the connection string function apps use for AzureWebJobsStorage."""
        keys = await self._call(
            lambda: self._client.storage_accounts.list_keys(group, name),
            "storage_accounts.list_keys",
        )
        key = keys.keys[0].value
        return (
            f"DefaultEndpointsProtocol=https;AccountName={name};"
            f"AccountKey={key};EndpointSuffix=core.windows.net"
        )


# =============================================================================
# Cosmos DB
# =============================================================================


class AzureDocumentDbAccount(_AzureOperations):
    """A Cosmos DB account whose keys are fetched on demand."""

    def __init__(
        self,
        client: CosmosDBManagementClient,
        group: str,
        account: Any,
        timeout_seconds: int,
    ) -> None:
        super().__init__(timeout_seconds)
        self._client = client
        self._group = group
        self._account = account

    @property
    def name(self) -> str:
        return self._account.name

    @property
    def document_endpoint(self) -> str:
        return self._account.document_endpoint

    async def list_keys(self) -> DocumentDbKeys:
        keys = await self._call(
            lambda: self._client.database_accounts.list_keys(self._group, self.name),
            "database_accounts.list_keys",
        )
        return DocumentDbKeys(primary_master_key=keys.primary_master_key)


class AzureDocumentDbAccounts(_AzureOperations):
    def __init__(self, client: CosmosDBManagementClient, timeout_seconds: int) -> None:
        super().__init__(timeout_seconds)
        self._client = client

    async def get_by_group(self, group: str, name: str) -> AzureDocumentDbAccount | None:
        account = await self._lookup(
            lambda: self._client.database_accounts.get(group, name),
            "database_accounts.get",
        )
        if account is None:
            return None
        return AzureDocumentDbAccount(self._client, group, account, self._timeout)

    async def create(
        self,
        group: str,
        name: str,
        region: str,
        consistency: str,
        write_region: str,
        read_region: str,
    ) -> AzureDocumentDbAccount:
        locations = [
            Location(location_name=write_region, failover_priority=0, is_zone_redundant=False)
        ]
        if read_region != write_region:
            locations.append(
                Location(location_name=read_region, failover_priority=1, is_zone_redundant=False)
            )
        parameters = DatabaseAccountCreateUpdateParameters(
            location=region,
            kind=DOCUMENT_DB_KIND,
            locations=locations,
            consistency_policy=ConsistencyPolicy(default_consistency_level=consistency),
            database_account_offer_type="Standard",
        )
        account = await self._call(
            lambda: self._client.database_accounts.begin_create_or_update(
                group, name, parameters
            ).result(),
            "database_accounts.begin_create_or_update",
        )
        return AzureDocumentDbAccount(self._client, group, account, self._timeout)

    async def delete_by_group(self, group: str, name: str) -> None:
        await self._call(
            lambda: self._client.database_accounts.begin_delete(group, name).result(),
            "database_accounts.begin_delete",
        )


class AzureDocumentDataClient(_AzureOperations):
    def __init__(self, client: CosmosClient, timeout_seconds: int) -> None:
        super().__init__(timeout_seconds)
        self._client = client

    async def create_database_if_absent(self, database_id: str) -> None:
        await self._call(
            lambda: self._client.create_database_if_not_exists(id=database_id),
            "cosmos.create_database_if_not_exists",
        )

    async def create_collection_if_absent(
        self, database_id: str, collection_id: str, throughput: int
    ) -> None:
        database = self._client.get_database_client(database_id)
        await self._call(
            lambda: database.create_container_if_not_exists(
                id=collection_id,
                partition_key=PartitionKey(path=DOCUMENT_DB_PARTITION_KEY_PATH),
                offer_throughput=throughput,
            ),
            "cosmos.create_container_if_not_exists",
        )


# =============================================================================
# Function apps
# =============================================================================


class AzureFunctionApps(_AzureOperations):
    def __init__(
        self,
        client: WebSiteManagementClient,
        storage_accounts: AzureStorageAccounts,
        timeout_seconds: int,
    ) -> None:
        super().__init__(timeout_seconds)
        self._client = client
        self._storage_accounts = storage_accounts

    async def list_by_group(self, group: str) -> list[FunctionAppInfo]:
        sites = await self._lookup(
            lambda: list(self._client.web_apps.list_by_resource_group(group)),
            "web_apps.list_by_resource_group",
        )
        return [
            FunctionAppInfo(name=site.name, resource_group_name=group)
            for site in sites or []
            if FUNCTION_APP_KIND in (site.kind or "")
        ]

    async def get_by_group(self, group: str, name: str) -> FunctionAppInfo | None:
        site = await self._lookup(
            lambda: self._client.web_apps.get(group, name),
            "web_apps.get",
        )
        if site is None:
            return None
        settings = await self._call(
            lambda: self._client.web_apps.list_application_settings(group, name),
            "web_apps.list_application_settings",
        )
        return FunctionAppInfo(
            name=site.name,
            resource_group_name=group,
            app_settings=dict(settings.properties or {}),
        )

    async def create(
        self,
        group: str,
        name: str,
        region: str,
        storage_account: str,
        runtime_version: str,
        app_settings: dict[str, str] | None = None,
    ) -> FunctionAppInfo:
        plan_name = f"{name}{CONSUMPTION_PLAN_SUFFIX}"
        plan = await self._call(
            lambda: self._client.app_service_plans.begin_create_or_update(
                group,
                plan_name,
                AppServicePlan(
                    location=region,
                    kind=FUNCTION_APP_KIND,
                    sku=SkuDescription(
                        name=CONSUMPTION_PLAN_SKU_NAME, tier=CONSUMPTION_PLAN_SKU_TIER
                    ),
                ),
            ).result(),
            "app_service_plans.begin_create_or_update",
        )

        settings = {
            AZURE_WEB_JOBS_STORAGE_SETTING: await self._storage_accounts.connection_string(
                group, storage_account
            ),
            FUNCTIONS_EXTENSION_VERSION_SETTING: runtime_version,
            **(app_settings or {}),
        }
        site = Site(
            location=region,
            kind=FUNCTION_APP_KIND,
            server_farm_id=plan.id,
            site_config=SiteConfig(
                app_settings=[NameValuePair(name=k, value=v) for k, v in settings.items()]
            ),
        )
        created = await self._call(
            lambda: self._client.web_apps.begin_create_or_update(group, name, site).result(),
            "web_apps.begin_create_or_update",
        )
        return FunctionAppInfo(name=created.name, resource_group_name=group, app_settings=settings)

    async def update(
        self,
        app: FunctionAppInfo,
        *,
        storage_account: str | None = None,
        app_settings: Mapping[str, str | None] | None = None,
    ) -> FunctionAppInfo:
        group, name = app.resource_group_name, app.name
        current = await self._call(
            lambda: self._client.web_apps.list_application_settings(group, name),
            "web_apps.list_application_settings",
        )
        merged: dict[str, str] = dict(current.properties or {})

        if storage_account is not None:
            merged[AZURE_WEB_JOBS_STORAGE_SETTING] = await self._storage_accounts.connection_string(
                group, storage_account
            )
        for key, value in (app_settings or {}).items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value

        await self._call(
            lambda: self._client.web_apps.update_application_settings(
                group, name, StringDictionary(properties=merged)
            ),
            "web_apps.update_application_settings",
        )
        return FunctionAppInfo(name=name, resource_group_name=group, app_settings=merged)

    async def delete(self, group: str, name: str) -> None:
        await self._call(
            lambda: self._client.web_apps.delete(group, name),
            "web_apps.delete",
        )


# =============================================================================
# SignalR
# =============================================================================


class AzureSignalRManagement(_AzureOperations):
    def __init__(self, client: SignalRManagementClient, timeout_seconds: int) -> None:
        super().__init__(timeout_seconds)
        self._client = client

    async def check_name_availability(self, region: str, resource_type: str, name: str) -> bool:
        availability = await self._call(
            lambda: self._client.signal_r.check_name_availability(
                region, NameAvailabilityParameters(type=resource_type, name=name)
            ),
            "signal_r.check_name_availability",
        )
        return bool(availability.name_available)

    async def create_or_update(
        self,
        group: str,
        name: str,
        *,
        region: str,
        sku: ResourceSku,
        tags: dict[str, str],
    ) -> None:
        resource = SignalRResource(
            location=region,
            sku=SignalRResourceSku(name=sku.name, tier=sku.tier, capacity=sku.capacity),
            tags=tags,
        )
        await self._call(
            lambda: self._client.signal_r.begin_create_or_update(group, name, resource).result(),
            "signal_r.begin_create_or_update",
        )

    async def delete(self, group: str, name: str) -> None:
        await self._call(
            lambda: self._client.signal_r.begin_delete(group, name).result(),
            "signal_r.begin_delete",
        )


# =============================================================================
# Session and provider
# =============================================================================


class AzureSession:
    """Subscription-scoped management clients sharing one credential."""

    def __init__(
        self,
        credential: TokenCredential,
        subscription_id: str,
        timeout_seconds: int,
    ) -> None:
        self._subscription_id = subscription_id
        self._resource_groups = AzureResourceGroups(
            ResourceManagementClient(credential=credential, subscription_id=subscription_id),
            timeout_seconds,
        )
        self._storage_accounts = AzureStorageAccounts(
            StorageManagementClient(credential=credential, subscription_id=subscription_id),
            timeout_seconds,
        )
        self._document_db_accounts = AzureDocumentDbAccounts(
            CosmosDBManagementClient(credential=credential, subscription_id=subscription_id),
            timeout_seconds,
        )
        self._function_apps = AzureFunctionApps(
            WebSiteManagementClient(credential=credential, subscription_id=subscription_id),
            self._storage_accounts,
            timeout_seconds,
        )

    @property
    def subscription_id(self) -> str:
        return self._subscription_id

    @property
    def resource_groups(self) -> AzureResourceGroups:
        return self._resource_groups

    @property
    def storage_accounts(self) -> AzureStorageAccounts:
        return self._storage_accounts

    @property
    def document_db_accounts(self) -> AzureDocumentDbAccounts:
        return self._document_db_accounts

    @property
    def function_apps(self) -> AzureFunctionApps:
        return self._function_apps


class AzureCloudProvider:
    """CloudProvider backed by the Azure SDK."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    @property
    def _timeout(self) -> int:
        return self._settings.operation_timeout_seconds

    async def authenticate(self, credentials: AzureCredentials) -> AzureSession:
        credential = await run_blocking(
            lambda: get_client_secret_credential(credentials),
            self._timeout,
            "authenticate",
        )
        return AzureSession(credential, credentials.subscription_id, self._timeout)

    async def signalr_management(self, credentials: AzureCredentials) -> AzureSignalRManagement:
        credential = await run_blocking(
            lambda: get_client_secret_credential(credentials),
            self._timeout,
            "authenticate (signalr)",
        )
        client = SignalRManagementClient(
            credential=credential, subscription_id=credentials.subscription_id
        )
        return AzureSignalRManagement(client, self._timeout)

    async def document_client(self, endpoint: str, master_key: str) -> AzureDocumentDataClient:
        client = await run_blocking(
            lambda: CosmosClient(endpoint, credential=master_key),
            self._timeout,
            "cosmos.connect",
        )
        return AzureDocumentDataClient(client, self._timeout)
