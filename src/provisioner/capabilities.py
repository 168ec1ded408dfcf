"""Capability interfaces consumed by the reconciler.

The reconciler depends only on these protocols. provisioner.azure_cloud
implements them on top of the Azure SDK; tests use the in-memory
implementation in tests/azure_mock.

Every remote operation is a coroutine. Callers await them one at a time.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .credentials import AzureCredentials
    from .models import ResourceSku


class InfoLogger(Protocol):
    """Sink for progress messages. logging.Logger satisfies it."""

    def info(self, msg: str) -> None: ...


@dataclass(frozen=True)
class ResourceGroupInfo:
    name: str
    region: str


@dataclass(frozen=True)
class StorageAccountInfo:
    name: str
    resource_group_name: str
    region: str


@dataclass(frozen=True)
class DocumentDbKeys:
    primary_master_key: str


@dataclass(frozen=True)
class FunctionAppInfo:
    """Snapshot of a deployed function app and its application settings."""

    name: str
    resource_group_name: str
    app_settings: dict[str, str] = field(default_factory=dict)


class DocumentDbAccount(Protocol):
    """A provisioned Cosmos DB account."""

    @property
    def name(self) -> str: ...

    @property
    def document_endpoint(self) -> str: ...

    async def list_keys(self) -> DocumentDbKeys: ...


# =============================================================================
# Operation groups
# =============================================================================


class ResourceGroupOperations(Protocol):
    async def exists(self, name: str) -> bool: ...

    async def create(self, name: str, region: str) -> None: ...

    async def delete(self, name: str) -> None: ...

    async def list_all(self) -> list[ResourceGroupInfo]: ...


class StorageAccountOperations(Protocol):
    async def get_by_group(self, group: str, name: str) -> StorageAccountInfo | None: ...

    async def create(self, group: str, name: str, region: str) -> StorageAccountInfo: ...

    async def delete(self, group: str, name: str) -> None: ...


class DocumentDbAccountOperations(Protocol):
    async def get_by_group(self, group: str, name: str) -> DocumentDbAccount | None: ...

    async def create(
        self,
        group: str,
        name: str,
        region: str,
        consistency: str,
        write_region: str,
        read_region: str,
    ) -> DocumentDbAccount: ...

    async def delete_by_group(self, group: str, name: str) -> None: ...


class FunctionAppOperations(Protocol):
    async def list_by_group(self, group: str) -> list[FunctionAppInfo]: ...

    async def get_by_group(self, group: str, name: str) -> FunctionAppInfo | None: ...

    async def create(
        self,
        group: str,
        name: str,
        region: str,
        storage_account: str,
        runtime_version: str,
        app_settings: dict[str, str] | None = None,
    ) -> FunctionAppInfo: ...

    async def update(
        self,
        app: FunctionAppInfo,
        *,
        storage_account: str | None = None,
        app_settings: Mapping[str, str | None] | None = None,
    ) -> FunctionAppInfo:
        """Apply changed settings. A None value removes the setting."""
        ...

    async def delete(self, group: str, name: str) -> None: ...


class CloudSession(Protocol):
    """Subscription-scoped, authenticated control plane session."""

    @property
    def subscription_id(self) -> str: ...

    @property
    def resource_groups(self) -> ResourceGroupOperations: ...

    @property
    def storage_accounts(self) -> StorageAccountOperations: ...

    @property
    def document_db_accounts(self) -> DocumentDbAccountOperations: ...

    @property
    def function_apps(self) -> FunctionAppOperations: ...


class DocumentDataClient(Protocol):
    """Cosmos DB data plane for one account."""

    async def create_database_if_absent(self, database_id: str) -> None: ...

    async def create_collection_if_absent(
        self, database_id: str, collection_id: str, throughput: int
    ) -> None: ...


class SignalRManagement(Protocol):
    """SignalR management API. Authenticated separately from CloudSession."""

    async def check_name_availability(
        self, region: str, resource_type: str, name: str
    ) -> bool: ...

    async def create_or_update(
        self,
        group: str,
        name: str,
        *,
        region: str,
        sku: ResourceSku,
        tags: dict[str, str],
    ) -> None: ...

    async def delete(self, group: str, name: str) -> None: ...


class CloudProvider(Protocol):
    """Entry point for every remote capability."""

    async def authenticate(self, credentials: AzureCredentials) -> CloudSession: ...

    async def signalr_management(self, credentials: AzureCredentials) -> SignalRManagement: ...

    async def document_client(self, endpoint: str, master_key: str) -> DocumentDataClient: ...
