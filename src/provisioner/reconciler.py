"""Idempotent apply and teardown of an InfrastructureConfig.

apply walks the config in dependency order:
1. Authenticate once for the subscription
2. Resource group (create if absent), then list all groups
3. Storage account
4. Cosmos DB account, database and collections
5. SignalR service (own management session)
6. Function apps in declaration order (create, or update the worker runtime
   setting when it differs), then list the group's function apps

teardown runs the reverse: Cosmos DB, SignalR, function apps, storage account,
resource group.

Every step re-derives state from a fresh existence query before acting. Steps
run strictly one after another. A failing remote call propagates immediately
and aborts the remaining steps; nothing already created is rolled back, and
re-running is the recovery path. Check-then-act is not atomic, so concurrent
runs against the same resource group are unsupported.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .builder import PrecedingStepMissing
from .capabilities import (
    CloudProvider,
    CloudSession,
    InfoLogger,
    SignalRManagement,
)
from .config import (
    DOCUMENT_DB_CONSISTENCY_LEVEL,
    FUNCTIONS_WORKER_RUNTIME_SETTING,
    SIGNALR_RESOURCE_TYPE,
    Settings,
)
from .credentials import AzureCredentials
from .models import (
    DocumentDbSpec,
    FunctionAppSpec,
    InfrastructureConfig,
    ResourceGroupSpec,
    SignalRSpec,
    StorageAccountSpec,
)

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Reconciler entry points."""

    APPLY = "apply"
    TEARDOWN = "teardown"


@dataclass
class ReconcileResult:
    """Outcome of a single apply or teardown run.

    Resources are recorded as "<kind>:<name>".
    """

    operation: Operation
    config_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


def has_worker_runtime_changed(desired: str | None, current_settings: Mapping[str, str]) -> bool:
    """Compare the desired worker runtime with the deployed app setting.

    Unset on both sides is no change. A missing current setting counts as a
    change only when a runtime is desired; a present setting is a change
    whenever it differs from the desired value.
    """
    desired = desired or None
    current = current_settings.get(FUNCTIONS_WORKER_RUNTIME_SETTING)
    if current is None:
        return desired is not None
    return current != desired


class Reconciler:
    """Applies and tears down one fixed topology against a CloudProvider.

    The reconciler never mutates the config it is given; it only reads it and
    mutates remote state.
    """

    def __init__(
        self,
        provider: CloudProvider,
        settings: Settings | None = None,
        info_logger: InfoLogger | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings or Settings()
        self._logger: InfoLogger = info_logger or logger

    @property
    def settings(self) -> Settings:
        return self._settings

    # =========================================================================
    # Entry points
    # =========================================================================

    async def apply(
        self, credentials: AzureCredentials, config: InfrastructureConfig
    ) -> ReconcileResult:
        """Create or update every resource in the config.

        Raises:
            PrecedingStepMissing: If the config has no resource group.
            AuthenticationFailure: If authentication fails.
            AzureError: If any remote operation fails.
        """
        resource_group = self._require_resource_group(config, Operation.APPLY)
        result = ReconcileResult(operation=Operation.APPLY, config_name=config.name)

        self._logger.info(f"Creating {config.name} azure infrastructure")
        session = await self._authenticate(credentials)

        await self._ensure_resource_group(session, resource_group, result)
        await self._list_resource_groups(session)

        if config.storage_account is not None:
            await self._ensure_storage_account(session, config.storage_account, result)

        if config.document_db is not None:
            await self._ensure_document_db(session, config.document_db, result)

        if config.signalr is not None:
            signalr = await self._provider.signalr_management(credentials)
            await self._ensure_signalr_service(signalr, config.signalr, result)

        if config.function_apps:
            for app in config.function_apps:
                await self._ensure_function_app(session, app, result)
            await self._list_function_apps(session, resource_group.name)

        result.end_time = datetime.now(UTC)
        self._logger.info(f"Created or updated {config.name} azure infrastructure")
        return result

    async def teardown(
        self, credentials: AzureCredentials, config: InfrastructureConfig
    ) -> ReconcileResult:
        """Delete every resource in the config, most dependent first.

        Raises:
            PrecedingStepMissing: If the config has no resource group.
            AuthenticationFailure: If authentication fails.
            AzureError: If any remote operation fails.
        """
        resource_group = self._require_resource_group(config, Operation.TEARDOWN)
        result = ReconcileResult(operation=Operation.TEARDOWN, config_name=config.name)

        self._logger.info(f"Deleting {config.name} azure infrastructure")
        session = await self._authenticate(credentials)

        if config.document_db is not None:
            await self._delete_document_db(session, config.document_db, result)

        if config.signalr is not None:
            signalr = await self._provider.signalr_management(credentials)
            await self._delete_signalr_service(signalr, config.signalr, result)

        if config.function_apps:
            for app in config.function_apps:
                await self._delete_function_app(session, app, result)
            await self._list_function_apps(session, resource_group.name)

        if config.storage_account is not None:
            await self._delete_storage_account(session, config.storage_account, result)

        await self._delete_resource_group(session, resource_group, result)

        result.end_time = datetime.now(UTC)
        self._logger.info(f"Deleted {config.name} azure infrastructure")
        return result

    # =========================================================================
    # Shared steps
    # =========================================================================

    @staticmethod
    def _require_resource_group(
        config: InfrastructureConfig, operation: Operation
    ) -> ResourceGroupSpec:
        if config.resource_group is None:
            raise PrecedingStepMissing(operation.value, "resource_group")
        return config.resource_group

    async def _authenticate(self, credentials: AzureCredentials) -> CloudSession:
        self._logger.info("Authenticating with azure credentials")
        session = await self._provider.authenticate(credentials)
        self._logger.info("Authenticated with azure credentials")
        return session

    async def _list_resource_groups(self, session: CloudSession) -> None:
        self._logger.info("Listing all resource groups:")
        for group in await session.resource_groups.list_all():
            self._logger.info(f"\t Resource group: {group.name}")

    async def _list_function_apps(self, session: CloudSession, group: str) -> None:
        self._logger.info("Listing all function apps:")
        for app in await session.function_apps.list_by_group(group):
            self._logger.info(f"\t FunctionApp: {app.name}")

    # =========================================================================
    # Apply steps
    # =========================================================================

    async def _ensure_resource_group(
        self, session: CloudSession, spec: ResourceGroupSpec, result: ReconcileResult
    ) -> None:
        self._logger.info(f"Creating resource group with name {spec.name}")
        if await session.resource_groups.exists(spec.name):
            self._logger.info(f"Resource group already exists with name {spec.name}")
            result.unchanged.append(f"resource_group:{spec.name}")
            return

        await session.resource_groups.create(spec.name, spec.region)
        result.created.append(f"resource_group:{spec.name}")
        self._logger.info(f"Created resource group with name {spec.name}")

    async def _ensure_storage_account(
        self, session: CloudSession, spec: StorageAccountSpec, result: ReconcileResult
    ) -> None:
        where = f"{spec.account_name} in group {spec.resource_group_name}"
        self._logger.info(f"Creating storage account with name {where}")
        existing = await session.storage_accounts.get_by_group(
            spec.resource_group_name, spec.account_name
        )
        if existing is not None:
            self._logger.info(f"Storage account with name {where} already exists")
            result.unchanged.append(f"storage_account:{spec.account_name}")
            return

        await session.storage_accounts.create(
            spec.resource_group_name, spec.account_name, spec.region
        )
        result.created.append(f"storage_account:{spec.account_name}")
        self._logger.info(f"Created storage account with name {where}")

    async def _ensure_document_db(
        self, session: CloudSession, spec: DocumentDbSpec, result: ReconcileResult
    ) -> None:
        where = f"{spec.account_name} in group {spec.resource_group_name}"
        self._logger.info(f"Creating Cosmos account with name {where}")
        account = await session.document_db_accounts.get_by_group(
            spec.resource_group_name, spec.account_name
        )
        if account is not None:
            self._logger.info(f"Cosmos account with name {where} already exists")
            result.unchanged.append(f"document_db:{spec.account_name}")
        else:
            account = await session.document_db_accounts.create(
                spec.resource_group_name,
                spec.account_name,
                spec.region,
                DOCUMENT_DB_CONSISTENCY_LEVEL,
                spec.write_replication_region,
                spec.read_replication_region,
            )
            result.created.append(f"document_db:{spec.account_name}")
            self._logger.info(f"Created Cosmos account with name {where}")

        if spec.database_id is None:
            self._logger.info(f"No Cosmos database defined for account {spec.account_name}")
            return

        keys = await account.list_keys()
        client = await self._provider.document_client(
            account.document_endpoint, keys.primary_master_key
        )

        self._logger.info(f"Creating Cosmos database if not exists with id {spec.database_id}")
        await client.create_database_if_absent(spec.database_id)
        self._logger.info(f"Created Cosmos database with id {spec.database_id}")

        throughput = self._settings.collection_throughput
        for collection_id in spec.collection_ids:
            self._logger.info(
                f"Creating Cosmos collection if not exists for database "
                f"{spec.database_id} with id {collection_id}"
            )
            await client.create_collection_if_absent(spec.database_id, collection_id, throughput)
            self._logger.info(
                f"Created Cosmos collection for database {spec.database_id} with id {collection_id}"
            )

    async def _ensure_signalr_service(
        self, management: SignalRManagement, spec: SignalRSpec, result: ReconcileResult
    ) -> None:
        where = f"{spec.service_name} in group {spec.resource_group_name}"
        self._logger.info(f"Creating SignalR service with name {where}")
        available = await management.check_name_availability(
            spec.region, SIGNALR_RESOURCE_TYPE, spec.service_name
        )
        if not available:
            # Unavailable is taken to mean already provisioned; parameters of an
            # existing service are not compared or updated.
            self._logger.info(f"SignalR service with name {where} already exists")
            result.unchanged.append(f"signalr:{spec.service_name}")
            return

        await management.create_or_update(
            spec.resource_group_name,
            spec.service_name,
            region=spec.region,
            sku=spec.sku,
            tags={"description": spec.description},
        )
        result.created.append(f"signalr:{spec.service_name}")
        self._logger.info(f"Created SignalR service with name {where}")

    async def _ensure_function_app(
        self, session: CloudSession, spec: FunctionAppSpec, result: ReconcileResult
    ) -> None:
        where = f"{spec.app_name} in group {spec.resource_group_name}"
        self._logger.info(f"Creating function app with name {where}")
        existing = await session.function_apps.get_by_group(
            spec.resource_group_name, spec.app_name
        )

        if existing is None:
            app_settings = (
                {FUNCTIONS_WORKER_RUNTIME_SETTING: spec.worker_runtime}
                if spec.worker_runtime
                else None
            )
            await session.function_apps.create(
                spec.resource_group_name,
                spec.app_name,
                spec.region,
                spec.storage_account_name,
                spec.extensions_runtime_version,
                app_settings,
            )
            result.created.append(f"function_app:{spec.app_name}")
            self._logger.info(f"Created function app with name {where}")
            return

        self._logger.info(f"Function app with name {where} already exists")
        self._logger.info(f"Looking for changes in function app {where}")

        if not has_worker_runtime_changed(spec.worker_runtime, existing.app_settings):
            self._logger.info(f"There are no changes in function app {where}")
            result.unchanged.append(f"function_app:{spec.app_name}")
            return

        self._logger.info(f"Applying changes in function app {where}")
        await session.function_apps.update(
            existing,
            app_settings={FUNCTIONS_WORKER_RUNTIME_SETTING: spec.worker_runtime or None},
        )
        result.updated.append(f"function_app:{spec.app_name}")
        self._logger.info(f"Applied changes in function app {where}")

    # =========================================================================
    # Teardown steps
    # =========================================================================

    async def _delete_document_db(
        self, session: CloudSession, spec: DocumentDbSpec, result: ReconcileResult
    ) -> None:
        where = f"{spec.account_name} in group {spec.resource_group_name}"
        self._logger.info(f"Deleting Cosmos account with name {where}")
        account = await session.document_db_accounts.get_by_group(
            spec.resource_group_name, spec.account_name
        )
        if account is None:
            self._logger.info(f"Cosmos account with name {where} does not exist")
            return

        await session.document_db_accounts.delete_by_group(
            spec.resource_group_name, spec.account_name
        )
        result.deleted.append(f"document_db:{spec.account_name}")
        self._logger.info(f"Deleted Cosmos account with name {where}")

    async def _delete_signalr_service(
        self, management: SignalRManagement, spec: SignalRSpec, result: ReconcileResult
    ) -> None:
        where = f"{spec.service_name} in group {spec.resource_group_name}"
        self._logger.info(f"Deleting SignalR service with name {where}")
        available = await management.check_name_availability(
            spec.region, SIGNALR_RESOURCE_TYPE, spec.service_name
        )
        if available:
            self._logger.info(f"SignalR service with name {where} does not exist")
            return

        await management.delete(spec.resource_group_name, spec.service_name)
        result.deleted.append(f"signalr:{spec.service_name}")
        self._logger.info(f"Deleted SignalR service with name {where}")

    async def _delete_function_app(
        self, session: CloudSession, spec: FunctionAppSpec, result: ReconcileResult
    ) -> None:
        where = f"{spec.app_name} in group {spec.resource_group_name}"
        self._logger.info(f"Deleting function app with name {where}")
        existing = await session.function_apps.get_by_group(
            spec.resource_group_name, spec.app_name
        )
        if existing is None:
            self._logger.info(f"Function app with name {where} does not exist")
            return

        await session.function_apps.delete(spec.resource_group_name, spec.app_name)
        result.deleted.append(f"function_app:{spec.app_name}")
        self._logger.info(f"Deleted function app with name {where}")

    async def _delete_storage_account(
        self, session: CloudSession, spec: StorageAccountSpec, result: ReconcileResult
    ) -> None:
        where = f"{spec.account_name} in group {spec.resource_group_name}"
        self._logger.info(f"Deleting storage account with name {where}")
        existing = await session.storage_accounts.get_by_group(
            spec.resource_group_name, spec.account_name
        )
        if existing is None:
            self._logger.info(f"Storage account with name {where} does not exist")
            return

        if self._settings.storage_teardown_deletes_group:
            # The enclosing group goes with the account; the resource group step
            # that follows then finds it absent.
            self._logger.info(
                f"Deleting resource group {spec.resource_group_name} "
                f"to remove storage account {spec.account_name}"
            )
            await session.resource_groups.delete(spec.resource_group_name)
            result.deleted.append(f"resource_group:{spec.resource_group_name}")
            self._logger.info(f"Deleted resource group with name {spec.resource_group_name}")
            return

        await session.storage_accounts.delete(spec.resource_group_name, spec.account_name)
        result.deleted.append(f"storage_account:{spec.account_name}")
        self._logger.info(f"Deleted storage account with name {where}")

    async def _delete_resource_group(
        self, session: CloudSession, spec: ResourceGroupSpec, result: ReconcileResult
    ) -> None:
        self._logger.info(f"Deleting resource group with name {spec.name}")
        if not await session.resource_groups.exists(spec.name):
            self._logger.info(f"Resource group does not exist with name {spec.name}")
            return

        await session.resource_groups.delete(spec.name)
        result.deleted.append(f"resource_group:{spec.name}")
        self._logger.info(f"Deleted resource group with name {spec.name}")
