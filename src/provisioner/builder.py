"""Fluent builder for InfrastructureConfig.

The order of calls defines which slots are available: a step that derives a
field from an earlier slot fails immediately with PrecedingStepMissing when
that slot has not been set yet. Dependent specs copy the values they derive at
the moment they are added, so later changes to a prerequisite do not
propagate.

Usage:
    config = (
        define_config("PlayResources")
        .with_resource_group("Play", "northeurope")
        .with_storage_account("playstorage", "northeurope")
        .with_function_app("play-client", "northeurope", "~2", "dotnet")
        .build()
    )
"""

from __future__ import annotations

from .models import (
    DocumentDbSpec,
    FunctionAppSpec,
    InfrastructureConfig,
    ResourceGroupSpec,
    ResourceSku,
    SignalRSpec,
    StorageAccountSpec,
)


class PrecedingStepMissing(Exception):
    """Raised when a builder step runs before the step it depends on.

    Attributes:
        step: The step that was attempted.
        missing: The slot that had to be set first.
    """

    def __init__(self, step: str, missing: str) -> None:
        self.step = step
        self.missing = missing
        super().__init__(f"'{step}' requires '{missing}' to be defined first")


class InfrastructureConfigBuilder:
    """Stateful builder that accumulates one InfrastructureConfig.

    A builder is single-use: after build() every further call raises
    RuntimeError.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._resource_group: ResourceGroupSpec | None = None
        self._storage_account: StorageAccountSpec | None = None
        self._document_db: DocumentDbSpec | None = None
        self._signalr: SignalRSpec | None = None
        self._function_apps: list[FunctionAppSpec] = []
        self._built = False

    @classmethod
    def define(cls, name: str) -> InfrastructureConfigBuilder:
        """Start a new configuration with the given logical name."""
        return cls(name)

    def _ensure_open(self) -> None:
        if self._built:
            raise RuntimeError(f"Builder for '{self._name}' has already been built")

    def _require_resource_group(self, step: str) -> ResourceGroupSpec:
        if self._resource_group is None:
            raise PrecedingStepMissing(step, "resource_group")
        return self._resource_group

    def with_resource_group(self, name: str, region: str) -> InfrastructureConfigBuilder:
        self._ensure_open()
        self._resource_group = ResourceGroupSpec(name=name, region=region)
        return self

    def with_storage_account(self, account_name: str, region: str) -> InfrastructureConfigBuilder:
        self._ensure_open()
        resource_group = self._require_resource_group("with_storage_account")
        self._storage_account = StorageAccountSpec(
            resource_group_name=resource_group.name,
            account_name=account_name,
            region=region,
        )
        return self

    def with_document_db_account(
        self,
        account_name: str,
        region: str,
        write_replication_region: str,
        read_replication_region: str,
    ) -> InfrastructureConfigBuilder:
        self._ensure_open()
        resource_group = self._require_resource_group("with_document_db_account")
        self._document_db = DocumentDbSpec(
            resource_group_name=resource_group.name,
            account_name=account_name,
            region=region,
            write_replication_region=write_replication_region,
            read_replication_region=read_replication_region,
        )
        return self

    def with_document_db_collection(
        self, database_id: str, collection_id: str
    ) -> InfrastructureConfigBuilder:
        """Set the database id and append a collection.

        The database id is overwritten on every call; collection ids are
        appended without deduplication.
        """
        self._ensure_open()
        if self._document_db is None:
            raise PrecedingStepMissing("with_document_db_collection", "document_db")
        self._document_db = self._document_db.model_copy(
            update={
                "database_id": database_id,
                "collection_ids": (*self._document_db.collection_ids, collection_id),
            }
        )
        return self

    def with_function_app(
        self,
        app_name: str,
        region: str,
        extensions_runtime_version: str,
        worker_runtime: str | None = None,
    ) -> InfrastructureConfigBuilder:
        self._ensure_open()
        resource_group = self._require_resource_group("with_function_app")
        if self._storage_account is None:
            raise PrecedingStepMissing("with_function_app", "storage_account")
        self._function_apps.append(
            FunctionAppSpec(
                resource_group_name=resource_group.name,
                app_name=app_name,
                region=region,
                storage_account_name=self._storage_account.account_name,
                extensions_runtime_version=extensions_runtime_version,
                worker_runtime=worker_runtime,
            )
        )
        return self

    def with_signalr_service(
        self,
        service_name: str,
        region: str,
        sku: ResourceSku | None = None,
    ) -> InfrastructureConfigBuilder:
        """Set the SignalR service. Without a sku the free tier is used."""
        self._ensure_open()
        resource_group = self._require_resource_group("with_signalr_service")
        self._signalr = SignalRSpec(
            resource_group_name=resource_group.name,
            region=region,
            sku=sku or ResourceSku.free(),
            service_name=service_name,
            description=service_name,
        )
        return self

    def build(self) -> InfrastructureConfig:
        """Return the accumulated configuration and close the builder."""
        self._ensure_open()
        self._built = True
        return InfrastructureConfig(
            name=self._name,
            resource_group=self._resource_group,
            storage_account=self._storage_account,
            document_db=self._document_db,
            signalr=self._signalr,
            function_apps=tuple(self._function_apps),
        )


def define_config(name: str) -> InfrastructureConfigBuilder:
    """Start a new InfrastructureConfig builder."""
    return InfrastructureConfigBuilder.define(name)
