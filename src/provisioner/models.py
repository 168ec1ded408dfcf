"""Pydantic models for the provisioned resources.

These models provide:
1. Immutable value objects for every resource kind
2. Validation at the boundary (fail fast, fail loudly)
3. The InfrastructureConfig aggregate handed to the reconciler
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from .config import (
    DEFAULT_SIGNALR_SKU_NAME,
    DEFAULT_SIGNALR_SKU_SIZE,
    DEFAULT_SIGNALR_SKU_TIER,
    MAX_RESOURCE_GROUP_NAME_LENGTH,
    VALID_REGION_PATTERN,
    is_valid_region,
)

Name = Annotated[str, Field(min_length=1)]
ResourceGroupName = Annotated[str, Field(min_length=1, max_length=MAX_RESOURCE_GROUP_NAME_LENGTH)]


def _validate_region(value: str) -> str:
    if not is_valid_region(value):
        raise ValueError(f"region must match {VALID_REGION_PATTERN}: {value}")
    return value.lower()


class SpecModel(BaseModel):
    """Base for all resource value objects."""

    model_config = {"frozen": True, "extra": "forbid"}


# =============================================================================
# Resource Specs
# =============================================================================


class ResourceSku(SpecModel):
    """Pricing tier and capacity selector."""

    name: Name
    tier: str | None = None
    size: str | None = None
    capacity: int | None = Field(None, ge=1)

    @classmethod
    def free(cls) -> ResourceSku:
        """Baseline free SignalR tier."""
        return cls(
            name=DEFAULT_SIGNALR_SKU_NAME,
            tier=DEFAULT_SIGNALR_SKU_TIER,
            size=DEFAULT_SIGNALR_SKU_SIZE,
        )


class ResourceGroupSpec(SpecModel):
    """Resource group. Root of the dependency order."""

    name: ResourceGroupName
    region: str

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        return _validate_region(v)


class StorageAccountSpec(SpecModel):
    """General purpose storage account."""

    resource_group_name: ResourceGroupName
    account_name: Annotated[str, Field(min_length=3, max_length=24, pattern=r"^[a-z0-9]+$")]
    region: str

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        return _validate_region(v)


class DocumentDbSpec(SpecModel):
    """Cosmos DB account with an optional SQL database and its collections.

    collection_ids keeps insertion order and duplicates.
    """

    resource_group_name: ResourceGroupName
    account_name: Name
    region: str
    write_replication_region: str
    read_replication_region: str
    database_id: str | None = None
    collection_ids: tuple[str, ...] = ()

    @field_validator("region", "write_replication_region", "read_replication_region")
    @classmethod
    def validate_regions(cls, v: str) -> str:
        return _validate_region(v)


class FunctionAppSpec(SpecModel):
    """Function app hosted on a consumption plan."""

    resource_group_name: ResourceGroupName
    app_name: Name
    region: str
    storage_account_name: Name
    extensions_runtime_version: Name
    worker_runtime: str | None = None

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        return _validate_region(v)


class SignalRSpec(SpecModel):
    """SignalR service."""

    resource_group_name: ResourceGroupName
    region: str
    sku: ResourceSku = Field(default_factory=ResourceSku.free)
    service_name: Name
    description: str

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        return _validate_region(v)


# =============================================================================
# Aggregate
# =============================================================================


class InfrastructureConfig(SpecModel):
    """The full topology to provision.

    At most one resource group, storage account, Cosmos DB account and SignalR
    service; any number of function apps in declaration order.
    """

    name: Name
    resource_group: ResourceGroupSpec | None = None
    storage_account: StorageAccountSpec | None = None
    document_db: DocumentDbSpec | None = None
    signalr: SignalRSpec | None = None
    function_apps: tuple[FunctionAppSpec, ...] = ()
