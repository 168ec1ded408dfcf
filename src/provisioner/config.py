"""Configuration management with validation.

Runtime settings are loaded from environment variables and validated at
construction time so a misconfigured run fails before any Azure call is made.
Resource-type identifiers and provisioning defaults live here as named
constants.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# SignalR resource type used for name availability checks
SIGNALR_NAMESPACE = "Microsoft.SignalRService"
SIGNALR_RESOURCE_TYPE_NAME = "SignalR"
SIGNALR_RESOURCE_TYPE = f"{SIGNALR_NAMESPACE}/{SIGNALR_RESOURCE_TYPE_NAME}"

# Baseline SignalR tier applied when no SKU is given
DEFAULT_SIGNALR_SKU_NAME = "Free_F1"
DEFAULT_SIGNALR_SKU_TIER = "Free"
DEFAULT_SIGNALR_SKU_SIZE = "F1"

# Function app settings
FUNCTIONS_WORKER_RUNTIME_SETTING = "FUNCTIONS_WORKER_RUNTIME"
FUNCTIONS_EXTENSION_VERSION_SETTING = "FUNCTIONS_EXTENSION_VERSION"
AZURE_WEB_JOBS_STORAGE_SETTING = "AzureWebJobsStorage"
CONSUMPTION_PLAN_SKU_NAME = "Y1"
CONSUMPTION_PLAN_SKU_TIER = "Dynamic"
CONSUMPTION_PLAN_SUFFIX = "-plan"

# Storage accounts are general purpose
STORAGE_ACCOUNT_KIND = "StorageV2"
STORAGE_ACCOUNT_SKU = "Standard_LRS"

# Cosmos DB
DOCUMENT_DB_KIND = "GlobalDocumentDB"
DOCUMENT_DB_CONSISTENCY_LEVEL = "Eventual"
DOCUMENT_DB_PARTITION_KEY_PATH = "/id"
DEFAULT_COLLECTION_THROUGHPUT = 400
MIN_COLLECTION_THROUGHPUT = 400
MAX_COLLECTION_THROUGHPUT = 100_000

# Token scope for the ARM control plane
MANAGEMENT_SCOPE = "https://management.azure.com/.default"

# Timeouts (seconds) for a single remote operation
DEFAULT_OPERATION_TIMEOUT_SECONDS = 1800
MIN_OPERATION_TIMEOUT_SECONDS = 60
MAX_OPERATION_TIMEOUT_SECONDS = 7200

# Definition files are small YAML documents
MAX_DEFINITION_FILE_SIZE_BYTES = 1024 * 1024  # 1MB

# Input validation
MAX_RESOURCE_GROUP_NAME_LENGTH = 90
VALID_REGION_PATTERN = r"^[a-z]{2,}[a-z0-9]*$"


@dataclass(frozen=True)
class Settings:
    """Provisioner runtime settings.

    All fields are validated at construction time. Invalid settings raise
    ConfigurationError immediately rather than failing midway through a run.
    """

    operation_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS
    collection_throughput: int = DEFAULT_COLLECTION_THROUGHPUT

    # Storage teardown removes the enclosing resource group rather than the
    # account itself unless this is switched off.
    storage_teardown_deletes_group: bool = True

    definition_file: Path | None = None
    enable_json_logging: bool = True

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        errors: list[str] = []

        if not (
            MIN_OPERATION_TIMEOUT_SECONDS
            <= self.operation_timeout_seconds
            <= MAX_OPERATION_TIMEOUT_SECONDS
        ):
            errors.append(
                f"OPERATION_TIMEOUT must be between {MIN_OPERATION_TIMEOUT_SECONDS} "
                f"and {MAX_OPERATION_TIMEOUT_SECONDS} seconds"
            )

        if not (
            MIN_COLLECTION_THROUGHPUT <= self.collection_throughput <= MAX_COLLECTION_THROUGHPUT
        ):
            errors.append(
                f"COSMOS_COLLECTION_THROUGHPUT must be between {MIN_COLLECTION_THROUGHPUT} "
                f"and {MAX_COLLECTION_THROUGHPUT}"
            )
        elif self.collection_throughput % 100 != 0:
            errors.append("COSMOS_COLLECTION_THROUGHPUT must be a multiple of 100")

        if self.definition_file is not None and not self.definition_file.exists():
            errors.append(f"Definition file does not exist: {self.definition_file}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables.

        Environment Variables:
            OPERATION_TIMEOUT: Seconds allowed per remote operation (default: 1800)
            COSMOS_COLLECTION_THROUGHPUT: RU/s for new collections (default: 400)
            STORAGE_TEARDOWN_DELETES_GROUP: If "true", storage teardown deletes
                the resource group (default: true)
            INFRA_DEFINITION_FILE: YAML definition used instead of the
                built-in topology (default: unset)
            ENABLE_JSON_LOGGING: Emit JSON logs on stdout (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        definition_file = os.environ.get("INFRA_DEFINITION_FILE")

        return cls(
            operation_timeout_seconds=get_int(
                "OPERATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS
            ),
            collection_throughput=get_int(
                "COSMOS_COLLECTION_THROUGHPUT", DEFAULT_COLLECTION_THROUGHPUT
            ),
            storage_teardown_deletes_group=get_bool("STORAGE_TEARDOWN_DELETES_GROUP", True),
            definition_file=Path(definition_file) if definition_file else None,
            enable_json_logging=get_bool("ENABLE_JSON_LOGGING", True),
        )


def is_valid_region(region: str) -> bool:
    """Check that a region looks like an Azure location name."""
    return bool(re.match(VALID_REGION_PATTERN, region.lower()))
