"""Infrastructure definition loading with validation.

A definition file is a YAML document describing one topology. It is parsed
with yaml.safe_load, validated against the models below and then replayed
through the builder, so a definition obeys the same ordering rules as code
that calls the builder directly.

SECURITY: The file size is checked before reading to bound memory use.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .builder import InfrastructureConfigBuilder, PrecedingStepMissing, define_config
from .config import MAX_DEFINITION_FILE_SIZE_BYTES
from .models import InfrastructureConfig, ResourceSku

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when a definition file cannot be loaded or validated."""

    pass


# =============================================================================
# Definition document
# =============================================================================


class _Definition(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class ResourceGroupDefinition(_Definition):
    name: str
    region: str


class StorageAccountDefinition(_Definition):
    name: str
    region: str


class DocumentDbDefinition(_Definition):
    account_name: str = Field(alias="accountName")
    region: str
    write_replication_region: str = Field(alias="writeReplicationRegion")
    read_replication_region: str = Field(alias="readReplicationRegion")
    database_id: str | None = Field(None, alias="databaseId")
    collections: list[str] = Field(default_factory=list)


class SignalRDefinition(_Definition):
    service_name: str = Field(alias="serviceName")
    region: str
    sku: ResourceSku | None = None


class FunctionAppDefinition(_Definition):
    name: str
    region: str
    extensions_runtime_version: str = Field(alias="extensionsRuntimeVersion")
    worker_runtime: str | None = Field(None, alias="workerRuntime")


class InfrastructureDefinition(_Definition):
    """Root of a definition file. Keys are camelCase."""

    name: str
    resource_group: ResourceGroupDefinition | None = Field(None, alias="resourceGroup")
    storage_account: StorageAccountDefinition | None = Field(None, alias="storageAccount")
    document_db: DocumentDbDefinition | None = Field(None, alias="documentDb")
    signalr: SignalRDefinition | None = Field(None, alias="signalR")
    function_apps: list[FunctionAppDefinition] = Field(default_factory=list, alias="functionApps")

    def to_builder(self) -> InfrastructureConfigBuilder:
        """Replay the definition through the builder in dependency order."""
        builder = define_config(self.name)

        if self.resource_group is not None:
            builder.with_resource_group(self.resource_group.name, self.resource_group.region)

        if self.storage_account is not None:
            builder.with_storage_account(self.storage_account.name, self.storage_account.region)

        if self.document_db is not None:
            db = self.document_db
            builder.with_document_db_account(
                db.account_name,
                db.region,
                db.write_replication_region,
                db.read_replication_region,
            )
            if db.collections and db.database_id is None:
                raise SpecLoadError(
                    f"documentDb '{db.account_name}' lists collections without a databaseId"
                )
            for collection_id in db.collections:
                builder.with_document_db_collection(db.database_id, collection_id)

        if self.signalr is not None:
            builder.with_signalr_service(
                self.signalr.service_name, self.signalr.region, self.signalr.sku
            )

        for app in self.function_apps:
            builder.with_function_app(
                app.name, app.region, app.extensions_runtime_version, app.worker_runtime
            )

        return builder


def _format_validation_error(path: Path, error: ValidationError) -> str:
    errors = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        errors.append(f"  - {loc}: {item['msg']}")
    return f"Validation failed for {path}:\n" + "\n".join(errors)


def load_definition(path: Path) -> InfrastructureConfig:
    """Load a definition file and build the InfrastructureConfig it describes.

    Args:
        path: Path to the YAML definition.

    Returns:
        The validated configuration.

    Raises:
        SpecLoadError: If the file is missing, too large, not valid YAML,
            fails validation, or orders its steps incorrectly.
    """
    if not path.exists():
        raise SpecLoadError(f"Definition file not found: {path}")

    # SECURITY: Check file size before reading
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat definition file {path}: {e}") from e

    if file_size > MAX_DEFINITION_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Definition file exceeds maximum size of "
            f"{MAX_DEFINITION_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SpecLoadError(f"Failed to read definition file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Definition file must contain a YAML mapping: {path}")

    try:
        definition = InfrastructureDefinition.model_validate(raw_data)
        config = definition.to_builder().build()
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(path, e)) from e
    except PrecedingStepMissing as e:
        raise SpecLoadError(f"Invalid definition {path}: {e}") from e

    logger.info(
        "Loaded infrastructure definition",
        extra={"config_name": config.name, "path": str(path)},
    )
    return config
