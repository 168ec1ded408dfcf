"""Main entry point for the Play infrastructure provisioner.

A run loads settings and service principal credentials from the
environment, resolves the topology (a YAML definition when one is
configured, the built-in Play topology otherwise) and applies or tears it
down once.

Exit codes:
    0: success
    1: configuration, definition or remote failure
    2: authentication failure
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from azure.core.exceptions import AzureError

from .azure_cloud import AzureCloudProvider
from .builder import PrecedingStepMissing, define_config
from .capabilities import CloudProvider
from .config import ConfigurationError, Settings
from .credentials import AuthenticationFailure, AzureCredentials
from .models import InfrastructureConfig
from .reconciler import Operation, ReconcileResult, Reconciler
from .spec_loader import SpecLoadError, load_definition

DEFAULT_REGION = "northeurope"
LOG_HANDLER_NAME = "provisioner"

_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Extra fields passed via extra={...}
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(json_output: bool = True) -> None:
    """Configure logging on stdout, as JSON unless json_output is False.

    Calling it again leaves the existing provisioner handler in place.
    """
    root_logger = logging.getLogger()
    if any(h.get_name() == LOG_HANDLER_NAME for h in root_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(LOG_HANDLER_NAME)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    # Reduce noise from Azure SDK
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def default_config() -> InfrastructureConfig:
    """The built-in Play topology."""
    return (
        define_config("PlayResources")
        .with_resource_group("Play", DEFAULT_REGION)
        .with_storage_account("playstorage", DEFAULT_REGION)
        .with_signalr_service("playsignalr", DEFAULT_REGION)
        .with_function_app("play-durable", DEFAULT_REGION, "~1")
        .with_function_app("play-client", DEFAULT_REGION, "~1")
        .build()
    )


def resolve_config(settings: Settings, definition: Path | None = None) -> InfrastructureConfig:
    """Pick the topology for this run.

    An explicit definition wins over INFRA_DEFINITION_FILE; without either
    the built-in topology is used.
    """
    path = definition or settings.definition_file
    if path is None:
        return default_config()
    return load_definition(path)


async def execute(
    operation: Operation,
    config: InfrastructureConfig,
    credentials: AzureCredentials,
    settings: Settings,
    provider: CloudProvider | None = None,
) -> ReconcileResult:
    """Run one apply or teardown against the given provider."""
    reconciler = Reconciler(provider or AzureCloudProvider(settings), settings)
    if operation is Operation.TEARDOWN:
        return await reconciler.teardown(credentials, config)
    return await reconciler.apply(credentials, config)


async def main(
    operation: Operation = Operation.APPLY,
    definition: Path | None = None,
    provider: CloudProvider | None = None,
) -> int:
    """Run the provisioner once.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    logger = logging.getLogger(__name__)

    try:
        settings = Settings.from_env()
        setup_logging(settings.enable_json_logging)
        credentials = AzureCredentials.from_env()
        config = resolve_config(settings, definition)
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1
    except SpecLoadError as e:
        logger.error("Definition loading failed", extra={"error": str(e)})
        return 1

    logger.info(
        "Starting Play infrastructure provisioner",
        extra={
            "operation": operation.value,
            "config_name": config.name,
            "subscription_id": credentials.subscription_id,
        },
    )

    try:
        result = await execute(operation, config, credentials, settings, provider)
    except AuthenticationFailure as e:
        logger.critical("Authentication failed", extra={"error": str(e)})
        return 2
    except PrecedingStepMissing as e:
        logger.error("Incomplete infrastructure definition", extra={"error": str(e)})
        return 1
    except (AzureError, TimeoutError) as e:
        logger.error(
            "Remote operation failed",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return 1

    logger.info(
        "Provisioner finished",
        extra={
            "operation": operation.value,
            "created": result.created,
            "updated": result.updated,
            "deleted": result.deleted,
            "unchanged": result.unchanged,
            "duration_seconds": result.duration_seconds,
        },
    )
    return 0


def run() -> None:
    """Entry point for the provisioner."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
