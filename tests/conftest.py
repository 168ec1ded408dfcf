"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from provisioner.credentials import AzureCredentials  # noqa: E402


@pytest.fixture
def credentials() -> AzureCredentials:
    """Service principal credentials for the mock subscription."""
    return AzureCredentials(
        tenant_id="tenant-id",
        client_id="client-id",
        client_secret="client-secret",
        subscription_id="subscription-id",
    )
