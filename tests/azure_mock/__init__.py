"""In-memory Azure for provisioner tests.

Provides an implementation of the provisioner capabilities that runs
without Azure connectivity.

Key Features:
- In-memory state for resource groups, storage, Cosmos DB, SignalR and function apps
- Ordered log of every remote call, plus a log of calls that changed state
- Failure injection per operation
- Mock service principal credential

Usage:
    from azure_mock import MockCloudProvider

    provider = MockCloudProvider()
    result = await Reconciler(provider).apply(credentials, config)

    assert provider.state.operation_names()[0] == "authenticate"
"""

from .cloud import (
    MockCloudProvider,
    MockCloudSession,
    MockCloudState,
    MockDocumentDbAccount,
    MockFunctionApp,
    MockSignalRService,
)
from .credential import MockClientSecretCredential, create_mock_credential

__all__ = [
    "MockClientSecretCredential",
    "MockCloudProvider",
    "MockCloudSession",
    "MockCloudState",
    "MockDocumentDbAccount",
    "MockFunctionApp",
    "MockSignalRService",
    "create_mock_credential",
]
