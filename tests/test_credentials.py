"""Tests for service principal credentials.

These tests verify that secrets stay out of reprs and logs and that bad
credentials fail before any resource call.
"""

from __future__ import annotations

import logging
import os
from unittest import mock

import pytest
from azure.core.exceptions import ServiceRequestError
from azure_mock import create_mock_credential

from provisioner.config import MANAGEMENT_SCOPE, ConfigurationError
from provisioner.credentials import (
    CREDENTIAL_ENV_VARS,
    AuthenticationFailure,
    AzureCredentials,
    get_client_secret_credential,
    mask_identifier,
)

VALID_ENV = {
    "AZURE_TENANT_ID": "11111111-1111-1111-1111-111111111111",
    "AZURE_CLIENT_ID": "22222222-2222-2222-2222-222222222222",
    "AZURE_CLIENT_SECRET": "super-secret-value",
    "AZURE_SUBSCRIPTION_ID": "33333333-3333-3333-3333-333333333333",
}


def make_credentials() -> AzureCredentials:
    return AzureCredentials(
        tenant_id=VALID_ENV["AZURE_TENANT_ID"],
        client_id=VALID_ENV["AZURE_CLIENT_ID"],
        client_secret=VALID_ENV["AZURE_CLIENT_SECRET"],
        subscription_id=VALID_ENV["AZURE_SUBSCRIPTION_ID"],
    )


class TestAzureCredentials:
    """Tests for AzureCredentials."""

    def test_from_env(self) -> None:
        with mock.patch.dict(os.environ, VALID_ENV, clear=True):
            credentials = AzureCredentials.from_env()

        assert credentials == make_credentials()

    @pytest.mark.parametrize("env_var", CREDENTIAL_ENV_VARS)
    def test_missing_env_var_raises(self, env_var: str) -> None:
        """Test that each required variable is reported when missing."""
        env = {k: v for k, v in VALID_ENV.items() if k != env_var}
        with mock.patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                AzureCredentials.from_env()

        assert env_var in str(exc_info.value)

    def test_empty_value_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AzureCredentials(
                tenant_id="tenant", client_id="", client_secret="s", subscription_id="sub"
            )

        assert "client_id" in str(exc_info.value)

    def test_secret_not_in_repr(self) -> None:
        """Test that the client secret never appears in repr()."""
        credentials = make_credentials()

        assert "super-secret-value" not in repr(credentials)
        assert VALID_ENV["AZURE_TENANT_ID"] in repr(credentials)

    def test_credentials_are_immutable(self) -> None:
        credentials = make_credentials()

        with pytest.raises(AttributeError):
            credentials.client_secret = "other"  # type: ignore[misc]


class TestMaskIdentifier:
    def test_long_identifier_truncated(self) -> None:
        assert mask_identifier("22222222-2222") == "22222222..."

    def test_short_identifier_unchanged(self) -> None:
        assert mask_identifier("abc") == "abc"


class TestClientSecretCredential:
    """Tests for get_client_secret_credential."""

    def test_token_requested_eagerly(self) -> None:
        """Test that a management token is acquired before returning."""
        mock_credential = create_mock_credential()

        with mock.patch(
            "provisioner.credentials.ClientSecretCredential", return_value=mock_credential
        ) as mock_cls:
            credential = get_client_secret_credential(make_credentials())

        assert credential is mock_credential
        assert mock_credential.get_token_calls == [(MANAGEMENT_SCOPE,)]
        mock_cls.assert_called_once_with(
            tenant_id=VALID_ENV["AZURE_TENANT_ID"],
            client_id=VALID_ENV["AZURE_CLIENT_ID"],
            client_secret=VALID_ENV["AZURE_CLIENT_SECRET"],
        )

    def test_rejected_token_raises_authentication_failure(self) -> None:
        mock_credential = create_mock_credential(should_fail=True)

        with mock.patch(
            "provisioner.credentials.ClientSecretCredential", return_value=mock_credential
        ):
            with pytest.raises(AuthenticationFailure) as exc_info:
                get_client_secret_credential(make_credentials())

        assert "Invalid client secret" in str(exc_info.value)

    def test_unreachable_token_endpoint_raises_authentication_failure(self) -> None:
        mock_credential = mock.MagicMock()
        mock_credential.get_token.side_effect = ServiceRequestError("Name or service not known")

        with mock.patch(
            "provisioner.credentials.ClientSecretCredential", return_value=mock_credential
        ):
            with pytest.raises(AuthenticationFailure) as exc_info:
                get_client_secret_credential(make_credentials())

        assert "Name or service not known" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ServiceRequestError)

    def test_secret_not_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that neither the secret nor the full client id is logged."""
        mock_credential = create_mock_credential()

        with caplog.at_level(logging.INFO, logger="provisioner.credentials"):
            with mock.patch(
                "provisioner.credentials.ClientSecretCredential", return_value=mock_credential
            ):
                get_client_secret_credential(make_credentials())

        for record in caplog.records:
            rendered = str(record.__dict__)
            assert "super-secret-value" not in rendered
            assert VALID_ENV["AZURE_CLIENT_ID"] not in rendered
