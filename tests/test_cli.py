"""Tests for the provisioner CLI."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from provisioner.cli import cli
from provisioner.reconciler import Operation


def write_definition(tmp_path: Path) -> Path:
    path = tmp_path / "infra.yaml"
    path.write_text(
        "name: Small\n"
        "resourceGroup: {name: Small, region: westeurope}\n"
        "storageAccount: {name: smallstorage, region: westeurope}\n"
    )
    return path


class TestShow:
    def test_default_topology(self) -> None:
        result = CliRunner().invoke(cli, ["show"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["name"] == "PlayResources"
        assert data["resource_group"] == {"name": "Play", "region": "northeurope"}

    def test_definition_file(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["show", "--definition", str(write_definition(tmp_path))])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["storage_account"]["account_name"] == "smallstorage"

    def test_invalid_definition(self, tmp_path: Path) -> None:
        path = tmp_path / "infra.yaml"
        path.write_text("name: Broken\nunknown: true\n")

        result = CliRunner().invoke(cli, ["show", "-d", str(path)])

        assert result.exit_code == 1
        assert "Validation failed" in result.output

    def test_definition_from_environment(self, tmp_path: Path) -> None:
        definition = write_definition(tmp_path)

        result = CliRunner().invoke(cli, ["show"], env={"INFRA_DEFINITION_FILE": str(definition)})

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["name"] == "Small"
        assert data["resource_group"] == {"name": "Small", "region": "westeurope"}

    def test_invalid_settings(self) -> None:
        result = CliRunner().invoke(cli, ["show"], env={"OPERATION_TIMEOUT": "5"})

        assert result.exit_code == 1
        assert "OPERATION_TIMEOUT" in result.output


class TestApply:
    def test_runs_apply(self, tmp_path: Path) -> None:
        definition = write_definition(tmp_path)

        with patch("provisioner.cli.main", new=AsyncMock(return_value=0)) as mock_main:
            result = CliRunner().invoke(cli, ["apply", "-d", str(definition)])

        assert result.exit_code == 0
        mock_main.assert_awaited_once_with(Operation.APPLY, definition)

    def test_propagates_exit_code(self) -> None:
        with patch("provisioner.cli.main", new=AsyncMock(return_value=2)):
            result = CliRunner().invoke(cli, ["apply"])

        assert result.exit_code == 2


class TestTeardown:
    def test_requires_confirmation(self) -> None:
        with patch("provisioner.cli.main", new=AsyncMock(return_value=0)) as mock_main:
            result = CliRunner().invoke(cli, ["teardown"], input="n\n")

        assert result.exit_code == 1
        mock_main.assert_not_awaited()

    def test_confirmed(self) -> None:
        with patch("provisioner.cli.main", new=AsyncMock(return_value=0)) as mock_main:
            result = CliRunner().invoke(cli, ["teardown"], input="y\n")

        assert result.exit_code == 0
        mock_main.assert_awaited_once_with(Operation.TEARDOWN, None)

    def test_yes_skips_prompt(self) -> None:
        with patch("provisioner.cli.main", new=AsyncMock(return_value=0)) as mock_main:
            result = CliRunner().invoke(cli, ["teardown", "--yes"])

        assert result.exit_code == 0
        assert "Continue?" not in result.output
        mock_main.assert_awaited_once_with(Operation.TEARDOWN, None)
