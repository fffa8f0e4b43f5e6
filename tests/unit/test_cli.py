"""Tests for CLI commands."""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from idp_store.cli import cli
from idp_store.repository import DynamoStore


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


class TestHelp:
    """Test CLI help output."""

    def test_cli_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "idp-store DynamoDB table management CLI" in result.output

    @pytest.mark.parametrize("command", ["create-tables", "delete-tables", "status"])
    def test_command_help(self, runner: CliRunner, command: str) -> None:
        result = runner.invoke(cli, [command, "--help"])
        assert result.exit_code == 0
        assert "--table-prefix" in result.output
        assert "--region" in result.output
        assert "--endpoint-url" in result.output

    def test_invalid_prefix(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["status", "--table-prefix", "bad prefix"])
        assert result.exit_code == 2
        assert "contains spaces" in result.output


class TestTableCommands:
    """Test table management against mocked DynamoDB."""

    def test_create_tables(self, runner: CliRunner, mock_dynamodb, unique_prefix) -> None:
        result = runner.invoke(cli, ["create-tables", "--table-prefix", unique_prefix])

        assert result.exit_code == 0, result.output
        assert f"✓ created  {unique_prefix}_stacks" in result.output
        assert f"{unique_prefix}_unique_keys" in result.output
        assert "11 table(s) created" in result.output

    def test_create_tables_twice(self, runner: CliRunner, mock_dynamodb, unique_prefix) -> None:
        runner.invoke(cli, ["create-tables", "--table-prefix", unique_prefix])
        result = runner.invoke(cli, ["create-tables", "--table-prefix", unique_prefix])

        assert result.exit_code == 0
        assert f"· exists  {unique_prefix}_teams" in result.output
        assert "0 table(s) created" in result.output

    def test_status_after_create(self, runner: CliRunner, mock_dynamodb, unique_prefix) -> None:
        runner.invoke(cli, ["create-tables", "--table-prefix", unique_prefix])
        result = runner.invoke(cli, ["status", "--table-prefix", unique_prefix])

        assert result.exit_code == 0, result.output
        assert "ACTIVE" in result.output
        assert "MISSING" not in result.output

    def test_status_missing_tables(self, runner: CliRunner, mock_dynamodb, unique_prefix) -> None:
        result = runner.invoke(cli, ["status", "--table-prefix", unique_prefix])

        assert result.exit_code == 1
        assert "MISSING" in result.output
        assert "11 table(s) missing" in result.output
        assert "idp-store create-tables" in result.output

    def test_delete_tables(self, runner: CliRunner, mock_dynamodb, unique_prefix) -> None:
        runner.invoke(cli, ["create-tables", "--table-prefix", unique_prefix])
        result = runner.invoke(cli, ["delete-tables", "--table-prefix", unique_prefix, "--yes"])

        assert result.exit_code == 0, result.output
        assert "11 table(s) deleted" in result.output
        status = DynamoStore(table_prefix=unique_prefix).table_status()
        assert all(info is None for info in status.values())

    def test_delete_tables_aborted(self, runner: CliRunner, mock_dynamodb, unique_prefix) -> None:
        runner.invoke(cli, ["create-tables", "--table-prefix", unique_prefix])
        result = runner.invoke(
            cli, ["delete-tables", "--table-prefix", unique_prefix], input="n\n"
        )

        assert result.exit_code == 1
        assert "Aborted" in result.output
        status = DynamoStore(table_prefix=unique_prefix).table_status()
        assert all(info is not None for info in status.values())

    def test_prefix_from_environment(
        self, runner: CliRunner, mock_dynamodb, unique_prefix, monkeypatch
    ) -> None:
        monkeypatch.setenv("IDP_DYNAMODB_TABLE_PREFIX", unique_prefix)
        result = runner.invoke(cli, ["create-tables", "--no-wait"])

        assert result.exit_code == 0
        assert f"Creating tables with prefix: {unique_prefix}" in result.output

    def test_create_failure(self, runner: CliRunner) -> None:
        with patch.object(DynamoStore, "create_tables", side_effect=RuntimeError("boom")):
            result = runner.invoke(cli, ["create-tables"])

        assert result.exit_code == 1
        assert "Table creation failed: boom" in result.output
