"""Smoke tests for CLI commands - basic functionality without real data."""

import pytest
from click.testing import CliRunner

from landprep.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


def test_cli_help(runner):
    """Test that main CLI help works."""
    result = runner.invoke(cli, ["--env", "test", "--help"])
    assert result.exit_code == 0
    assert "Usage:" in result.output


@pytest.mark.parametrize("group", ["fetch", "boundary", "rules", "process", "logs"])
def test_subcommand_help(runner, group):
    result = runner.invoke(cli, ["--env", "test", group, "--help"])
    assert result.exit_code == 0
    assert "Usage:" in result.output


def test_info(runner):
    result = runner.invoke(cli, ["--env", "test", "info"])
    assert result.exit_code == 0
    assert "landprep version" in result.output
    assert "EPSG:32632" in result.output


def test_download_without_datasets_is_usage_error(runner):
    result = runner.invoke(cli, ["--env", "test", "fetch", "download"])
    assert result.exit_code == 2
    assert "Traceback" not in result.output


def test_download_unknown_dataset(runner):
    result = runner.invoke(cli, ["--env", "test", "fetch", "download", "nope"])
    assert result.exit_code != 0
    assert "Unknown dataset" in result.output


def test_rules_check_on_shipped_config(runner):
    """The shipped category rules do not overlap."""
    result = runner.invoke(cli, ["--env", "test", "rules", "check"])
    assert result.exit_code == 0, result.output
    assert "No overlapping rules" in result.output


def test_missing_config_file(runner):
    result = runner.invoke(cli, ["--config", "/definitely/does/not/exist.yaml", "info"])
    assert result.exit_code != 0


def test_rules_check_unknown_dataset(runner):
    result = runner.invoke(cli, ["--env", "test", "rules", "check", "nope"])
    assert result.exit_code == 2
    assert "Unknown dataset" in result.output


def test_process_unknown_dataset(runner):
    result = runner.invoke(cli, ["--env", "test", "process", "dataset", "nope"])
    assert result.exit_code == 2


def test_environment_from_variable(runner):
    result = runner.invoke(cli, ["info"], env={"LANDPREP_ENVIRONMENT": "test"})
    assert result.exit_code == 0, result.output
    assert "Environment: test" in result.output
