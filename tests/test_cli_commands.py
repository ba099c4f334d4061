import sys

import pytest
from loguru import logger
from typer.testing import CliRunner

from agentflow import __version__
from agentflow.cli.commands import app
from agentflow.config import access

runner = CliRunner()


@pytest.fixture
def cli_args(tmp_path):
    access.clear_config_cache()
    yield ["--config", str(tmp_path / "config.json"), "--db", str(tmp_path / "cli.db")]
    access.clear_config_cache()
    logger.remove()
    logger.add(sys.stderr)


def test_version(cli_args):
    result = runner.invoke(app, [*cli_args, "version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_frameworks(cli_args):
    result = runner.invoke(app, [*cli_args, "frameworks"])
    assert result.exit_code == 0
    assert "HyperAgent" in result.output


def test_health(cli_args):
    result = runner.invoke(app, [*cli_args, "health"])
    assert result.exit_code == 0
    assert "Multi-Agent Orchestrator" in result.output


def test_orchestrate_json(cli_args):
    result = runner.invoke(app, [*cli_args, "orchestrate", "--user", "owner", "--json"])
    assert result.exit_code == 0
    assert '"sessionId"' in result.output
    assert "Workflow_Validation" in result.output


def test_status_unknown_session(cli_args):
    result = runner.invoke(app, [*cli_args, "status", "missing"])
    assert result.exit_code == 1
    assert "Session not found" in result.output


def test_session_messages_unknown_session(cli_args):
    result = runner.invoke(app, [*cli_args, "session", "messages", "missing"])
    assert result.exit_code == 1
    assert "NOT_FOUND" in result.output
