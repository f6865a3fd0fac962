import logging
import sqlite3

import pytest
from click.testing import CliRunner
from unittest.mock import patch

from dbferry import __version__
from dbferry.cli import cli, run, validate
from dbferry.errors import ConnectionCloseError, TaskFailedError

CONFIG = """
databases:
  src:
    type: sqlite
    path: {src}
  dst:
    type: sqlite
    path: {dst}
tasks:
  - table_name: numbers
    sql: SELECT 1 AS n
    source_db: src
    target_db: dst
logging:
  console: true
"""


@pytest.fixture(autouse=True)
def reset_logger():
    """Drop handlers bound to the runner's captured streams."""
    yield
    logger = logging.getLogger("dbferry")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Write a minimal valid configuration."""
    path = tmp_path / "task.yaml"
    path.write_text(CONFIG.format(src=tmp_path / "src.db", dst=tmp_path / "dst.db"))
    return path


def test_cli_help(runner):
    """Test CLI help output."""
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Move query results between heterogeneous databases" in result.output


def test_cli_version(runner):
    """Test version option."""
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_validate_command_help(runner):
    """Test validate command help."""
    result = runner.invoke(validate, ["--help"])
    assert result.exit_code == 0
    assert "Validate configuration" in result.output


def test_run_command_help(runner):
    """Test run command help."""
    result = runner.invoke(run, ["--help"])
    assert result.exit_code == 0
    assert "Run all enabled tasks" in result.output


def test_validate_command_missing_config(runner):
    """Test validate command with missing config file."""
    result = runner.invoke(validate, ["--config", "nonexistent.yaml"])
    assert result.exit_code != 0
    assert "does not exist" in result.output


def test_validate_command_valid(runner, config_file):
    """Test validate succeeds without connecting."""
    with patch('dbferry.cli.Processor') as mock_processor:
        result = runner.invoke(validate, ["--config", str(config_file)])
    assert result.exit_code == 0
    assert "Configuration is valid" in result.output
    mock_processor.assert_not_called()


def test_validate_command_invalid(runner, tmp_path):
    """Test validate reports configuration errors."""
    path = tmp_path / "bad.yaml"
    path.write_text("databases:\n  src:\n    type: sqlite\ntasks:\n  - table_name: t\n")
    result = runner.invoke(validate, ["--config", str(path)])
    assert result.exit_code == 1
    assert "path is required for sqlite" in result.output


@patch('dbferry.cli.Processor')
def test_run_command_success(mock_processor, runner, config_file):
    """Test run reports the summary and closes connections."""
    mock_processor.return_value.process_all_tasks.return_value = {
        'status': 'completed', 'tasks_completed': 1, 'tasks_failed': 0,
        'rows_transferred': 1, 'total_time': 0.1,
    }
    result = runner.invoke(run, ["--config", str(config_file)])
    assert result.exit_code == 0
    assert "RUN COMPLETED" in result.output
    mock_processor.return_value.close.assert_called_once()


@patch('dbferry.cli.Processor')
def test_run_command_task_failure(mock_processor, runner, config_file):
    """Test a failed task gives a non-zero exit code."""
    mock_processor.return_value.process_all_tasks.side_effect = TaskFailedError("numbers", RuntimeError("x"))
    result = runner.invoke(run, ["--config", str(config_file)])
    assert result.exit_code == 1
    assert "failed to process task numbers" in result.output
    mock_processor.return_value.close.assert_called_once()


@patch('dbferry.cli.Processor')
def test_run_command_close_failure(mock_processor, runner, config_file):
    """Test close errors are reported."""
    mock_processor.return_value.process_all_tasks.return_value = {
        'status': 'completed', 'tasks_completed': 1, 'tasks_failed': 0,
        'rows_transferred': 1, 'total_time': 0.1,
    }
    mock_processor.return_value.close.side_effect = ConnectionCloseError(["dst: locked"])
    result = runner.invoke(run, ["--config", str(config_file)])
    assert result.exit_code == 1
    assert "dst: locked" in result.output


def test_run_command_end_to_end(runner, config_file, tmp_path):
    """Test a real run against SQLite files."""
    result = runner.invoke(run, ["--config", str(config_file), "--env", str(tmp_path / "missing.env")])
    assert result.exit_code == 0, result.output
    with sqlite3.connect(str(tmp_path / "dst.db")) as conn:
        assert conn.execute('SELECT n FROM "numbers"').fetchall() == [(1,)]
