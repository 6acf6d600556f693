"""Packaging metadata regression tests for the recallctl console script."""

from pathlib import Path

import pytest
import tomllib
from typer.testing import CliRunner

import chat_recall
import chat_recall.cli as cli

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


@pytest.fixture()
def cli_runner() -> CliRunner:
    return CliRunner()


def test_pyproject_exposes_cli_script():
    metadata = tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))

    assert metadata["project"]["scripts"]["recallctl"] == "chat_recall.cli:app"


def test_version_matches_package():
    metadata = tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))

    assert metadata["project"]["version"] == chat_recall.__version__


def test_recallctl_help(cli_runner: CliRunner):
    result = cli_runner.invoke(cli.app, ["--help"])

    assert result.exit_code == 0
    assert "Chat Recall" in result.stdout
