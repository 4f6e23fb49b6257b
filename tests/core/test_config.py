"""Unit tests for chess_sessions/core/config.py and chess_sessions/core/logging_config.py"""

import logging

import pytest
from pydantic import ValidationError

from chess_sessions.core.config import Settings
from chess_sessions.core.logging_config import setup_logging


def test_defaults() -> None:
    settings = Settings.from_env({})
    assert settings.database_url == "sqlite:///chess_sessions.db"
    assert settings.echo_sql is False
    assert settings.log_level == "INFO"
    assert settings.compression_level == 9
    assert settings.checkpoint_interval == 0


def test_values_from_environment() -> None:
    settings = Settings.from_env(
        {
            "CHESS_DATABASE_URL": "sqlite:///:memory:",
            "CHESS_ECHO_SQL": "true",
            "CHESS_LOG_LEVEL": "debug",
            "CHESS_COMPRESSION_LEVEL": "3",
            "CHESS_CHECKPOINT_INTERVAL": "10",
            "UNRELATED": "ignored",
        }
    )
    assert settings.database_url == "sqlite:///:memory:"
    assert settings.echo_sql is True
    assert settings.log_level == "DEBUG"
    assert settings.compression_level == 3
    assert settings.checkpoint_interval == 10


def test_reads_os_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHESS_CHECKPOINT_INTERVAL", "4")
    assert Settings.from_env().checkpoint_interval == 4


@pytest.mark.parametrize(
    "values",
    [
        {"log_level": "LOUD"},
        {"compression_level": 10},
        {"compression_level": -1},
        {"checkpoint_interval": -5},
        {"checkpoint_interval": "often"},
    ],
)
def test_invalid_settings(values: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(**values)


def test_setup_logging() -> None:
    setup_logging("debug", "detailed")
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    setup_logging()
    assert logging.getLogger().level == logging.INFO
