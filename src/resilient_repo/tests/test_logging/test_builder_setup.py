import logging

import pytest

from resilient_repo.config.settings import Settings, get_settings
from resilient_repo.core.logging.builder import make_dict_config, setup_logging


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def restore_logging():
    yield
    setup_logging(get_settings())


def test_stdout_mode_uses_console_handlers(tmp_path):
    cfg = make_dict_config(make_settings(LOG_TO_STDOUT=True, LOG_DIR=tmp_path))

    assert set(cfg["handlers"]) == {"console", "error_console"}
    assert cfg["loggers"][""]["handlers"] == ["console", "error_console"]


def test_file_mode_adds_rotating_files(tmp_path):
    cfg = make_dict_config(make_settings(LOG_TO_STDOUT=False, LOG_DIR=tmp_path, LOG_MAX_BYTES=1000))

    assert set(cfg["handlers"]) == {"console", "file", "error_file"}
    assert cfg["handlers"]["file"]["filename"] == str(tmp_path / "repository.log")
    assert cfg["handlers"]["file"]["maxBytes"] == 1000
    assert cfg["handlers"]["error_file"]["level"] == "ERROR"


def test_every_handler_runs_both_filters(tmp_path):
    cfg = make_dict_config(make_settings(LOG_TO_STDOUT=False, LOG_DIR=tmp_path))

    assert set(cfg["filters"]) == {"correlation_id", "redact"}
    for handler in cfg["handlers"].values():
        assert handler["filters"] == ["correlation_id", "redact"]


def test_formatter_follows_log_format():
    json_cfg = make_dict_config(make_settings(LOG_FORMAT="json"))
    text_cfg = make_dict_config(make_settings(LOG_FORMAT="text"))

    assert json_cfg["handlers"]["console"]["formatter"] == "json"
    assert text_cfg["handlers"]["console"]["formatter"] == "standard"


def test_sql_logging_toggle():
    quiet = make_dict_config(make_settings(ENABLE_SQL_LOGGING=False))
    loud = make_dict_config(make_settings(ENABLE_SQL_LOGGING=True))

    assert quiet["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"
    assert loud["loggers"]["sqlalchemy.engine"]["level"] == "DEBUG"


def test_setup_logging_creates_log_dir(tmp_path, restore_logging):
    log_dir = tmp_path / "logs"
    settings = make_settings(LOG_TO_STDOUT=False, LOG_DIR=log_dir)

    setup_logging(settings)
    logging.getLogger("resilient_repo.tests").error("written to file")

    assert log_dir.exists()
    assert (log_dir / "errors.log").exists()
