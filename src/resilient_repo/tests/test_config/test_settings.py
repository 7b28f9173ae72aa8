import pytest
from pydantic import ValidationError

from resilient_repo.config.settings import Settings


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_defaults():
    settings = make_settings()

    assert settings.REPO_MAX_RETRY_COUNT == 11
    assert settings.REPO_TIMEOUT_SECONDS == 60
    assert settings.LOG_LEVEL == "INFO"


def test_database_url_built_from_parts():
    settings = make_settings(
        POSTGRES_USERNAME="repo", POSTGRES_PASSWORD="pw", POSTGRES_HOST="db", POSTGRES_PORT=5433, POSTGRES_DB="store"
    )

    assert settings.DATABASE_URL == "postgresql+asyncpg://repo:pw@db:5433/store"


def test_database_url_override_wins():
    settings = make_settings(DATABASE_URL_OVERRIDE="sqlite+aiosqlite:///./local.db", POSTGRES_HOST="db")

    assert settings.DATABASE_URL == "sqlite+aiosqlite:///./local.db"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("REPO_MAX_RETRY_COUNT", "4")
    monkeypatch.setenv("REPO_TIMEOUT_SECONDS", "2.5")

    settings = make_settings()

    assert settings.REPO_MAX_RETRY_COUNT == 4
    assert settings.REPO_TIMEOUT_SECONDS == 2.5


def test_log_level_and_format_are_normalised():
    settings = make_settings(LOG_LEVEL="debug", LOG_FORMAT="TEXT")

    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.LOG_FORMAT == "text"


@pytest.mark.parametrize("field", ["REPO_MAX_RETRY_COUNT", "REPO_TIMEOUT_SECONDS"])
@pytest.mark.parametrize("value", [0, -1])
def test_non_positive_policy_values_rejected(field, value):
    with pytest.raises(ValidationError):
        make_settings(**{field: value})


def test_unknown_log_level_rejected():
    with pytest.raises(ValidationError):
        make_settings(LOG_LEVEL="verbose")
