from pathlib import Path

import pytest

from healthflow import config, key_manager
from healthflow.config import AISettings, get_ai_settings, get_storage_settings


def test_ai_settings_defaults():
    settings = get_ai_settings()
    assert settings.api_key is None
    assert settings.model == "gpt-4"
    assert settings.requests_per_minute == 60
    assert settings.timeout_seconds == 30.0
    assert settings.base_url is None
    assert settings.missing() == ["OPENAI_API_KEY"]
    assert not settings.is_complete


def test_ai_settings_reflect_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o-mini")
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "5")
    monkeypatch.setenv("OPENAI_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:8080/v1")
    get_ai_settings.cache_clear()

    settings = get_ai_settings()
    assert settings.is_complete
    assert settings.model == "gpt-4o-mini"
    assert settings.requests_per_minute == 5
    assert settings.timeout_seconds == 12.5
    assert settings.base_url == "http://localhost:8080/v1"
    assert "sk-test" not in repr(settings)


def test_non_positive_limit_uses_default(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "0")
    get_ai_settings.cache_clear()
    assert get_ai_settings().requests_per_minute == 60


def test_invalid_integer_env_raises(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "lots")
    get_ai_settings.cache_clear()
    with pytest.raises(ValueError, match="RATE_LIMIT_REQUESTS_PER_MINUTE"):
        get_ai_settings()


def test_invalid_timeout_env_raises(monkeypatch):
    monkeypatch.setenv("OPENAI_TIMEOUT_SECONDS", "soon")
    get_ai_settings.cache_clear()
    with pytest.raises(ValueError, match="OPENAI_TIMEOUT_SECONDS"):
        get_ai_settings()


def test_api_key_falls_back_to_keyring(monkeypatch):
    monkeypatch.setattr(key_manager.keyring, "get_password", lambda service, user: "from-keyring")
    get_ai_settings.cache_clear()
    assert get_ai_settings().api_key == "from-keyring"


def test_missing_lists_blank_model():
    assert AISettings(api_key="k", model="").missing() == ["OPENAI_MODEL"]


def test_storage_url_override(monkeypatch):
    monkeypatch.setenv("HEALTHFLOW_DATABASE_URL", "sqlite:///:memory:")
    get_storage_settings.cache_clear()
    settings = get_storage_settings()
    assert settings.url == "sqlite:///:memory:"
    assert settings.engine_options()["connect_args"] == {"check_same_thread": False}


def test_storage_path_override_file(monkeypatch, tmp_path):
    target = tmp_path / "nested" / "custom.db"
    monkeypatch.setenv("HEALTHFLOW_DB_PATH", str(target))
    get_storage_settings.cache_clear()
    assert get_storage_settings().url == f"sqlite:///{target}"
    assert target.parent.is_dir()


def test_storage_defaults_to_user_data_dir(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "user_data_dir", lambda *a, **k: str(tmp_path / "appdata"))
    get_storage_settings.cache_clear()
    url = get_storage_settings().url
    assert url == f"sqlite:///{Path(tmp_path / 'appdata' / 'healthflow.db')}"
