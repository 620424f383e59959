"""Tests for environment configuration."""

import pytest

from core.errors import ValidationError
from utils.config import Config

CONFIG_VARS = ["CLIENT_ID", "TENANT_ID", "CLIENT_SECRET", "GRAPH_BASE_URL",
               "AUTH_TIMEOUT_SECONDS", "REQUEST_PAUSE_MS", "DEFAULT_THRESHOLD_DAYS"]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in CONFIG_VARS:
        # setenv first so teardown also removes values loaded from .env
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


def test_defaults(clean_env):
    config = Config()

    assert config.tenant_id == "organizations"
    assert config.graph_base_url == "https://graph.microsoft.com/v1.0"
    assert config.auth_timeout_seconds == 30
    assert config.request_pause_ms == 150
    assert config.default_threshold_days == 30
    assert config.get_missing_graph_vars() == ["CLIENT_ID"]
    assert config.validate_graph_config() is False


def test_values_from_environment(clean_env):
    clean_env.setenv("CLIENT_ID", "abc")
    clean_env.setenv("TENANT_ID", "contoso.onmicrosoft.com")
    clean_env.setenv("GRAPH_BASE_URL", "https://graph.microsoft.com/beta/")
    clean_env.setenv("REQUEST_PAUSE_MS", "200")

    config = Config()

    assert config.validate_graph_config() is True
    assert config.tenant_id == "contoso.onmicrosoft.com"
    assert config.graph_base_url == "https://graph.microsoft.com/beta"
    assert config.request_pause_ms == 200


def test_app_only_requires_tenant(clean_env):
    clean_env.setenv("CLIENT_ID", "abc")
    clean_env.setenv("CLIENT_SECRET", "s3cret")

    assert Config().get_missing_graph_vars() == ["TENANT_ID"]


@pytest.mark.parametrize("raw", ["ten", "-1"])
def test_bad_integers(clean_env, raw):
    clean_env.setenv("AUTH_TIMEOUT_SECONDS", raw)

    with pytest.raises(ValidationError):
        Config().auth_timeout_seconds


def test_dotenv_file_is_loaded(clean_env, tmp_path):
    (tmp_path / ".env").write_text("CLIENT_ID=from-dotenv\n", encoding="utf-8")

    assert Config().client_id == "from-dotenv"
