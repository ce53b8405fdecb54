"""Tests for case engine endpoint configuration."""
import pytest

from caseapi.config import (
    ServiceConfig,
    clear_service_configs,
    get_service_config,
    is_initialized,
    set_service_config,
)


def test_base_url_normalized():
    """Base URLs always end with a single slash."""
    assert ServiceConfig(base_url=" https://host/api/v1 ").base_url == "https://host/api/v1/"
    assert ServiceConfig(base_url="https://host/api/v1/").base_url == "https://host/api/v1/"


def test_base_url_required():
    with pytest.raises(ValueError):
        ServiceConfig(base_url="")


def test_from_env(monkeypatch):
    """Settings are read from prefixed environment variables."""
    monkeypatch.setenv("CASEAPI_BASE_URL", "https://host/api/v1")
    monkeypatch.setenv("CASEAPI_TIMEOUT", "5")
    monkeypatch.setenv("CASEAPI_ACCESS_TOKEN", "abc")
    monkeypatch.setenv("CASEAPI_VERIFY_SSL", "false")
    config = ServiceConfig.from_env()
    assert config == ServiceConfig(base_url="https://host/api/v1/", timeout=5.0, access_token="abc", verify_ssl=False)
    assert config.auth_header == "Bearer abc"


def test_from_env_missing_base_url(monkeypatch):
    monkeypatch.delenv("CASEAPI_BASE_URL", raising=False)
    with pytest.raises(ValueError):
        ServiceConfig.from_env()


def test_register_and_lookup():
    """Configs are registered per endpoint and looked up by any URL spelling."""
    config = ServiceConfig(base_url="https://host/api/v1")
    set_service_config(config)
    assert get_service_config("https://host/api/v1") is config
    assert not is_initialized("https://host/api/v1")

    set_service_config(config.with_token("abc"))
    assert is_initialized("https://host/api/v1/")

    clear_service_configs()
    assert get_service_config("https://host/api/v1") is None
