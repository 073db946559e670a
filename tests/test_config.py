"""Tests for settings and the derived security configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from swagger_mcp.config import DEFAULT_MAX_FILE_SIZE, SecurityConfig, Settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ("SWAGGER_MCP_PORT", "SWAGGER_MCP_ALLOW_HTTP", "SWAGGER_MCP_ALLOWED_HOSTS"):
        monkeypatch.delenv(key, raising=False)


def test_security_defaults_are_strict():
    config = Settings().security_config()
    assert config == SecurityConfig()
    assert config.allowed_schemes == ("https",)
    assert config.allowed_hosts == ()
    assert config.block_private_ips is True
    assert config.base_directory is None
    assert config.max_file_size == DEFAULT_MAX_FILE_SIZE


def test_security_config_is_frozen():
    with pytest.raises(ValidationError):
        SecurityConfig().block_private_ips = False


def test_overrides_build_security_config():
    settings = Settings(
        allow_http=True,
        allowed_hosts=" api.example.com, *.swagger.io ,",
        allow_private_ips=True,
        base_directory="/srv/specs",
    )
    config = settings.security_config()
    assert config.allowed_schemes == ("http", "https")
    assert config.allowed_hosts == ("api.example.com", "*.swagger.io")
    assert config.block_private_ips is False
    assert config.base_directory == "/srv/specs"


def test_environment_prefix(monkeypatch):
    monkeypatch.setenv("SWAGGER_MCP_PORT", "5001")
    monkeypatch.setenv("SWAGGER_MCP_ALLOW_HTTP", "true")
    settings = Settings()
    assert settings.port == 5001
    assert settings.security_config().allowed_schemes == ("http", "https")


def test_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("SWAGGER_MCP_ALLOWED_HOSTS=api.example.com\n")
    assert Settings().allowed_host_list() == ["api.example.com"]
