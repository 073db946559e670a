"""Configuration for the Swagger to MCP compiler and server."""

from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


class SecurityConfig(BaseModel):
    """Immutable security boundary applied to every spec source."""

    model_config = ConfigDict(frozen=True)

    allowed_schemes: Tuple[str, ...] = ("https",)
    # Empty means any public host; "*.example.com" matches the domain and its subdomains.
    allowed_hosts: Tuple[str, ...] = ()
    block_private_ips: bool = True
    allowed_extensions: Tuple[str, ...] = (".yaml", ".yml", ".json")
    base_directory: Optional[str] = None
    max_file_size: int = DEFAULT_MAX_FILE_SIZE


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SWAGGER_MCP_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    swagger_source: Optional[str] = Field(default=None)
    manifest_path: str = Field(default="mcp.json")
    manifest_only: bool = Field(default=False)

    transport: str = Field(default="streamable-http")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=4000)
    base_url: Optional[str] = Field(default=None)

    allow_http: bool = Field(default=False)
    allowed_hosts: Optional[str] = Field(default=None)
    base_directory: Optional[str] = Field(default=None)
    allow_private_ips: bool = Field(default=False)
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE)

    fetch_timeout_seconds: float = Field(default=10)
    request_timeout_seconds: float = Field(default=30)
    max_response_bytes: int = Field(default=10 * 1024 * 1024)
    max_retries: int = Field(default=0)
    max_concurrency: int = Field(default=20)
    spec_cache_seconds: int = Field(default=0)
    shutdown_grace_seconds: int = Field(default=10)

    log_level: str = Field(default="INFO")

    def allowed_host_list(self) -> List[str]:
        if not self.allowed_hosts:
            return []
        return [item.strip() for item in self.allowed_hosts.split(",") if item.strip()]

    def security_config(self) -> SecurityConfig:
        schemes = ("http", "https") if self.allow_http else ("https",)
        return SecurityConfig(
            allowed_schemes=schemes,
            allowed_hosts=tuple(self.allowed_host_list()),
            block_private_ips=not self.allow_private_ips,
            base_directory=self.base_directory,
            max_file_size=self.max_file_size,
        )
