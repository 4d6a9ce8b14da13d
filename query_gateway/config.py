"""
Configuration settings for the query gateway.

Uses Pydantic Settings to load the resource list, query limits, pool bounds
and logging options from environment variables (or a `.env` file). Resources
come either from `GATEWAY_SERVERS` (a JSON array of server records) or, for a
single-server deployment, from the `GATEWAY_SQL_*` variables.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from query_gateway.domain.errors import ConfigurationError
from query_gateway.domain.models import ServerResource
from query_gateway.registry import ResourceRegistry

ENCRYPTED_SSL_MODES = ("require", "verify-ca", "verify-full")


class Settings(BaseSettings):
    # Resources
    servers: List[Dict[str, Any]] = Field(default_factory=list, alias="GATEWAY_SERVERS")
    sql_host: Optional[str] = Field(None, alias="GATEWAY_SQL_HOST")
    sql_port: int = Field(5432, alias="GATEWAY_SQL_PORT")
    sql_database: Optional[str] = Field(None, alias="GATEWAY_SQL_DATABASE")
    sql_username: Optional[str] = Field(None, alias="GATEWAY_SQL_USERNAME")
    sql_password: Optional[SecretStr] = Field(None, alias="GATEWAY_SQL_PASSWORD")

    # Query limits
    query_timeout_ms: int = Field(30_000, gt=0, alias="GATEWAY_QUERY_TIMEOUT_MS")
    connection_timeout_ms: int = Field(15_000, gt=0, alias="GATEWAY_CONNECTION_TIMEOUT_MS")
    max_result_rows: int = Field(1_000, gt=0, alias="GATEWAY_MAX_RESULT_ROWS")
    max_response_bytes: int = Field(10 * 1024 * 1024, gt=0, alias="GATEWAY_MAX_RESPONSE_BYTES")

    # Pooling
    pool_min: int = Field(1, ge=1, alias="GATEWAY_POOL_MIN")
    pool_max: int = Field(10, ge=1, alias="GATEWAY_POOL_MAX")
    pool_idle_timeout_s: float = Field(30.0, gt=0, alias="GATEWAY_POOL_IDLE_TIMEOUT_S")

    # Session safety
    ssl_mode: str = Field("require", alias="GATEWAY_SSL_MODE")
    read_only_sessions: bool = Field(True, alias="GATEWAY_READ_ONLY_SESSIONS")
    maintenance_database: str = Field("postgres", alias="GATEWAY_MAINTENANCE_DATABASE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("ssl_mode")
    @classmethod
    def _require_encryption(cls, value: str) -> str:
        if value not in ENCRYPTED_SSL_MODES:
            raise ValueError(
                f"ssl_mode '{value}' does not enforce encryption; "
                f"use one of: {', '.join(ENCRYPTED_SSL_MODES)}"
            )
        return value

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "Settings":
        if self.pool_max < self.pool_min:
            raise ValueError(f"pool_max ({self.pool_max}) must be >= pool_min ({self.pool_min})")
        return self

    @property
    def connect_timeout_seconds(self) -> int:
        """libpq takes whole seconds; never round a positive timeout down to 0 (infinite)."""
        return max(1, round(self.connection_timeout_ms / 1000))

    def resources(self) -> List[ServerResource]:
        """
        Build the typed resource list.

        Raises
        ------
        ConfigurationError
            If no resources are configured or a record is malformed.
        """
        if self.servers:
            return ResourceRegistry.from_records(self.servers).servers

        if self.sql_host and self.sql_database:
            record: Dict[str, Any] = {
                "id": "default",
                "name": "Default server",
                "host": self.sql_host,
                "port": self.sql_port,
                "active": True,
                "databases": [{"name": self.sql_database, "active": True}],
                "username": self.sql_username,
                "password": self.sql_password.get_secret_value() if self.sql_password else None,
            }
            return ResourceRegistry.from_records([record]).servers

        raise ConfigurationError(
            "Missing gateway configuration: GATEWAY_SERVERS or GATEWAY_SQL_HOST/GATEWAY_SQL_DATABASE"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["ENCRYPTED_SSL_MODES", "Settings", "get_settings"]
