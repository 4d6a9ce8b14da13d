from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from query_gateway.config import Settings
from query_gateway.domain.errors import ConfigurationError
from query_gateway.gateway import QueryGateway

ENV_VARS = (
    "GATEWAY_SERVERS",
    "GATEWAY_SQL_HOST",
    "GATEWAY_SQL_PORT",
    "GATEWAY_SQL_DATABASE",
    "GATEWAY_SQL_USERNAME",
    "GATEWAY_SQL_PASSWORD",
    "GATEWAY_SSL_MODE",
    "GATEWAY_MAX_RESULT_ROWS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.query_timeout_ms == 30_000
    assert settings.connection_timeout_ms == 15_000
    assert settings.max_result_rows == 1_000
    assert settings.max_response_bytes == 10 * 1024 * 1024
    assert (settings.pool_min, settings.pool_max) == (1, 10)
    assert settings.ssl_mode == "require"
    assert settings.read_only_sessions is True
    assert settings.connect_timeout_seconds == 15


def test_servers_from_json_env(monkeypatch) -> None:
    servers = [
        {"id": "prod", "host": "prod.example.com", "username": "reader", "databases": [{"name": "orders"}]},
        {"id": "lake", "host": "lake.example.com", "username": "analyst"},
    ]
    monkeypatch.setenv("GATEWAY_SERVERS", json.dumps(servers))
    monkeypatch.setenv("GATEWAY_MAX_RESULT_ROWS", "50")

    settings = Settings(_env_file=None)
    resources = settings.resources()

    assert [r.id for r in resources] == ["prod", "lake"]
    assert resources[1].discovery_mode
    assert settings.max_result_rows == 50


def test_single_server_fallback(monkeypatch) -> None:
    monkeypatch.setenv("GATEWAY_SQL_HOST", "db.example.com")
    monkeypatch.setenv("GATEWAY_SQL_DATABASE", "orders")
    monkeypatch.setenv("GATEWAY_SQL_USERNAME", "reader")
    monkeypatch.setenv("GATEWAY_SQL_PASSWORD", "pw")

    (server,) = Settings(_env_file=None).resources()

    assert server.id == "default"
    assert server.host == "db.example.com"
    assert [db.name for db in server.databases] == ["orders"]
    assert server.password.get_secret_value() == "pw"


def test_missing_resources_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="Missing gateway configuration"):
        Settings(_env_file=None).resources()


def test_malformed_server_record(monkeypatch) -> None:
    monkeypatch.setenv("GATEWAY_SERVERS", json.dumps([{"id": "broken"}]))

    with pytest.raises(ConfigurationError, match="Invalid server resource broken"):
        Settings(_env_file=None).resources()


@pytest.mark.parametrize("mode", ["disable", "allow", "prefer"])
def test_unencrypted_ssl_modes_rejected(monkeypatch, mode: str) -> None:
    monkeypatch.setenv("GATEWAY_SSL_MODE", mode)

    with pytest.raises(ValidationError, match="does not enforce encryption"):
        Settings(_env_file=None)


def test_pool_bounds_validated() -> None:
    with pytest.raises(ValidationError, match="pool_max"):
        Settings(_env_file=None, pool_min=5, pool_max=2)


def test_connect_timeout_never_rounds_to_zero() -> None:
    assert Settings(_env_file=None, connection_timeout_ms=400).connect_timeout_seconds == 1


def test_gateway_from_settings_wires_limits() -> None:
    settings = Settings(
        _env_file=None,
        servers=[{"id": "prod", "host": "h", "username": "u", "databases": [{"name": "orders"}]}],
        max_result_rows=25,
        pool_max=4,
        maintenance_database="template1",
    )

    gateway = QueryGateway.from_settings(settings)

    assert gateway.executor.max_rows == 25
    assert gateway.pools.pool_max == 4
    assert gateway.maintenance_database == "template1"
    assert gateway.pools.pool_keys() == []
    assert gateway.close() == []
