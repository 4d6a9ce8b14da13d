from __future__ import annotations

import pytest

from query_gateway.domain.errors import AmbiguousError
from query_gateway.registry import ResourceRegistry
from query_gateway.resolver import DefaultResolver


def _resolver(*records) -> DefaultResolver:
    return DefaultResolver(ResourceRegistry.from_records(list(records)))


def _server(server_id: str, databases=None, active: bool = True) -> dict:
    record = {"id": server_id, "host": f"{server_id}.example.com", "username": "u", "active": active}
    if databases is not None:
        record["databases"] = databases
    return record


def test_single_server_single_database_defaults() -> None:
    resolver = _resolver(_server("only", [{"name": "db1"}]))

    defaults = resolver.default_configuration()

    assert defaults.default_server_id == "only"
    assert defaults.default_database == "db1"
    assert defaults.server_count == 1
    assert defaults.database_count == 1
    assert "may be omitted" in defaults.hint
    assert resolver.resolve_server_id() == "only"
    assert resolver.resolve_database("only") == "db1"


def test_first_active_server_and_database_win(registry: ResourceRegistry) -> None:
    resolver = DefaultResolver(registry)

    defaults = resolver.default_configuration()

    assert defaults.default_server_id == "prod"
    assert defaults.default_database == "orders"
    assert defaults.server_count == 3
    assert defaults.database_count == 2


def test_inactive_servers_are_skipped() -> None:
    resolver = _resolver(_server("off", [{"name": "a"}], active=False), _server("on", [{"name": "b"}]))

    assert resolver.resolve_server_id() == "on"


def test_explicit_values_pass_through() -> None:
    resolver = _resolver(_server("only", [{"name": "db1"}]))

    assert resolver.resolve_server_id("other") == "other"
    assert resolver.resolve_database("only", "db9") == "db9"


def test_no_servers_configured() -> None:
    resolver = _resolver()

    assert resolver.default_configuration().default_server_id is None
    with pytest.raises(AmbiguousError, match="No servers configured"):
        resolver.resolve_server_id()


def test_no_active_servers() -> None:
    resolver = _resolver(_server("off", [{"name": "a"}], active=False))

    with pytest.raises(AmbiguousError, match="none are active"):
        resolver.resolve_server_id()


def test_discovery_mode_requires_explicit_database() -> None:
    resolver = _resolver(_server("lake"))

    defaults = resolver.default_configuration()
    assert defaults.default_server_id == "lake"
    assert defaults.default_database is None
    assert "discovery mode" in defaults.hint
    with pytest.raises(AmbiguousError, match="discovery mode"):
        resolver.resolve_database("lake")


def test_no_active_databases() -> None:
    resolver = _resolver(_server("prod", [{"name": "a", "active": False}]))

    assert resolver.default_configuration().default_database is None
    with pytest.raises(AmbiguousError, match="No active databases on server 'prod'"):
        resolver.resolve_database("prod")
