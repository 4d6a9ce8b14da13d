"""
Default server/database resolution for callers that omit them.

This is the only place the "first active resource" heuristic lives. When no
unambiguous default exists the resolver raises AmbiguousError with a hint
instead of guessing.
"""

from __future__ import annotations

from typing import Optional

from query_gateway.domain.errors import AmbiguousError
from query_gateway.domain.models import DefaultConfiguration
from query_gateway.registry import ResourceRegistry


class DefaultResolver:
    def __init__(self, registry: ResourceRegistry) -> None:
        self.registry = registry

    def default_configuration(self) -> DefaultConfiguration:
        """
        Describe the default server and database, with a human-readable hint.
        """
        servers = self.registry.servers
        server_count = len(servers)
        active_servers = [s for s in servers if s.active]

        if server_count == 0:
            return DefaultConfiguration(
                server_count=0,
                hint="No servers configured. Set GATEWAY_SERVERS or the GATEWAY_SQL_* variables.",
            )
        if not active_servers:
            return DefaultConfiguration(
                server_count=server_count,
                hint=(
                    f"{server_count} server(s) configured but none are active. "
                    f"Set active=true on a server to enable it."
                ),
            )

        server = active_servers[0]
        database_count = len(server.databases)
        active_databases = [db for db in server.databases if db.active]

        if database_count == 0:
            prefix = (
                f"Single server configured ({server.id})."
                if server_count == 1
                else f"{server_count} server(s) configured. Default: {server.id}."
            )
            return DefaultConfiguration(
                default_server_id=server.id,
                default_server_name=server.name,
                server_count=server_count,
                hint=f"{prefix} Databases are in discovery mode - you must specify the database.",
            )
        if not active_databases:
            return DefaultConfiguration(
                default_server_id=server.id,
                default_server_name=server.name,
                server_count=server_count,
                database_count=database_count,
                hint=(
                    f"{database_count} database(s) configured on server '{server.id}' but none "
                    f"are active. Set active=true on a database to enable it."
                ),
            )

        database = active_databases[0]
        if server_count == 1 and len(active_databases) == 1:
            hint = (
                f"Single server with one active database. Server and database may be omitted; "
                f"defaults: server='{server.id}', database='{database.name}'."
            )
        else:
            hint = (
                f"{server_count} server(s), {database_count} database(s) on default server. "
                f"Defaults: server='{server.id}', database='{database.name}'."
            )
        return DefaultConfiguration(
            default_server_id=server.id,
            default_server_name=server.name,
            default_database=database.name,
            server_count=server_count,
            database_count=database_count,
            hint=hint,
        )

    def resolve_server_id(self, explicit: Optional[str] = None) -> str:
        """Return `explicit`, or the first active server's id."""
        if explicit:
            return explicit
        defaults = self.default_configuration()
        if defaults.default_server_id is None:
            raise AmbiguousError(defaults.hint)
        return defaults.default_server_id

    def resolve_database(self, server_id: str, explicit: Optional[str] = None) -> str:
        """
        Return `explicit`, or the first active database on `server_id`.

        A server in discovery mode has no safe default, so an explicit name is
        always required there.
        """
        if explicit:
            return explicit

        server = self.registry.resolve_server(server_id)
        if server.discovery_mode:
            raise AmbiguousError(
                f"Server '{server_id}' is in discovery mode (no databases configured). "
                f"Specify the database explicitly; list_databases shows what exists."
            )

        active = [db for db in server.databases if db.active]
        if not active:
            available = ", ".join(db.name for db in server.databases)
            raise AmbiguousError(
                f"No active databases on server '{server_id}'. Available databases: {available}. "
                f"Set active=true in configuration or specify the database explicitly."
            )
        return active[0].name


__all__ = ["DefaultResolver"]
