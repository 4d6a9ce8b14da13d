"""
Resource registry: the static allow-list of servers and databases.

The registry is built once from configuration and never mutated. Lookups
distinguish "unknown" (NotFoundError, listing the valid alternatives) from
"known but disabled" (InactiveError, naming the flag to flip).
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Sequence, Union

from pydantic import ValidationError

from query_gateway.domain.errors import ConfigurationError, InactiveError, NotFoundError
from query_gateway.domain.models import DatabaseResource, ServerResource


def _describe_errors(exc: ValidationError) -> str:
    # Field locations and reasons only; pydantic's own text echoes the raw
    # record, credentials included.
    problems = []
    for error in exc.errors(include_url=False, include_context=False, include_input=False):
        location = ".".join(str(part) for part in error["loc"]) or "record"
        problems.append(f"{location}: {error['msg']}")
    return "; ".join(problems)


class ResourceRegistry:
    """
    Read-only view over configured `ServerResource` records.
    """

    def __init__(self, resources: Iterable[ServerResource]) -> None:
        self._servers: List[ServerResource] = list(resources)
        seen: set[str] = set()
        duplicates = []
        for server in self._servers:
            if server.id in seen:
                duplicates.append(server.id)
            seen.add(server.id)
        if duplicates:
            raise ConfigurationError(
                f"Duplicate server ids in configuration: {', '.join(sorted(set(duplicates)))}"
            )

    @classmethod
    def from_records(cls, records: Sequence[Mapping[str, Any]]) -> "ResourceRegistry":
        """
        Parse loosely-typed records (e.g. decoded JSON) into a registry.

        Raises
        ------
        ConfigurationError
            If any record is malformed.
        """
        servers = []
        for index, record in enumerate(records):
            try:
                servers.append(ServerResource.model_validate(record))
            except ValidationError as exc:
                label = record.get("id", f"#{index}") if isinstance(record, Mapping) else f"#{index}"
                raise ConfigurationError(
                    f"Invalid server resource {label}: {_describe_errors(exc)}"
                ) from None
        return cls(servers)

    @property
    def servers(self) -> List[ServerResource]:
        return list(self._servers)

    def _available_servers(self) -> str:
        return ", ".join(f"{s.id} ({s.name})" for s in self._servers) or "none configured"

    def resolve_server(self, server_id: str) -> ServerResource:
        """
        Return the active server with `server_id`.

        Raises
        ------
        NotFoundError
            If no server has that id. The message lists every configured id.
        InactiveError
            If the server exists but `active` is false.
        """
        server = next((s for s in self._servers if s.id == server_id), None)
        if server is None:
            raise NotFoundError(
                f"Server '{server_id}' not found. Available servers: {self._available_servers()}."
            )
        if not server.active:
            raise InactiveError(
                f"Server '{server_id}' is inactive. Set active=true in configuration to enable access."
            )
        return server

    def resolve_database(
        self, server: Union[ServerResource, str], database: str
    ) -> DatabaseResource:
        """
        Return the active database `database` on `server`.

        A server in discovery mode accepts any name; existence is checked by
        the server when the connection opens.
        """
        if isinstance(server, str):
            server = self.resolve_server(server)

        if server.discovery_mode:
            return DatabaseResource(name=database, active=True)

        config = next((db for db in server.databases if db.name == database), None)
        if config is None:
            available = ", ".join(db.name for db in server.databases)
            raise NotFoundError(
                f"Database '{database}' not configured on server '{server.id}'. "
                f"Available databases: {available}."
            )
        if not config.active:
            raise InactiveError(
                f"Database '{database}' is inactive on server '{server.id}'. "
                f"Set active=true in configuration to enable access."
            )
        return config

    def __len__(self) -> int:
        return len(self._servers)


__all__ = ["ResourceRegistry"]
