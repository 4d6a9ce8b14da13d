"""
Query gateway facade.

Wires the resource registry, default resolver, pool manager, safety validator
and executor into the operations an outer dispatch layer calls:

    from query_gateway.gateway import QueryGateway

    with QueryGateway.from_settings() as gateway:
        result = gateway.run_select("SELECT id, total FROM orders LIMIT 10")
        print(result.columns, result.rows, result.truncated)

Every operation resolves an omitted server/database through the
`DefaultResolver`, obtains a pooled connection per call and never keeps it
across calls. Only `run_select` accepts caller SQL, and only after it passes
`validate_query`; catalog operations run SQL generated here.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from query_gateway.config import Settings, get_settings
from query_gateway.domain.errors import ExecutionError, GatewayConnectionError, NotFoundError
from query_gateway.domain.models import (
    ConnectionTestResult,
    DatabaseInfo,
    DefaultConfiguration,
    ObjectDefinition,
    QueryRequest,
    QueryResult,
    ServerInfo,
    TableSchema,
)
from query_gateway.infrastructure.pool_manager import PoolManager
from query_gateway.query import catalog
from query_gateway.query.executor import QueryExecutor
from query_gateway.query.validator import validate_query
from query_gateway.registry import ResourceRegistry
from query_gateway.resolver import DefaultResolver
from query_gateway.utils.audit import audit_operation
from query_gateway.utils.logging import get_logger

log = get_logger(__name__)


class QueryGateway:
    """
    Read-only access to a set of configured database servers.

    Parameters
    ----------
    registry : ResourceRegistry
        The static resource allow-list.
    pool_manager : PoolManager | None
        Defaults to a manager with default pool bounds over `registry`.
    executor : QueryExecutor | None
        Defaults to an executor with default limits.
    maintenance_database : str
        Database used to list databases on servers in discovery mode.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        pool_manager: Optional[PoolManager] = None,
        executor: Optional[QueryExecutor] = None,
        maintenance_database: str = "postgres",
    ) -> None:
        self.registry = registry
        self.resolver = DefaultResolver(registry)
        self.pools = pool_manager or PoolManager(registry)
        self.executor = executor or QueryExecutor()
        self.maintenance_database = maintenance_database

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "QueryGateway":
        settings = settings or get_settings()
        registry = ResourceRegistry(settings.resources())
        return cls(
            registry,
            pool_manager=PoolManager.from_settings(registry, settings),
            executor=QueryExecutor.from_settings(settings),
            maintenance_database=settings.maintenance_database,
        )

    def __enter__(self) -> "QueryGateway":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Plumbing

    def _target(self, server_id: Optional[str], database: Optional[str]) -> Tuple[str, str]:
        resolved_server = self.resolver.resolve_server_id(server_id)
        return resolved_server, self.resolver.resolve_database(resolved_server, database)

    def _execute(self, request: QueryRequest) -> QueryResult:
        pooled = self.pools.acquire(request.server_id, request.database)
        return self.executor.execute(pooled, request.query_text, request.parameters)

    def _query(
        self,
        server_id: str,
        database: str,
        query_text: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> QueryResult:
        return self._execute(
            QueryRequest(
                server_id=server_id, database=database, query_text=query_text, parameters=params
            )
        )

    def _catalog(
        self,
        operation: str,
        server_id: Optional[str],
        database: Optional[str],
        query_text: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> QueryResult:
        server_id, database = self._target(server_id, database)
        with audit_operation(operation, f"{server_id}/{database}", params) as details:
            result = self._query(server_id, database, query_text, params)
            details["row_count"] = result.row_count
        return result

    # Resources

    def list_resources(self) -> List[ServerInfo]:
        """Every configured server, active or not. Credentials are never included."""
        return [
            ServerInfo(
                id=server.id,
                name=server.name,
                host=server.host,
                port=server.port,
                active=server.active,
                database_count=len(server.databases),
                auth_method=server.auth_method,
                description=server.description,
            )
            for server in self.registry.servers
        ]

    def default_configuration(self) -> DefaultConfiguration:
        return self.resolver.default_configuration()

    def list_databases(self, server_id: Optional[str] = None) -> List[DatabaseInfo]:
        """
        Configured databases, or the live catalog for a server in discovery mode.
        """
        server = self.registry.resolve_server(self.resolver.resolve_server_id(server_id))
        if not server.discovery_mode:
            return [
                DatabaseInfo(name=db.name, active=db.active, description=db.description)
                for db in server.databases
            ]

        try:
            result = self._catalog(
                "list_databases", server.id, self.maintenance_database, catalog.LIST_DATABASES
            )
        except (GatewayConnectionError, ExecutionError) as exc:
            raise type(exc)(
                f"Failed to query databases on server '{server.id}': {exc.message}"
            ) from None
        return [
            DatabaseInfo(name=record["name"], active=True, description="Discovered database")
            for record in result.records()
        ]

    def test_connection(
        self, server_id: Optional[str] = None, database: Optional[str] = None
    ) -> ConnectionTestResult:
        """
        Open (or reuse) the pool for the target and report who we are connected as.

        Connection and execution failures are reported in the result rather
        than raised; unknown or inactive resources still raise.
        """
        server_id, database = self._target(server_id, database)
        server = self.registry.resolve_server(server_id)
        try:
            result = self._catalog("test_connection", server_id, database, catalog.CONNECTION_INFO)
        except (GatewayConnectionError, ExecutionError) as exc:
            return ConnectionTestResult(
                connected=False, server=server.host, database=database, error=exc.message
            )

        info = result.records()[0] if result.rows else {}
        return ConnectionTestResult(
            connected=True,
            server=server.host,
            database=database,
            server_version=info.get("server_version"),
            current_database=info.get("current_database"),
            login_name=info.get("login_name"),
            current_user=info.get("current_user"),
        )

    # Queries

    def run_select(
        self,
        query_text: str,
        server_id: Optional[str] = None,
        database: Optional[str] = None,
    ) -> QueryResult:
        """
        Validate and run a caller-supplied read query.

        Raises
        ------
        AmbiguousError
            If server or database is omitted and no default can be resolved.
        RejectedError
            If the query fails the safety validator. Nothing is executed.
        NotFoundError, InactiveError, GatewayConnectionError, ExecutionError
            From resolution, pooling or execution.
        """
        server_id, database = self._target(server_id, database)
        component = f"{server_id}/{database}"
        with audit_operation("run_select", component, {"query": query_text}) as details:
            validate_query(query_text)
            result = self._query(server_id, database, query_text)
            details.update(row_count=result.row_count, truncated=result.truncated)

        if result.truncated:
            log.warning(
                f"Query results truncated. Returned {result.row_count} rows; "
                f"maximum is {self.executor.max_rows}. Add a WHERE clause to filter results.",
                extra={"server_id": server_id, "database": database, "rows": result.row_count},
            )
        return result

    # Catalog

    def list_tables(
        self, server_id: Optional[str] = None, database: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._catalog("list_tables", server_id, database, catalog.LIST_TABLES).records()

    def list_views(
        self, server_id: Optional[str] = None, database: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._catalog("list_views", server_id, database, catalog.LIST_VIEWS).records()

    def list_procedures(
        self, server_id: Optional[str] = None, database: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._catalog(
            "list_procedures", server_id, database, catalog.LIST_PROCEDURES
        ).records()

    def list_triggers(
        self, server_id: Optional[str] = None, database: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._catalog("list_triggers", server_id, database, catalog.LIST_TRIGGERS).records()

    def list_functions(
        self, server_id: Optional[str] = None, database: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return self._catalog(
            "list_functions", server_id, database, catalog.LIST_FUNCTIONS
        ).records()

    def _optional_records(
        self, server_id: str, database: str, query_text: str, params: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        try:
            return self._query(server_id, database, query_text, params).records()
        except ExecutionError as exc:
            log.warning(
                "Optional schema detail unavailable",
                extra={"server_id": server_id, "database": database, "error": exc.message},
            )
            return []

    def get_table_schema(
        self,
        server_id: Optional[str],
        database: Optional[str],
        schema_name: str,
        table_name: str,
    ) -> TableSchema:
        """
        Columns, indexes and foreign keys of one table.

        Columns are required; indexes and foreign keys fall back to empty
        lists when the account cannot read them.
        """
        server_id, database = self._target(server_id, database)
        params = {"schema": schema_name, "table": table_name}
        with audit_operation("get_table_schema", f"{server_id}/{database}", params):
            exists = self._query(server_id, database, catalog.TABLE_EXISTS, params)
            if exists.row_count == 0:
                raise NotFoundError(
                    f"Table '{schema_name}.{table_name}' not found. "
                    f"Use list_tables to see available tables."
                )
            columns = self._query(server_id, database, catalog.TABLE_COLUMNS, params).records()
            indexes = self._optional_records(server_id, database, catalog.TABLE_INDEXES, params)
            foreign_keys = self._optional_records(
                server_id, database, catalog.TABLE_FOREIGN_KEYS, params
            )

        return TableSchema(
            schema_name=schema_name,
            table_name=table_name,
            columns=columns,
            indexes=indexes,
            foreign_keys=foreign_keys,
        )

    def get_object_definition(
        self,
        server_id: Optional[str],
        database: Optional[str],
        schema_name: str,
        object_name: str,
        object_type: str,
    ) -> ObjectDefinition:
        """Source of a view, procedure, function or trigger."""
        type_key = object_type.upper()
        if type_key not in catalog.OBJECT_DEFINITIONS:
            raise NotFoundError(
                f"Unsupported object type '{object_type}'. "
                f"Supported types: {', '.join(catalog.OBJECT_TYPES)}."
            )

        result = self._catalog(
            "get_object_definition",
            server_id,
            database,
            catalog.OBJECT_DEFINITIONS[type_key],
            {"schema": schema_name, "name": object_name},
        )
        if not result.rows:
            raise NotFoundError(
                f"{type_key} '{schema_name}.{object_name}' not found. "
                f"Check the schema name, object name, and object type."
            )
        return ObjectDefinition(**result.records()[0])

    # Lifecycle

    def close(self) -> List[str]:
        """
        Close every pool. Returns per-pool close errors instead of raising.
        Safe to call more than once.
        """
        return self.pools.close()


__all__ = ["QueryGateway"]
