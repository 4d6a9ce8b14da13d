"""
Domain models for the query gateway.

Resource records (servers and their databases) are parsed eagerly into frozen
pydantic models so malformed configuration fails at startup rather than on the
first query. Result and catalog models describe what the gateway hands back to
its caller.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, SecretStr, model_validator

AuthMethod = Literal["password", "service_identity"]


class DatabaseResource(BaseModel):
    """
    A database allow-listed on a server.
    """

    name: str = Field(..., min_length=1, description="Database name.")
    active: bool = Field(True, description="Disabled databases are known but unreachable.")
    description: Optional[str] = Field(None, description="Free-text description.")

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }


class ServerResource(BaseModel):
    """
    A configured database server with one credential set.

    An empty `databases` tuple puts the server in discovery mode: any database
    name is accepted and checked by the server at connect time.
    """

    id: str = Field(..., min_length=1, description="Unique resource identifier.")
    name: str = Field(..., description="Display name; defaults to the id.")
    host: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("host", "server"),
        description="Server hostname.",
    )
    port: int = Field(5432, gt=0, lt=65536, description="Server port.")
    active: bool = Field(True, description="Disabled servers are known but unreachable.")
    databases: Tuple[DatabaseResource, ...] = Field(
        default=(), description="Database allow-list; empty means discovery mode."
    )

    username: Optional[str] = Field(None, description="Login role for password auth.")
    password: Optional[SecretStr] = Field(None, description="Password for password auth.")

    use_service_identity: bool = Field(
        False,
        validation_alias=AliasChoices("use_service_identity", "useServiceIdentity", "useAzureAd"),
        description="Authenticate with a service principal token instead of a password.",
    )
    client_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("client_id", "clientId", "azureAdClientId")
    )
    client_secret: Optional[SecretStr] = Field(
        None, validation_alias=AliasChoices("client_secret", "clientSecret", "azureAdClientSecret")
    )
    tenant_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("tenant_id", "tenantId", "azureAdTenantId")
    )

    description: Optional[str] = Field(None, description="Free-text description.")

    model_config = {
        "frozen": True,
        "extra": "forbid",
        "populate_by_name": True,
    }

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            data = {**data, "name": data.get("id", "")}
        return data

    @model_validator(mode="after")
    def _check_credentials(self) -> "ServerResource":
        if self.use_service_identity:
            missing = [
                field
                for field in ("client_id", "client_secret", "tenant_id")
                if not getattr(self, field)
            ]
            if missing:
                raise ValueError(
                    f"Server '{self.id}' uses service identity but is missing: {', '.join(missing)}"
                )
        elif not self.username:
            raise ValueError(f"Server '{self.id}' uses password auth but has no username")

        seen: set[str] = set()
        for database in self.databases:
            if database.name in seen:
                raise ValueError(f"Server '{self.id}' lists database '{database.name}' twice")
            seen.add(database.name)
        return self

    @property
    def auth_method(self) -> AuthMethod:
        return "service_identity" if self.use_service_identity else "password"

    @property
    def discovery_mode(self) -> bool:
        return not self.databases


class QueryRequest(BaseModel):
    """
    A caller query. Parameters are only bound for internally generated SQL.
    """

    server_id: Optional[str] = None
    database: Optional[str] = None
    query_text: str
    parameters: Optional[Dict[str, Any]] = None

    model_config = {"frozen": True}


class QueryResult(BaseModel):
    """
    Tabular result, already limited.

    `row_count == len(rows)` always holds; `truncated` is true only when the
    database produced more rows than the configured maximum.
    """

    columns: List[str] = Field(default_factory=list)
    rows: List[Tuple[Any, ...]] = Field(default_factory=list)
    row_count: int = 0
    truncated: bool = False

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_row_count(self) -> "QueryResult":
        if self.row_count != len(self.rows):
            raise ValueError(f"row_count={self.row_count} does not match {len(self.rows)} rows")
        return self

    def records(self) -> List[Dict[str, Any]]:
        """Rows as column-name keyed dictionaries."""
        return [dict(zip(self.columns, row)) for row in self.rows]


class ServerInfo(BaseModel):
    id: str
    name: str
    host: str
    port: int
    active: bool
    database_count: int
    auth_method: AuthMethod
    description: Optional[str] = None


class DatabaseInfo(BaseModel):
    name: str
    active: bool
    description: Optional[str] = None


class ConnectionTestResult(BaseModel):
    connected: bool
    server: str
    database: str
    server_version: Optional[str] = None
    current_database: Optional[str] = None
    login_name: Optional[str] = None
    current_user: Optional[str] = None
    error: Optional[str] = None


class DefaultConfiguration(BaseModel):
    """Default server/database for callers that skip discovery."""

    default_server_id: Optional[str] = None
    default_server_name: Optional[str] = None
    default_database: Optional[str] = None
    server_count: int = 0
    database_count: int = 0
    hint: str


class TableSchema(BaseModel):
    schema_name: str
    table_name: str
    columns: List[Dict[str, Any]] = Field(default_factory=list)
    indexes: List[Dict[str, Any]] = Field(default_factory=list)
    foreign_keys: List[Dict[str, Any]] = Field(default_factory=list)


class ObjectDefinition(BaseModel):
    schema_name: str
    object_name: str
    object_type: str
    definition: Optional[str] = None


class PoolKey(BaseModel):
    """Composite `(server_id, database)` key of a pooled connection."""

    server_id: str
    database: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.server_id}:{self.database}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


__all__ = [
    "AuthMethod",
    "ConnectionTestResult",
    "DatabaseInfo",
    "DatabaseResource",
    "DefaultConfiguration",
    "ObjectDefinition",
    "PoolKey",
    "QueryRequest",
    "QueryResult",
    "ServerInfo",
    "ServerResource",
    "TableSchema",
    "utcnow",
]
