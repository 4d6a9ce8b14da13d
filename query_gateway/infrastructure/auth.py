"""
Per-server authentication for pooled connections.

Password resources pass `user`/`password` through the pool's connection
kwargs. Service-identity resources get a connection class that requests a
fresh access token (client-credentials flow via azure-identity) each time the
pool opens a physical connection, so tokens never go stale inside a long-lived
pool.
"""

from __future__ import annotations

from typing import Any, Dict, Type

import psycopg
from azure.identity import ClientSecretCredential

from query_gateway.domain.models import ServerResource

SERVICE_IDENTITY_SCOPE = "https://ossrdbms-aad.database.windows.net/.default"


def service_identity_connection_class(server: ServerResource) -> Type[psycopg.Connection]:
    """
    Build a `psycopg.Connection` subclass that authenticates as the server's
    service principal.
    """
    credential = ClientSecretCredential(
        tenant_id=server.tenant_id,
        client_id=server.client_id,
        client_secret=server.client_secret.get_secret_value(),
    )

    class ServiceIdentityConnection(psycopg.Connection):
        @classmethod
        def connect(cls, conninfo: str = "", **kwargs: Any) -> "ServiceIdentityConnection":
            kwargs["password"] = credential.get_token(SERVICE_IDENTITY_SCOPE).token
            return super().connect(conninfo, **kwargs)

    return ServiceIdentityConnection


def connection_kwargs(server: ServerResource) -> Dict[str, Any]:
    """Keyword arguments merged into every connection the pool opens."""
    if server.use_service_identity:
        # Entra logins use the role name mapped to the principal; fall back to the client id.
        return {"user": server.username or server.client_id}
    return {
        "user": server.username,
        "password": server.password.get_secret_value() if server.password else None,
    }


def connection_class(server: ServerResource) -> Type[psycopg.Connection]:
    if server.use_service_identity:
        return service_identity_connection_class(server)
    return psycopg.Connection


__all__ = [
    "SERVICE_IDENTITY_SCOPE",
    "connection_class",
    "connection_kwargs",
    "service_identity_connection_class",
]
