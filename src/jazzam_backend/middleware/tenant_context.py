"""
Request-scoped tenant context.

Context variables follow the asyncio task that handles a request, so concurrent requests for
different tenants never observe each other's values.
"""

from contextvars import ContextVar
from typing import Any, Optional

_current_tenant_id: ContextVar[Optional[str]] = ContextVar("current_tenant_id", default=None)
_current_tenant_connection: ContextVar[Optional[Any]] = ContextVar("current_tenant_connection", default=None)


def set_tenant_context(tenant_id: Optional[str], connection: Any = None) -> None:
    _current_tenant_id.set(tenant_id)
    _current_tenant_connection.set(connection)


def get_current_tenant_id() -> Optional[str]:
    return _current_tenant_id.get()


def get_current_tenant_connection() -> Optional[Any]:
    return _current_tenant_connection.get()


def clear_tenant_context() -> None:
    set_tenant_context(None, None)
