"""Tenant context propagation via Python contextvars.

The board meeting endpoints read the tenant from the X-Tenant-ID header and
set a TenantContext for the rest of the request. Logging, metrics and Sentry
read it back through get_current_tenant().
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

TENANT_HEADER = "X-Tenant-ID"
USER_HEADER = "X-User-ID"
ANONYMOUS_USER = "anonymous"

# ── Tenant Context ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TenantContext:
    """Immutable tenant context for the current request."""

    tenant_id: str
    user_id: str = ANONYMOUS_USER


_tenant_context: contextvars.ContextVar[TenantContext] = contextvars.ContextVar("tenant_context")


def get_current_tenant() -> TenantContext:
    """Get the tenant context for the current request.

    Raises RuntimeError if no tenant context has been set (i.e., the call
    is not within a tenant-scoped request).
    """
    try:
        return _tenant_context.get()
    except LookupError:
        raise RuntimeError("No tenant context set -- request is not tenant-scoped")


def set_tenant_context(ctx: TenantContext) -> contextvars.Token[TenantContext]:
    """Set the tenant context for the current request. Returns a token for reset."""
    return _tenant_context.set(ctx)


def reset_tenant_context(token: contextvars.Token[TenantContext]) -> None:
    _tenant_context.reset(token)


# ── Tenant Middleware ───────────────────────────────────────────────────────


class TenantHeaderMiddleware(BaseHTTPMiddleware):
    """Sets TenantContext from the tenant/user headers when they are present.

    Requests without a tenant header pass through untouched; endpoints that
    need a tenant reject them themselves.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        tenant_id = request.headers.get(TENANT_HEADER)
        if not tenant_id:
            return await call_next(request)

        ctx = TenantContext(
            tenant_id=tenant_id,
            user_id=request.headers.get(USER_HEADER) or ANONYMOUS_USER,
        )
        token = set_tenant_context(ctx)
        try:
            return await call_next(request)
        finally:
            reset_tenant_context(token)
