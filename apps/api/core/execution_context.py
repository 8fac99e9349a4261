"""
Execution context marker.

The Redis connection may only be used from server-side code. The storage client
marks its work as client-side; the ASGI middleware marks request handling as
server-side. Scripts and workers run with the unmarked default, which counts as
server-side.
"""
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum

from core.errors import ClientSideForbidden


class ExecutionContext(str, Enum):
    SERVER = "server"
    CLIENT = "client"


_current: ContextVar[ExecutionContext] = ContextVar(
    "execution_context", default=ExecutionContext.SERVER
)


def current_execution_context() -> ExecutionContext:
    return _current.get()


@contextmanager
def execution_context(ctx: ExecutionContext):
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


def client_context():
    return execution_context(ExecutionContext.CLIENT)


def ensure_server_side(operation: str = "Redis connection") -> None:
    if _current.get() is ExecutionContext.CLIENT:
        raise ClientSideForbidden(f"{operation} can only be used server-side")


class ServerContextMiddleware:
    """Pure ASGI middleware marking everything below it as server-side."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        token = _current.set(ExecutionContext.SERVER)
        try:
            await self.app(scope, receive, send)
        finally:
            _current.reset(token)
