"""Request-scoped access to the process runtime."""

from fastapi import HTTPException
from starlette.requests import HTTPConnection

from offerbridge.runtime import Runtime


def get_runtime(conn: HTTPConnection) -> Runtime:
    """Runtime attached by the app factory (or by tests). Serves HTTP and WebSocket routes."""
    runtime = getattr(conn.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="runtime not initialized")
    return runtime
