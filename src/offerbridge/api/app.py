"""ASGI entry point: `uvicorn offerbridge.api.app:app`."""

from .factory import create_app

app = create_app()
