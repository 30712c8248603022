"""ASGI entry point: ``uvicorn chatbridge.main:app``."""

from chatbridge.core.app_factory import create_app

app = create_app()
