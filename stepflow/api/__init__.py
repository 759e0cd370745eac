"""
API package - FastAPI routes and schemas.
"""

from stepflow.api.routes import workflows, runs, websocket

__all__ = ["workflows", "runs", "websocket"]
