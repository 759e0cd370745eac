"""
WebSocket Routes for Real-time Run Streaming.

Provides live lifecycle events during workflow execution.
"""

from typing import Any, Dict, Set
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from uuid import uuid4
import asyncio
import logging

from stepflow.engine.errors import StateValidationError
from stepflow.engine.events import RunEvent
from stepflow.engine.state import build_state
from stepflow.storage.memory import run_storage, workflow_registry


logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


class ConnectionManager:
    """Manages WebSocket connections."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, run_id: str, accept: bool = True):
        """Register a WebSocket connection for a run."""
        if accept:
            await websocket.accept()
        self.active_connections.setdefault(run_id, set()).add(websocket)
        logger.info(f"WebSocket connected for run: {run_id}")

    def disconnect(self, websocket: WebSocket, run_id: str):
        """Remove a WebSocket connection."""
        if run_id in self.active_connections:
            self.active_connections[run_id].discard(websocket)
            if not self.active_connections[run_id]:
                del self.active_connections[run_id]
        logger.info(f"WebSocket disconnected for run: {run_id}")

    async def broadcast(self, run_id: str, message: Dict[str, Any]):
        """Broadcast a message to all connections for a run."""
        if run_id in self.active_connections:
            disconnected = set()
            for websocket in self.active_connections[run_id]:
                try:
                    await websocket.send_json(message)
                except Exception:
                    disconnected.add(websocket)

            # Clean up disconnected clients
            for ws in disconnected:
                self.active_connections[run_id].discard(ws)


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws/run/{key}")
async def websocket_run(websocket: WebSocket, key: str):
    """
    WebSocket endpoint for real-time workflow execution.

    Connect to this endpoint and send the initial state as JSON.
    Every lifecycle event is forwarded as it happens.

    Message format (client -> server):
    ```json
    {"action": "start", "initial_state": {"threshold": 0.5}}
    ```

    Message format (server -> client):
    ```json
    {
        "type": "step-success",
        "run_id": "...",
        "step": "start",
        "outcome": "delegate_add",
        "state": {...}
    }
    ```
    """
    from stepflow.api.routes.workflows import execute_run, jsonable

    stored = await workflow_registry.get(key)
    if not stored:
        await websocket.close(code=4004, reason=f"Workflow '{key}' not found")
        return

    await websocket.accept()
    run_id = str(uuid4())

    try:
        data = await websocket.receive_json()

        if data.get("action") != "start":
            await websocket.send_json({
                "type": "error",
                "error": "Expected 'start' action"
            })
            return

        initial_state = data.get("initial_state", {})
        try:
            state = build_state(stored.workflow.schema, initial_state)
        except StateValidationError as e:
            await websocket.send_json({"type": "error", "error": e.message})
            return

        await manager.connect(websocket, run_id, accept=False)
        run = await run_storage.create(run_id, key, initial_state)

        await websocket.send_json({
            "type": "started",
            "run_id": run_id,
            "workflow": key,
        })

        async def stream(event: RunEvent):
            await manager.broadcast(run_id, jsonable(event.to_dict()))

        collaborators = getattr(websocket.app.state, "collaborators", None) or {}
        run = await execute_run(stored, run, state, collaborators, observers=[stream])

        await websocket.send_json({
            "type": "completed",
            "run_id": run_id,
            "status": run.status,
            "final_state": run.final_state,
            "error": run.error,
        })

    except WebSocketDisconnect:
        logger.info(f"Client disconnected from run {run_id}")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        try:
            await websocket.send_json({
                "type": "error",
                "error": str(e),
            })
        except Exception:
            logger.debug("Could not report error to a closed WebSocket")
    finally:
        manager.disconnect(websocket, run_id)


@router.websocket("/ws/subscribe/{run_id}")
async def websocket_subscribe(websocket: WebSocket, run_id: str):
    """
    Subscribe to events of an existing run.

    Use this to watch an async execution started via
    POST /workflows/{key}/run.
    """
    stored = await run_storage.get(run_id)
    if not stored:
        await websocket.close(code=4004, reason=f"Run '{run_id}' not found")
        return

    await websocket.accept()

    try:
        await websocket.send_json({
            "type": "current_state",
            "run_id": run_id,
            "status": stored.status,
            "current_step": stored.current_step,
            "state": stored.current_state,
        })

        last_event_count = 0

        while True:
            stored = await run_storage.get(run_id)
            if not stored:
                break

            if len(stored.events) > last_event_count:
                for event in stored.events[last_event_count:]:
                    await websocket.send_json(event)
                last_event_count = len(stored.events)

            if stored.status in ("completed", "failed", "cancelled"):
                await websocket.send_json({
                    "type": "completed",
                    "run_id": run_id,
                    "status": stored.status,
                    "final_state": stored.final_state,
                    "error": stored.error,
                })
                break

            await asyncio.sleep(0.5)  # Poll interval

    except WebSocketDisconnect:
        logger.info(f"Subscriber disconnected from run {run_id}")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
