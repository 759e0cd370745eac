"""
Tests for the FastAPI endpoints.
"""

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from stepflow.collaborators import Message
from stepflow.main import app


# ============================================================
# Sync Test Client (for simple tests)
# ============================================================

client = TestClient(app)


@pytest.fixture(scope="module", autouse=True)
def started_app():
    """Run the application lifespan so example workflows are registered."""
    with client:
        yield


class TestRootEndpoints:
    """Tests for root endpoints."""

    def test_root(self):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert "name" in data
        assert "version" in data
        assert "endpoints" in data

    def test_health(self):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["workflows_count"] >= 3


class TestWorkflowEndpoints:
    """Tests for workflow endpoints."""

    def test_list_workflows(self):
        """Test listing workflows."""
        response = client.get("/workflows/")
        assert response.status_code == 200

        data = response.json()
        keys = [w["key"] for w in data["workflows"]]
        assert "nested-counter" in keys
        assert "agent-delegation" in keys
        assert "content-creator" in keys
        assert data["total"] == len(keys)

    def test_get_workflow(self):
        """Test getting a specific workflow."""
        response = client.get("/workflows/content-creator")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "Content Creator"
        assert data["start"] == "preprocess"
        assert [s["name"] for s in data["steps"]] == ["preprocess", "planner", "writer", "editor"]
        assert [s["strict"] for s in data["steps"]] == [False, True, True, True]
        assert "graph TD" in data["mermaid_diagram"]

    def test_get_nonexistent_workflow(self):
        """Test getting a workflow that doesn't exist."""
        response = client.get("/workflows/nonexistent")
        assert response.status_code == 404


class TestRunEndpoints:
    """Tests for running workflows and inspecting runs."""

    def test_run_nested_counter(self):
        """Test a synchronous run."""
        response = client.post(
            "/workflows/nested-counter/run",
            json={"initial_state": {"threshold": 0.5}},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "completed"
        assert data["steps"][0] == "start"
        assert data["steps"][-1] in ("delegate_add", "delegate_subtract")
        assert isinstance(data["final_state"]["counter"], int)
        assert data["final_state"]["counter"] != 0

    def test_run_invalid_initial_state(self):
        """Test the initial state is validated before a run is created."""
        response = client.post(
            "/workflows/nested-counter/run",
            json={"initial_state": {"threshold": 5}},
        )
        assert response.status_code == 422

    def test_run_nonexistent_workflow(self):
        response = client.post("/workflows/nonexistent/run", json={"initial_state": {}})
        assert response.status_code == 404

    def test_failed_run_is_reported(self):
        """Test a run without collaborators is stored as failed."""
        response = client.post(
            "/workflows/content-creator/run",
            json={"initial_state": {"input": "Write about pydantic"}},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "failed"
        assert "preprocess" in data["error"]
        assert data["trace"]["failed_step"] == "preprocess"

    def test_run_with_collaborators(self):
        """Test collaborators configured on the application reach the steps."""
        class Planner:
            async def run(self, memory):
                return Message.assistant("plan")

        class LLM:
            async def generate(self, messages, **config):
                return "post"

            async def generate_structured(self, messages, schema, **config):
                return schema(topic="pydantic")

        app.state.collaborators = {"llm": LLM(), "planner": Planner()}
        try:
            response = client.post(
                "/workflows/content-creator/run",
                json={"initial_state": {"input": "Write about pydantic"}},
            )
        finally:
            app.state.collaborators = {}

        data = response.json()
        assert data["status"] == "completed"
        assert data["final_state"]["output"] == "post"
        assert data["steps"] == ["preprocess", "planner", "writer", "editor"]

    def test_get_run(self):
        """Test fetching a stored run."""
        run_id = client.post(
            "/workflows/nested-counter/run",
            json={"initial_state": {"threshold": 0.5}},
        ).json()["run_id"]

        response = client.get(f"/runs/{run_id}")
        assert response.status_code == 200

        data = response.json()
        assert data["run_id"] == run_id
        assert data["status"] == "completed"
        assert data["events"][0]["type"] == "step-start"
        assert data["events"][-1]["type"] == "run-end"

    def test_list_runs_by_workflow(self):
        client.post("/workflows/nested-counter/run", json={"initial_state": {"threshold": 0.5}})

        response = client.get("/runs/", params={"workflow": "nested-counter"})
        assert response.status_code == 200

        data = response.json()
        assert data["total"] >= 1
        assert all(run["workflow"] == "nested-counter" for run in data["runs"])

    def test_get_nonexistent_run(self):
        response = client.get("/runs/nonexistent")
        assert response.status_code == 404

    def test_cancel_finished_run(self):
        """Test a finished run cannot be cancelled."""
        run_id = client.post(
            "/workflows/nested-counter/run",
            json={"initial_state": {"threshold": 0.5}},
        ).json()["run_id"]

        response = client.post(f"/runs/{run_id}/cancel")
        assert response.status_code == 409

    def test_cancel_nonexistent_run(self):
        response = client.post("/runs/nonexistent/cancel")
        assert response.status_code == 404


class TestWebSocket:
    """Tests for live event streaming."""

    def test_stream_run(self):
        """Test events are streamed until the run completes."""
        with client.websocket_connect("/ws/run/nested-counter") as websocket:
            websocket.send_json({"action": "start", "initial_state": {"threshold": 0.5}})

            started = websocket.receive_json()
            assert started["type"] == "started"

            messages = []
            while True:
                message = websocket.receive_json()
                messages.append(message)
                if message["type"] == "completed":
                    break

        assert messages[0]["type"] == "step-start"
        assert messages[-1]["status"] == "completed"
        assert any(m.get("parent_run_id") for m in messages[:-1])

    def test_invalid_action(self):
        with client.websocket_connect("/ws/run/nested-counter") as websocket:
            websocket.send_json({"action": "stop"})
            assert websocket.receive_json()["type"] == "error"


# ============================================================
# Async Test Client (for async tests)
# ============================================================

@pytest.mark.asyncio
async def test_run_nested_counter_async():
    """Test running a workflow with the async client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post(
            "/workflows/nested-counter/run",
            json={"initial_state": {"threshold": 0.0}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["steps"][-1] in ("delegate_add", "delegate_subtract")


@pytest.mark.asyncio
async def test_async_execution():
    """Test background execution and polling."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post(
            "/workflows/nested-counter/run",
            json={"initial_state": {"threshold": 0.5}, "async_execution": True},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        run_id = data["run_id"]

        # Background tasks finish before the transport returns
        response = await ac.get(f"/runs/{run_id}")
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
