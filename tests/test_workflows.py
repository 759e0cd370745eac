"""
Tests for the example workflows, run against fake collaborators.
"""

import pytest
from typing import List

from stepflow.collaborators import Agent, ChatModel, Message, UnconstrainedMemory
from stepflow.engine.errors import StateValidationError, StepExecutionError
from stepflow.engine.executor import RunStatus
from stepflow.workflows import EXAMPLE_WORKFLOWS, register_example_workflows
from stepflow.workflows.nested_counter import create_counter_loop, create_nested_counter_workflow
from stepflow.workflows.agent_delegation import create_agent_delegation_workflow
from stepflow.workflows.content_creator import create_content_creator_workflow
from stepflow.storage.memory import WorkflowRegistry


class FakeAgent:
    """Agent answering with a fixed text."""

    def __init__(self, text: str):
        self.text = text
        self.seen: List[List[Message]] = []

    async def run(self, memory):
        self.seen.append(memory.messages)
        return Message.assistant(self.text)


class FakeLLM:
    """Chat model replaying canned responses."""

    def __init__(self, structured=(), texts=()):
        self.structured = list(structured)
        self.texts = list(texts)
        self.calls = []

    async def generate(self, messages, **config):
        self.calls.append(list(messages))
        return self.texts.pop(0)

    async def generate_structured(self, messages, schema, **config):
        self.calls.append(list(messages))
        return schema.model_validate(self.structured.pop(0))

    async def stream(self, messages, **config):
        for text in self.texts:
            yield text


def draws(*values):
    """Deterministic replacement for random.random."""
    return iter(values).__next__


# ============================================================
# Nested Counter
# ============================================================

class TestNestedCounter:
    """Tests for the nested counter workflow."""

    @pytest.mark.asyncio
    async def test_add_branch(self):
        """Test a high draw delegates to the add loop."""
        workflow = create_nested_counter_workflow(rand=draws(0.9, 0.7, 0.2))
        result = await workflow.run({"threshold": 0.5})

        assert result.status == RunStatus.COMPLETED
        assert result.state.counter == 2
        assert result.trace.step_names == ["start", "delegate_add"]
        assert result.trace.flatten() == ["start", "run", "run", "delegate_add"]

    @pytest.mark.asyncio
    async def test_subtract_branch(self):
        """Test a low draw delegates to the subtract loop."""
        workflow = create_nested_counter_workflow(rand=draws(0.1, 0.3))
        result = await workflow.run({"threshold": 0.5, "counter": 5})

        assert result.state.counter == 4
        assert result.trace.step_names == ["start", "delegate_subtract"]

    @pytest.mark.asyncio
    async def test_counter_loop_is_monotonic(self):
        """Test the subtract loop never increases the counter."""
        values = []
        loop = create_counter_loop("subtract", -1, rand=draws(0.9, 0.8, 0.6, 0.1))

        await loop.run(
            {"threshold": 0.5, "counter": 0},
            observers=[lambda e: values.append(e.state["counter"])],
        )

        assert values == sorted(values, reverse=True)
        assert values[-1] == -4

    @pytest.mark.asyncio
    async def test_threshold_is_validated(self):
        """Test threshold must lie in [0, 1]."""
        workflow = create_nested_counter_workflow()
        with pytest.raises(StateValidationError):
            await workflow.run({"threshold": 2})
        with pytest.raises(StateValidationError):
            await workflow.run({})


# ============================================================
# Agent Delegation
# ============================================================

def delegation_memory():
    memory = UnconstrainedMemory([Message.user("What is the capital of France?")])
    return memory.as_read_only()


class TestAgentDelegation:
    """Tests for the agent delegation workflow."""

    def test_fakes_match_protocols(self):
        assert isinstance(FakeAgent("x"), Agent)
        assert isinstance(FakeLLM(), ChatModel)

    @pytest.mark.asyncio
    async def test_high_score_keeps_simple_answer(self):
        """Test a good critique ends the run after the simple agent."""
        simple, complex_ = FakeAgent("Paris"), FakeAgent("Paris, France")
        llm = FakeLLM(structured=[{"score": 90}])
        workflow = create_agent_delegation_workflow(threshold=75)

        result = await workflow.run(
            {"memory": delegation_memory()},
            context={"simple_agent": simple, "complex_agent": complex_, "llm": llm},
        )

        assert result.trace.step_names == ["simple_agent", "critique"]
        assert result.state.answer.text == "Paris"
        assert result.state.score == 90
        assert complex_.seen == []

        critique_messages = llm.calls[0]
        assert critique_messages[0].role == "system"
        assert critique_messages[-1].text == "Paris"

    @pytest.mark.asyncio
    async def test_low_score_escalates(self):
        """Test a poor critique hands over to the complex agent."""
        simple, complex_ = FakeAgent("Lyon"), FakeAgent("Paris")
        llm = FakeLLM(structured=[{"score": 20}])
        workflow = create_agent_delegation_workflow(threshold=75)

        result = await workflow.run(
            {"memory": delegation_memory()},
            context={"simple_agent": simple, "complex_agent": complex_, "llm": llm},
        )

        assert result.trace.step_names == ["simple_agent", "critique", "complex_agent"]
        assert result.state.answer.text == "Paris"
        assert len(complex_.seen) == 1

    @pytest.mark.asyncio
    async def test_read_only_memory_is_not_modified(self):
        """Test the workflow only reads the conversation."""
        memory = delegation_memory()
        workflow = create_agent_delegation_workflow(threshold=75)

        await workflow.run(
            {"memory": memory},
            context={
                "simple_agent": FakeAgent("Paris"),
                "complex_agent": FakeAgent("Paris"),
                "llm": FakeLLM(structured=[{"score": 100}]),
            },
        )
        assert len(memory) == 1

    @pytest.mark.asyncio
    async def test_missing_collaborator(self):
        """Test a missing LLM fails the critique step."""
        workflow = create_agent_delegation_workflow(threshold=75)

        with pytest.raises(StepExecutionError) as exc_info:
            await workflow.run(
                {"memory": delegation_memory()},
                context={"simple_agent": FakeAgent("Paris")},
            )

        assert exc_info.value.step == "critique"
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert exc_info.value.trace.step_names == ["simple_agent"]

    @pytest.mark.asyncio
    async def test_memory_is_required(self):
        workflow = create_agent_delegation_workflow()
        with pytest.raises(StateValidationError):
            await workflow.run({})


# ============================================================
# Content Creator
# ============================================================

class TestContentCreator:
    """Tests for the content creator workflow."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self):
        """Test the four steps run in order and produce an output."""
        llm = FakeLLM(
            structured=[{"topic": "Python tooling", "notes": ["keep it short"]}],
            texts=["draft post", "final post"],
        )
        planner = FakeAgent("the plan")
        workflow = create_content_creator_workflow()

        result = await workflow.run(
            {"input": "Write about Python tooling"},
            context={"llm": llm, "planner": planner},
        )

        assert result.trace.step_names == ["preprocess", "planner", "writer", "editor"]
        assert result.state.topic == "Python tooling"
        assert result.state.plan == "the plan"
        assert result.state.draft == "draft post"
        assert result.state.output == "final post"

        plan_prompt = planner.seen[0][0].text
        assert "Python tooling" in plan_prompt
        assert "keep it short" in plan_prompt
        assert "the plan" in llm.calls[1][0].text

    @pytest.mark.asyncio
    async def test_clarification_ends_early(self):
        """Test an unclear request ends the run with a question."""
        llm = FakeLLM(structured=[{"error": "What should the post be about?"}])
        workflow = create_content_creator_workflow()

        result = await workflow.run({"input": "???"}, context={"llm": llm, "planner": FakeAgent("")})

        assert result.trace.step_names == ["preprocess"]
        assert result.state.output == "What should the post be about?"

    @pytest.mark.asyncio
    async def test_missing_topic_blocks_planner(self):
        """Test the planner never runs without a topic."""
        llm = FakeLLM(structured=[{"notes": []}])
        planner = FakeAgent("the plan")
        workflow = create_content_creator_workflow()

        with pytest.raises(StateValidationError) as exc_info:
            await workflow.run({"input": "hello"}, context={"llm": llm, "planner": planner})

        assert exc_info.value.step == "planner"
        assert exc_info.value.trace.step_names == ["preprocess"]
        assert planner.seen == []


# ============================================================
# Registration
# ============================================================

class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_examples(self):
        """Test every example workflow is registered under its key."""
        registry = WorkflowRegistry()
        await register_example_workflows(registry)

        assert len(registry) == len(EXAMPLE_WORKFLOWS)
        for key in EXAMPLE_WORKFLOWS:
            assert await registry.exists(key)


# ============================================================
# Storage
# ============================================================

class TestStorage:
    """Tests for the in-memory registry and run records."""

    @pytest.mark.asyncio
    async def test_registry_rejects_invalid_workflow(self):
        from stepflow.engine.workflow import Workflow

        registry = WorkflowRegistry()
        with pytest.raises(ValueError):
            await registry.save("empty", Workflow())
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_registry_delete(self):
        registry = WorkflowRegistry()
        stored = await registry.save("counter", create_nested_counter_workflow())

        assert stored.to_dict()["definition"]["start"] == "start"
        assert await registry.delete("counter") is True
        assert await registry.get("counter") is None
        assert await registry.delete("counter") is False

    @pytest.mark.asyncio
    async def test_run_lifecycle(self):
        """Test a run record follows the events it receives."""
        from stepflow.storage.memory import RunStorage

        storage = RunStorage()
        await storage.create("run-1", "nested-counter", {"threshold": 0.5})

        await storage.record_event("run-1", {"type": "step-start", "step": "start", "state": {"counter": 0}})
        await storage.record_event(
            "run-1", {"type": "step-start", "step": "run", "parent_run_id": "inner", "state": {"counter": 1}}
        )
        run = await storage.get("run-1")
        assert run.status == "running"
        assert run.current_step == "start"
        assert run.current_state == {"counter": 1}

        await storage.complete("run-1", {"counter": 1}, {"entries": []})
        run = await storage.get("run-1")
        assert run.status == "completed"
        assert run.to_dict()["final_state"] == {"counter": 1}

        assert [r.run_id for r in await storage.list_by_workflow("nested-counter")] == ["run-1"]
        assert await storage.delete("run-1") is True
        assert await storage.list_all() == []
