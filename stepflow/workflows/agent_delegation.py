"""
Agent Delegation Workflow.

A cheap agent answers first. A critique step scores that answer with a
structured LLM call, and a low score hands the conversation to a more
capable agent:

    simple_agent → critique ─┬─→ END            (score >= threshold)
                             └─→ complex_agent  (score <  threshold)

Collaborators (injected through the run context):
- simple_agent: Agent
- complex_agent: Agent
- llm: ChatModel
"""

from typing import Optional, Union
from pydantic import BaseModel, Field
import logging

from stepflow.collaborators import Message, ReadOnlyMemory, UnconstrainedMemory
from stepflow.config import settings
from stepflow.engine.executor import RunContext
from stepflow.engine.state import WorkflowState, required
from stepflow.engine.workflow import Workflow


logger = logging.getLogger(__name__)


CRITIQUE_PROMPT = """\
You are an evaluation assistant who scores the accuracy, completeness, and factual correctness of the last assistant's response.
Give a score between 0 and 100 based on these criteria:

- 90~100: The response is highly accurate, well-structured, and provides relevant facts. No major factual errors.
- 75~89: The response is mostly accurate but may have minor factual errors or missing details.
- 50~74: The response is incomplete, vague, or has moderate factual inaccuracies.
- 25~49: The response contains major factual errors or lacks necessary details.
- 0~24: The response is misleading, completely incorrect, or irrelevant to the question.

Fact-check the response carefully before assigning a score.
"""


class DelegationState(WorkflowState):
    memory: Union[ReadOnlyMemory, UnconstrainedMemory]
    answer: Optional[Message] = None
    score: Optional[int] = None


class CritiqueScore(BaseModel):
    score: int = Field(..., ge=0, le=100)


async def simple_agent(state: DelegationState, context: RunContext) -> str:
    """Answer with the lightweight agent."""
    agent = context.get("simple_agent")
    state.answer = await agent.run(state.memory)
    logger.info(f"Simple agent answered ({len(state.answer.text)} chars)")
    return "critique"


def make_critique(threshold: int):
    async def critique(state: DelegationState, context: RunContext) -> str:
        """Score the answer and escalate when it falls below the threshold."""
        llm = context.get("llm")
        messages = [Message.system(CRITIQUE_PROMPT)]
        if state.memory.last is not None:
            messages.append(state.memory.last)
        messages.append(state.answer)

        result = await llm.generate_structured(messages, CritiqueScore)
        state.score = result.score
        logger.info(f"Critique score: {result.score} (threshold {threshold})")

        return "complex_agent" if result.score < threshold else Workflow.END

    return critique


async def complex_agent(state: DelegationState, context: RunContext) -> None:
    """Answer again with the tool-equipped agent."""
    agent = context.get("complex_agent")
    state.answer = await agent.run(state.memory)
    logger.info(f"Complex agent answered ({len(state.answer.text)} chars)")


def create_agent_delegation_workflow(threshold: Optional[int] = None) -> Workflow:
    """
    Create the agent delegation workflow.

    Args:
        threshold: Minimum critique score that keeps the simple answer

    Returns:
        Configured Workflow instance
    """
    if threshold is None:
        threshold = settings.CRITIQUE_THRESHOLD

    workflow = Workflow(
        name="Agent Delegation",
        schema=DelegationState,
        description=(
            "Answers with a simple agent and escalates to a complex agent "
            f"when the critique score is below {threshold}."
        ),
    )
    workflow.add_step("simple_agent", simple_agent)
    workflow.add_strict_step(
        "critique",
        required(DelegationState, "memory", "answer"),
        make_critique(threshold),
    )
    workflow.add_step("complex_agent", complex_agent)
    workflow.set_start("simple_agent")
    return workflow
