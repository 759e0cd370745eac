"""
Multi-Agent Content Creator Workflow.

Turns a user request into a blog post in four steps that follow each
other in the order they are added:

    preprocess → planner → writer → editor → END

preprocess may end the run early when the request needs clarification,
in which case the clarification question becomes the output.

Collaborators (injected through the run context):
- llm: ChatModel
- planner: Agent
"""

from typing import List, Optional
from pydantic import BaseModel, Field
import logging

from stepflow.collaborators import Message, UnconstrainedMemory
from stepflow.engine.executor import RunContext
from stepflow.engine.state import WorkflowState, required
from stepflow.engine.workflow import Workflow


logger = logging.getLogger(__name__)


class ContentState(WorkflowState):
    input: str
    output: Optional[str] = None

    topic: Optional[str] = None
    notes: List[str] = Field(default_factory=list)
    plan: Optional[str] = None
    draft: Optional[str] = None


class QueryRewrite(BaseModel):
    topic: Optional[str] = None
    notes: List[str] = Field(default_factory=list)
    error: Optional[str] = Field(
        None,
        description="Use when the input query does not make sense or you need clarification.",
    )


def _notes_section(notes: List[str]) -> str:
    return "# Notes\n" + "\n".join(notes) + "\n" if notes else ""


def _join(lines: List[str]) -> str:
    return "\n".join(line for line in lines if line)


async def preprocess(state: ContentState, context: RunContext) -> Optional[str]:
    """Rewrite the user request into a topic and notes."""
    llm = context.get("llm")
    prompt = _join([
        "Your task is to rewrite the user query so that it guides the content planner and editor "
        "to craft a blog post that perfectly aligns with the user's needs. "
        "Notes should be used only if the user complains about something.",
        f"# Previous Topic\n{state.topic}" if state.topic else "",
        f"# Previous Notes\n" + "\n".join(state.notes) if state.notes else "",
        "# User Query",
        state.input or "empty",
    ])
    parsed = await llm.generate_structured([Message.user(prompt)], QueryRewrite)

    if parsed.error:
        logger.info("Request needs clarification, ending early")
        state.output = parsed.error
        return Workflow.END

    state.notes = parsed.notes
    if parsed.topic:
        state.topic = parsed.topic
    return None


async def planner(state: ContentState, context: RunContext) -> None:
    """Draft a content plan for the topic."""
    agent = context.get("planner")
    prompt = _join([
        f'You are a Content Planner. Your task is to write a content plan for "{state.topic}" topic in Markdown format.',
        "# Objectives",
        "1. Prioritize the latest trends, key players, and noteworthy news.",
        "2. Identify the target audience, considering their interests and pain points.",
        "3. Develop a detailed content outline including introduction, key points, and a call to action.",
        "4. Include SEO keywords and relevant sources.",
        _notes_section(state.notes),
        "Provide a structured output that covers the mentioned sections.",
    ])
    memory = UnconstrainedMemory([Message.user(prompt)])
    result = await agent.run(memory)
    state.plan = result.text


async def writer(state: ContentState, context: RunContext) -> None:
    """Write a draft from the plan."""
    llm = context.get("llm")
    prompt = _join([
        "You are a Content Writer. Your task is to write a compelling blog post based on the provided context.",
        f"# Context\n{state.plan}",
        "# Objectives",
        "- An engaging introduction",
        "- Insightful body paragraphs (2-3 per section)",
        "- Properly named sections/subtitles",
        "- A summarizing conclusion",
        "- Format: Markdown",
        _notes_section(state.notes),
        "Ensure the content flows naturally, incorporates SEO keywords, and is well-structured.",
    ])
    state.draft = await llm.generate([Message.system(prompt)])


async def editor(state: ContentState, context: RunContext) -> None:
    """Turn the draft into the final post."""
    llm = context.get("llm")
    prompt = _join([
        "You are an Editor. Your task is to transform the following draft blog post to a final version.",
        f"# Draft\n{state.draft}",
        "# Objectives\n- Fix Grammatical errors\n- Journalistic best practices",
        _notes_section(state.notes),
        "IMPORTANT: The final version must not contain any editor's comments.",
    ])
    state.output = await llm.generate([Message.system(prompt)])


def create_content_creator_workflow() -> Workflow:
    """Create the multi-agent content creator workflow."""
    workflow = Workflow(
        name="Content Creator",
        schema=ContentState,
        output_schema=required(ContentState, "output"),
        description="Plans, writes and edits a blog post from a user request",
    )
    workflow.add_step("preprocess", preprocess)
    workflow.add_strict_step("planner", required(ContentState, "topic"), planner)
    workflow.add_strict_step("writer", required(ContentState, "plan"), writer)
    workflow.add_strict_step("editor", required(ContentState, "draft"), editor)
    return workflow
