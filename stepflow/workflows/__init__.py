"""
Workflows package - Example workflow implementations.
"""

import logging

from stepflow.workflows.nested_counter import create_nested_counter_workflow
from stepflow.workflows.agent_delegation import create_agent_delegation_workflow
from stepflow.workflows.content_creator import create_content_creator_workflow


logger = logging.getLogger(__name__)


EXAMPLE_WORKFLOWS = {
    "nested-counter": create_nested_counter_workflow,
    "agent-delegation": create_agent_delegation_workflow,
    "content-creator": create_content_creator_workflow,
}


async def register_example_workflows(registry=None):
    """
    Register the example workflows so they are available immediately
    via the API.
    """
    if registry is None:
        from stepflow.storage.memory import workflow_registry as registry

    for key, factory in EXAMPLE_WORKFLOWS.items():
        await registry.save(key, factory())
        logger.info(f"Registered example workflow with key: {key}")


__all__ = [
    "create_nested_counter_workflow",
    "create_agent_delegation_workflow",
    "create_content_creator_workflow",
    "EXAMPLE_WORKFLOWS",
    "register_example_workflows",
]
