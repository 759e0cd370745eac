"""
StepFlow - A lightweight, async-first workflow step-graph engine.

Build multi-step agent workflows from named steps over a typed shared state,
with self-loops, strict steps and nested workflows.
"""

__version__ = "1.0.0"
