#!/usr/bin/env python3
"""
Simple run script for StepFlow.

Usage:
    python run.py

Or with custom settings:
    HOST=127.0.0.1 PORT=8080 python run.py
"""

import uvicorn

from stepflow.config import settings


def main():
    """Run the FastAPI application."""
    print(f"""
StepFlow - async workflow step-graph engine
  Server:    http://{settings.HOST}:{settings.PORT}
  API Docs:  http://{settings.HOST}:{settings.PORT}/docs
  Examples:  nested-counter, agent-delegation, content-creator
    """)

    uvicorn.run(
        "stepflow.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
