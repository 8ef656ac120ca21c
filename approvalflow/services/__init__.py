"""External service adapters."""

from .workflow_engine import (
    WorkflowEngineClient,
    LocalEngineClient,
    FlowableEngineClient,
    get_engine_client,
)

__all__ = [
    "WorkflowEngineClient",
    "LocalEngineClient",
    "FlowableEngineClient",
    "get_engine_client",
]
