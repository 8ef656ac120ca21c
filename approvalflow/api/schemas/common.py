"""Common schemas for the approval API."""

from typing import Optional, Any, List, Dict
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None
    context: Optional[Dict[str, Any]] = None


class SuccessResponse(BaseModel):
    """Standard success response."""
    message: str
    data: Optional[Any] = None


class RowListResponse(BaseModel):
    entity_type: str
    items: List[Dict[str, Any]]
    total: int


# Documented on every workflow route
ERROR_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Role or task ownership forbids the action"},
    404: {"model": ErrorResponse, "description": "Process, task, sheet or row not found"},
    409: {"model": ErrorResponse, "description": "Workflow state does not allow the action"},
    422: {"model": ErrorResponse, "description": "Submitted rows are invalid"},
}
