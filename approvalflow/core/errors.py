"""Error taxonomy for the approval workflow.

Every error raised by the core derives from ``WorkflowError`` and carries a
stable ``code`` for API clients, the HTTP status the API layer answers with,
and whether the caller can recover by correcting input or retrying.
"""

from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    """Base class for workflow errors surfaced to the caller."""

    code = "WORKFLOW_ERROR"
    http_status = 400
    recoverable = True

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.__class__.__name__,
            "detail": self.message,
            "code": self.code,
        }
        if self.details:
            payload["context"] = self.details
        return payload


class RowValidationError(WorkflowError):
    """Submitted rows are malformed or missing required fields."""

    code = "VALIDATION_ERROR"
    http_status = 422

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, errors=errors or [])
        self.errors = errors or []


class IncompleteApprovalError(WorkflowError):
    """Sheet-level action attempted before every row is approved."""

    code = "INCOMPLETE_APPROVAL"
    http_status = 409


class AlreadyApprovedError(WorkflowError):
    """The row or sheet was approved before."""

    code = "ALREADY_APPROVED"
    http_status = 409


class NotFoundError(WorkflowError):
    code = "NOT_FOUND"
    http_status = 404


class RowNotFoundError(NotFoundError):
    code = "ROW_NOT_FOUND"


class SheetNotFoundError(NotFoundError):
    code = "SHEET_NOT_FOUND"


class ProcessNotFoundError(NotFoundError):
    code = "PROCESS_NOT_FOUND"


class TaskNotFoundError(NotFoundError):
    code = "TASK_NOT_FOUND"


class IncompleteMigrationPrerequisiteError(WorkflowError):
    """One of the item, plan or product sheets is missing or unapproved."""

    code = "INCOMPLETE_MIGRATION_PREREQUISITE"
    http_status = 409


class PartialMigrationError(WorkflowError):
    """The staging -> master copy failed part way and was rolled back.

    Requires operator attention; callers must not retry blindly.
    """

    code = "PARTIAL_MIGRATION_FAILURE"
    http_status = 500
    recoverable = False


class UnauthorizedTransitionError(WorkflowError):
    """Role or task ownership does not allow the requested action."""

    code = "UNAUTHORIZED_TRANSITION"
    http_status = 403

    def __init__(self, message: str, required_permission: Optional[str] = None):
        super().__init__(message, required_permission=required_permission)
        self.required_permission = required_permission


class TransitionError(WorkflowError):
    """The transition is not valid from the current stage."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, message: str, from_stage: Any = None, transition: Any = None):
        super().__init__(
            message,
            from_stage=getattr(from_stage, "value", from_stage),
            transition=getattr(transition, "value", transition),
        )
        self.from_stage = from_stage
        self.transition = transition


class ConcurrentUpdateError(WorkflowError):
    """A concurrent request changed the same record; reload and retry."""

    code = "CONCURRENT_UPDATE"
    http_status = 409


class EngineError(WorkflowError):
    """The external workflow engine rejected a call or was unreachable."""

    code = "ENGINE_ERROR"
    http_status = 502
