"""Task endpoints: inbox, claiming and stage decisions taken on a task."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from approvalflow.api.deps import get_db, get_current_principal, get_workflow_service
from approvalflow.api.schemas.common import ERROR_RESPONSES
from approvalflow.api.schemas.workflow import (
    TaskResponse,
    ProcessResponse,
    RejectRequest,
    RejectResponse,
)
from approvalflow.core.errors import WorkflowError
from approvalflow.core.rbac import require_permission
from approvalflow.core.security import Principal
from approvalflow.core.workflow.service import WorkflowService

router = APIRouter(prefix="/tasks", tags=["tasks"], responses=ERROR_RESPONSES)


@router.get("", response_model=List[TaskResponse])
@require_permission("tasks:list")
async def list_tasks(
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Open tasks for the caller's group or assigned to the caller."""
    return service.list_tasks(principal)


@router.post("/{task_id}/claim", response_model=TaskResponse)
@require_permission("tasks:claim")
async def claim_task(
    task_id: str,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    try:
        result = service.claim_task(task_id, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result


@router.post("/{task_id}/unclaim", response_model=TaskResponse)
@require_permission("tasks:claim")
async def unclaim_task(
    task_id: str,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    try:
        result = service.unclaim_task(task_id, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result


@router.post("/{task_id}/back", response_model=ProcessResponse)
@require_permission("stages:back")
async def go_back(
    task_id: str,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Return to the previous approval stage without saving rows."""
    try:
        result = service.go_back(task_id, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result


@router.post("/{task_id}/approve", response_model=ProcessResponse)
@require_permission("stages:approve")
async def approve_stage(
    task_id: str,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Approve a stage whose sheet is already approved (reached again via BACK)."""
    try:
        result = service.approve_stage(task_id, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result


@router.post("/{task_id}/reject", response_model=RejectResponse)
@require_permission("stages:reject")
async def reject_stage(
    task_id: str,
    body: RejectRequest,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Send the stage back to the maker. Comments are required."""
    try:
        result = service.reject_stage(task_id, body.comments, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result
