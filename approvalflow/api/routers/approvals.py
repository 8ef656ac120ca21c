"""Row and sheet approval endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from approvalflow.api.deps import get_db, get_current_principal, get_workflow_service
from approvalflow.api.schemas.common import ERROR_RESPONSES
from approvalflow.api.schemas.workflow import (
    SheetApprovalRequest,
    SheetApprovalResponse,
    SheetDetailResponse,
    BulkApprovalResponse,
)
from approvalflow.core.errors import WorkflowError
from approvalflow.core.rbac import require_permission
from approvalflow.core.security import Principal
from approvalflow.core.workflow import EntityType
from approvalflow.core.workflow.service import WorkflowService

router = APIRouter(tags=["approvals"], responses=ERROR_RESPONSES)


@router.post("/rows/{entity_type}/{row_id}/approve", response_model=Dict[str, Any])
@require_permission("rows:approve")
async def approve_row(
    entity_type: EntityType,
    row_id: int,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Approve one staging row. A second approval is rejected with 409."""
    try:
        result = service.approve_row(entity_type, row_id, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result


@router.get("/sheets/{sheet_id}", response_model=SheetDetailResponse)
@require_permission("sheets:read")
async def get_sheet(
    sheet_id: str,
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    return service.get_sheet(sheet_id)


@router.post("/sheets/{sheet_id}/approve-all", response_model=BulkApprovalResponse)
@require_permission("rows:approve")
async def approve_all_rows(
    sheet_id: str,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Approve every pending row of a sheet."""
    try:
        result = service.approve_all_rows(sheet_id, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result


@router.post("/sheets/{sheet_id}/approve", response_model=SheetApprovalResponse)
@require_permission("sheets:approve")
async def approve_sheet(
    sheet_id: str,
    body: SheetApprovalRequest,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Approve a fully approved sheet and advance the workflow."""
    try:
        result = service.approve_sheet(sheet_id, body.task_id, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result
