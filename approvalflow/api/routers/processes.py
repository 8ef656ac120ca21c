"""Process endpoints: start, inspect, submit stage data and migrate."""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from approvalflow.api.deps import get_db, get_current_principal, get_workflow_service
from approvalflow.api.schemas.common import ERROR_RESPONSES
from approvalflow.api.schemas.workflow import (
    StartProcessRequest,
    SubmitStageRequest,
    ProcessResponse,
    HistoryEntry,
    SubmitStageResponse,
    ApprovalDataResponse,
    MakerDataResponse,
    ProcessMigrationResponse,
)
from approvalflow.core.errors import WorkflowError
from approvalflow.core.rbac import require_permission
from approvalflow.core.security import Principal
from approvalflow.core.workflow import EntityType
from approvalflow.core.workflow.service import WorkflowService

router = APIRouter(prefix="/processes", tags=["processes"], responses=ERROR_RESPONSES)


@router.post("", response_model=ProcessResponse, status_code=status.HTTP_201_CREATED)
@require_permission("processes:create")
async def start_process(
    body: StartProcessRequest,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Start a new item -> plan -> product approval process."""
    try:
        result = service.start_process(principal, body.business_key)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result


@router.get("/{process_id}", response_model=ProcessResponse)
@require_permission("processes:read")
async def get_process(
    process_id: str,
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Get a process with its open task and the caller's available transitions."""
    return service.describe_process(process_id, principal)


@router.get("/{process_id}/history", response_model=List[HistoryEntry])
@require_permission("processes:read")
async def get_process_history(
    process_id: str,
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Get the stage transition history of a process."""
    return service.history(process_id)


@router.post("/{process_id}/stages/{entity_type}/submit", response_model=SubmitStageResponse)
@require_permission("stages:submit")
async def submit_stage_data(
    process_id: str,
    entity_type: EntityType,
    body: SubmitStageRequest,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Store the maker's rows and send the stage for approval."""
    try:
        result = service.submit_stage_data(process_id, entity_type, body.rows, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result


@router.get("/{process_id}/maker-data/{entity_type}", response_model=MakerDataResponse)
@require_permission("sheets:read")
async def get_maker_data(
    process_id: str,
    entity_type: EntityType,
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Rows for the maker: the open sheet if one exists, else the master data."""
    return service.get_maker_data(process_id, entity_type)


@router.get("/{process_id}/approval-data/{entity_type}", response_model=ApprovalDataResponse)
@require_permission("sheets:read")
async def get_approval_data(
    process_id: str,
    entity_type: EntityType,
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Current sheet and rows of an entity for the checker."""
    return service.get_approval_data(process_id, entity_type)


@router.post("/{process_id}/migrate", response_model=ProcessMigrationResponse)
@require_permission("migration:execute")
async def migrate(
    process_id: str,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    """Copy the approved sheets into the master tables and complete the process."""
    try:
        result = service.migrate(process_id, principal)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    return result
