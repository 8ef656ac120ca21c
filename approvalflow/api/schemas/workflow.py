"""Request and response schemas for the workflow endpoints."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# Requests

class StartProcessRequest(BaseModel):
    business_key: Optional[str] = Field(None, max_length=255)


class SubmitStageRequest(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)


class SheetApprovalRequest(BaseModel):
    task_id: str = Field(..., min_length=1)


class RejectRequest(BaseModel):
    comments: Optional[str] = None


# Responses

class TaskResponse(BaseModel):
    id: str
    process_instance_id: str
    name: str
    task_definition_key: str
    stage: str
    candidate_group: str
    assignee: Optional[str] = None
    status: str
    created_at: Optional[str] = None


class ProcessResponse(BaseModel):
    id: str
    business_key: Optional[str] = None
    stage: str
    entity_type: Optional[str] = None
    stage_number: Optional[int] = None
    variables: Dict[str, Any] = {}
    started_by: str
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    task: Optional[TaskResponse] = None
    available_transitions: List[str] = []


class RejectResponse(ProcessResponse):
    sheet_id: Optional[str] = None


class HistoryEntry(BaseModel):
    id: int
    task_id: Optional[str] = None
    from_stage: str
    to_stage: str
    transition: str
    username: Optional[str] = None
    comment: Optional[str] = None
    variables: Dict[str, Any] = {}
    created_at: Optional[str] = None


class SubmitStageResponse(BaseModel):
    process_instance_id: str
    entity_type: str
    sheet_id: str
    row_count: int
    stage: str


class SheetResponse(BaseModel):
    sheet_id: str
    process_instance_id: str
    entity_type: str
    status: str
    created_by: str
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    comments: Optional[str] = None
    created_at: Optional[str] = None


class SheetDetailResponse(SheetResponse):
    rows: List[Dict[str, Any]] = []


class BulkApprovalResponse(BaseModel):
    sheet_id: str
    approved_count: int


class MigrationResponse(BaseModel):
    item_count: int
    plan_count: int
    product_count: int


class SheetApprovalResponse(BaseModel):
    sheet_id: str
    entity_type: str
    stage: str
    migration: Optional[MigrationResponse] = None


class ProcessMigrationResponse(MigrationResponse):
    process_instance_id: str
    stage: str


class ApprovalDataResponse(BaseModel):
    process_instance_id: str
    entity_type: str
    stage: str
    sheet: Optional[SheetResponse] = None
    rows: List[Dict[str, Any]] = []
    fully_approved: bool


class MakerDataResponse(BaseModel):
    process_instance_id: str
    entity_type: str
    is_existing_sheet: bool
    sheet_id: Optional[str] = None
    comments: Optional[str] = None
    rows: List[Dict[str, Any]] = []
