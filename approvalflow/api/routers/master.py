"""Read access to the production (master) tables."""

from fastapi import APIRouter, Depends

from approvalflow.api.deps import get_current_principal, get_workflow_service
from approvalflow.api.schemas.common import RowListResponse
from approvalflow.core.rbac import require_permission
from approvalflow.core.security import Principal
from approvalflow.core.workflow import EntityType
from approvalflow.core.workflow.service import WorkflowService

router = APIRouter(prefix="/master", tags=["master-data"])


@router.get("/{entity_type}", response_model=RowListResponse)
@require_permission("master_data:list")
async def list_master_data(
    entity_type: EntityType,
    service: WorkflowService = Depends(get_workflow_service),
    principal: Principal = Depends(get_current_principal),
):
    items = service.list_master(entity_type)
    return RowListResponse(entity_type=entity_type.value, items=items, total=len(items))
