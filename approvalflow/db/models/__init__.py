"""Database models for the approval service."""

from approvalflow.db.models.sheet import Sheet, SheetStatus
from approvalflow.db.models.staging import (
    ItemStaging,
    PlanStaging,
    ProductStaging,
    RowStatus,
)
from approvalflow.db.models.master import Item, Plan, Product
from approvalflow.db.models.process import (
    ProcessInstance,
    WorkflowTask,
    StageHistory,
    TaskStatus,
)

__all__ = [
    "Sheet",
    "SheetStatus",
    "ItemStaging",
    "PlanStaging",
    "ProductStaging",
    "RowStatus",
    "Item",
    "Plan",
    "Product",
    "ProcessInstance",
    "WorkflowTask",
    "StageHistory",
    "TaskStatus",
]
