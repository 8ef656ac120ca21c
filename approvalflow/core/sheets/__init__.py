"""Sheets of staging rows and their row/sheet approval."""

from .entities import (
    ENTITY_SPECS,
    EntitySpec,
    get_entity_spec,
    validate_rows,
    row_to_dict,
)
from .store import SheetStore, generate_sheet_id
from .rows import RowApprovalTracker
from .coordinator import SheetApprovalCoordinator

__all__ = [
    "ENTITY_SPECS",
    "EntitySpec",
    "get_entity_spec",
    "validate_rows",
    "row_to_dict",
    "SheetStore",
    "generate_sheet_id",
    "RowApprovalTracker",
    "SheetApprovalCoordinator",
]
