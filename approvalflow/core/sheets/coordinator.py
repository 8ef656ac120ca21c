"""Sheet approval coordinator: sheet-level approval once every row is approved."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from approvalflow.core.errors import (
    AlreadyApprovedError,
    IncompleteApprovalError,
    TransitionError,
)
from approvalflow.db.models import Sheet, SheetStatus
from .rows import RowApprovalTracker
from .store import SheetStore

logger = logging.getLogger(__name__)


class SheetApprovalCoordinator:
    def __init__(self, db: Session):
        self.db = db
        self.store = SheetStore(db)
        self.tracker = RowApprovalTracker(db)

    def approve_sheet(self, sheet_id: str, approved_by: str) -> Sheet:
        """
        Approve a sheet whose rows are all approved.

        Raises:
            SheetNotFoundError: If the sheet does not exist
            AlreadyApprovedError: If the sheet was approved before
            TransitionError: If the sheet was closed by a rejection
            IncompleteApprovalError: If the sheet is empty or has pending rows
        """
        sheet = self.store.get_sheet(sheet_id, for_update=True)

        if sheet.approved_at is not None:
            raise AlreadyApprovedError(
                f"Sheet {sheet_id} was already approved by {sheet.approved_by}",
                sheet_id=sheet_id,
            )
        if sheet.status != SheetStatus.OPEN:
            raise TransitionError(f"Sheet {sheet_id} is {sheet.status} and cannot be approved")

        if not self.tracker.is_fully_approved(sheet_id):
            pending = self.tracker.pending_count(sheet)
            raise IncompleteApprovalError(
                f"Sheet {sheet_id} has {pending} unapproved rows" if pending
                else f"Sheet {sheet_id} has no rows to approve",
                sheet_id=sheet_id,
                pending_rows=pending,
            )

        sheet = self.store.mark_sheet_approved(sheet_id, approved_by, datetime.utcnow())
        logger.info(f"Sheet {sheet_id} ({sheet.entity_type}) approved by {approved_by}")
        return sheet

    def is_sheet_approved(self, sheet: Sheet) -> bool:
        return sheet is not None and sheet.approved_at is not None and sheet.status in (
            SheetStatus.APPROVED,
            SheetStatus.MIGRATED,
        )
