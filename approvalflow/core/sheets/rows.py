"""Row approval tracker: per-row checker approval of staging rows."""

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from approvalflow.core.errors import (
    AlreadyApprovedError,
    RowNotFoundError,
    TransitionError,
)
from approvalflow.db.models import Sheet, SheetStatus, RowStatus
from approvalflow.db.session import flush
from .entities import get_entity_spec
from .store import SheetStore

logger = logging.getLogger(__name__)


class RowApprovalTracker:
    """Marks staging rows approved, singly or for a whole sheet."""

    def __init__(self, db: Session):
        self.db = db
        self.store = SheetStore(db)

    def approve_row(self, entity_type, row_id: int, approved_by: str):
        """
        Approve a single staging row.

        Raises:
            RowNotFoundError: If the row does not exist
            AlreadyApprovedError: If the row was approved before
            TransitionError: If the row's sheet is closed
        """
        model = get_entity_spec(entity_type).staging_model

        row = self.db.query(model).filter(model.id == row_id).with_for_update().first()
        if not row:
            raise RowNotFoundError(f"{model.__tablename__} row {row_id} not found", row_id=row_id)
        if row.approved:
            raise AlreadyApprovedError(
                f"Row {row_id} was already approved by {row.approved_by}",
                row_id=row_id,
            )

        sheet = self.store.get_sheet(row.sheet_id)
        if sheet.status != SheetStatus.OPEN:
            raise TransitionError(f"Sheet {sheet.sheet_id} is {sheet.status}; its rows cannot be approved")

        self._approve(row, approved_by, datetime.utcnow())
        flush(self.db)

        logger.info(f"Row {row_id} on sheet {row.sheet_id} approved by {approved_by}")
        return row

    def approve_all_rows(self, sheet_id: str, approved_by: str) -> int:
        """
        Approve every pending row on a sheet with one shared timestamp.

        Returns:
            Number of rows approved by this call (0 if none were pending)
        """
        sheet = self.store.get_sheet(sheet_id, for_update=True)
        if sheet.status != SheetStatus.OPEN:
            if sheet.status in (SheetStatus.APPROVED, SheetStatus.MIGRATED):
                return 0
            raise TransitionError(f"Sheet {sheet_id} is {sheet.status}; its rows cannot be approved")

        model = get_entity_spec(sheet.entity_type).staging_model
        pending = self.db.query(model).filter(
            model.sheet_id == sheet_id,
            model.approved.is_(False),
        ).with_for_update().all()

        now = datetime.utcnow()
        for row in pending:
            self._approve(row, approved_by, now)
        flush(self.db)

        if pending:
            logger.info(f"Approved {len(pending)} rows on sheet {sheet_id} by {approved_by}")
        return len(pending)

    def is_fully_approved(self, sheet_id: str) -> bool:
        """True when the sheet has at least one row and every row is approved."""
        sheet = self.store.get_sheet(sheet_id)
        model = get_entity_spec(sheet.entity_type).staging_model

        total, approved = self.db.query(
            func.count(model.id),
            func.count(model.id).filter(model.approved.is_(True)),
        ).filter(model.sheet_id == sheet_id).one()
        return total > 0 and total == approved

    def pending_count(self, sheet: Sheet) -> int:
        model = get_entity_spec(sheet.entity_type).staging_model
        return self.db.query(model).filter(
            model.sheet_id == sheet.sheet_id,
            model.approved.is_(False),
        ).count()

    @staticmethod
    def _approve(row, approved_by: str, approved_at: datetime) -> None:
        row.approved = True
        row.approved_by = approved_by
        row.approved_at = approved_at
        row.status = RowStatus.APPROVED
