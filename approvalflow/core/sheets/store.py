"""Sheet store: persistence of sheets and their staging rows."""

import logging
import uuid
from datetime import datetime
from typing import Optional, Dict, Any, List, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from approvalflow.core.errors import (
    AlreadyApprovedError,
    SheetNotFoundError,
    TransitionError,
)
from approvalflow.core.workflow.states import EntityType
from approvalflow.db.models import Sheet, SheetStatus, RowStatus
from approvalflow.db.session import flush
from .entities import get_entity_spec

logger = logging.getLogger(__name__)


def generate_sheet_id() -> str:
    """Return a new sheet identifier such as ``SHEET-3F2A9C1B``."""
    return "SHEET-" + uuid.uuid4().hex[:8].upper()


class SheetStore:
    """
    Creates and looks up sheets and stores the rows submitted for them.

    Never commits; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_open_sheet(self, process_instance_id: str, entity_type) -> Optional[Sheet]:
        entity = get_entity_spec(entity_type).entity_type
        return self.db.query(Sheet).filter(
            Sheet.process_instance_id == process_instance_id,
            Sheet.entity_type == entity.value,
            Sheet.status == SheetStatus.OPEN,
        ).first()

    def find_latest_sheet(
        self,
        process_instance_id: str,
        entity_type,
        *,
        for_update: bool = False,
    ) -> Optional[Sheet]:
        """Most recently created sheet of an entity type, whatever its status."""
        entity = get_entity_spec(entity_type).entity_type
        query = self.db.query(Sheet).filter(
            Sheet.process_instance_id == process_instance_id,
            Sheet.entity_type == entity.value,
        ).order_by(Sheet.id.desc())
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_or_create_sheet(self, process_instance_id: str, entity_type, created_by: str) -> Sheet:
        """
        Return the open sheet for a process and entity type, creating one if needed.

        Idempotent: repeated calls return the same sheet until it is closed.
        """
        entity = get_entity_spec(entity_type).entity_type

        sheet = self.find_open_sheet(process_instance_id, entity)
        if sheet:
            return sheet

        sheet = Sheet(
            sheet_id=generate_sheet_id(),
            process_instance_id=process_instance_id,
            entity_type=entity.value,
            status=SheetStatus.OPEN,
            created_by=created_by,
        )
        try:
            with self.db.begin_nested():
                self.db.add(sheet)
        except IntegrityError:
            # Another request opened the sheet first
            existing = self.find_open_sheet(process_instance_id, entity)
            if existing is None:
                raise
            return existing

        logger.info(
            f"Created {entity.value} sheet {sheet.sheet_id} for process {process_instance_id}"
        )
        return sheet

    def get_sheet(self, sheet_id: str, *, for_update: bool = False) -> Sheet:
        """
        Get a sheet by its identifier.

        Raises:
            SheetNotFoundError: If no such sheet exists
        """
        query = self.db.query(Sheet).filter(Sheet.sheet_id == sheet_id)
        if for_update:
            query = query.with_for_update()
        sheet = query.first()
        if not sheet:
            raise SheetNotFoundError(f"Sheet {sheet_id} not found", sheet_id=sheet_id)
        return sheet

    def mark_sheet_approved(
        self,
        sheet_id: str,
        approved_by: str,
        approved_at: Optional[datetime] = None,
    ) -> Sheet:
        """
        Record sheet-level approval.

        Raises:
            AlreadyApprovedError: If the sheet was approved before
        """
        sheet = self.get_sheet(sheet_id, for_update=True)
        if sheet.approved_at is not None:
            raise AlreadyApprovedError(
                f"Sheet {sheet_id} was already approved by {sheet.approved_by}",
                sheet_id=sheet_id,
            )

        sheet.approved_by = approved_by
        sheet.approved_at = approved_at or datetime.utcnow()
        sheet.status = SheetStatus.APPROVED
        flush(self.db)
        return sheet

    def list_rows(self, sheet: Union[Sheet, str]) -> List[Any]:
        """Staging rows of a sheet (object or sheet_id) in insertion order."""
        if isinstance(sheet, str):
            sheet = self.get_sheet(sheet)
        spec = get_entity_spec(sheet.entity_type)
        return self.db.query(spec.staging_model).filter(
            spec.staging_model.sheet_id == sheet.sheet_id
        ).order_by(spec.staging_model.id).all()

    def replace_rows(self, sheet: Sheet, rows: List[Dict[str, Any]], edited_by: str) -> List[Any]:
        """
        Replace the rows of an open sheet with validated row data.

        Raises:
            TransitionError: If the sheet is not open
            AlreadyApprovedError: If any existing row is already approved
        """
        if sheet.status != SheetStatus.OPEN:
            raise TransitionError(f"Sheet {sheet.sheet_id} is {sheet.status}, not OPEN")

        spec = get_entity_spec(sheet.entity_type)
        model = spec.staging_model

        existing = self.db.query(model).filter(
            model.sheet_id == sheet.sheet_id
        ).with_for_update().all()
        if any(row.approved for row in existing):
            raise AlreadyApprovedError(
                f"Sheet {sheet.sheet_id} has approved rows and cannot be edited",
                sheet_id=sheet.sheet_id,
            )
        for row in existing:
            self.db.delete(row)

        now = datetime.utcnow()
        created = []
        for data in rows:
            row = model(
                sheet_id=sheet.sheet_id,
                status=RowStatus.PENDING,
                approved=False,
                created_by=edited_by,
                edited_by=edited_by,
                edited_at=now,
                comments=data.get("comments"),
                **{name: data[name] for name in spec.fields},
            )
            self.db.add(row)
            created.append(row)

        flush(self.db)
        logger.info(
            f"Stored {len(created)} {spec.entity_type.value} rows on sheet {sheet.sheet_id} "
            f"(replaced {len(existing)})"
        )
        return created

    def reopen_sheet(self, sheet: Sheet, rejected_by: str, comments: Optional[str]) -> Sheet:
        """
        Close a sheet as rejected and open its successor for the maker.

        The successor carries copies of the rows with approval reset and the
        rejection comments.
        """
        spec = get_entity_spec(sheet.entity_type)
        model = spec.staging_model
        rows = self.list_rows(sheet)

        sheet.status = SheetStatus.REJECTED
        flush(self.db)

        successor = Sheet(
            sheet_id=generate_sheet_id(),
            process_instance_id=sheet.process_instance_id,
            entity_type=sheet.entity_type,
            status=SheetStatus.OPEN,
            created_by=rejected_by,
            comments=comments,
        )
        self.db.add(successor)
        flush(self.db)

        for row in rows:
            self.db.add(model(
                sheet_id=successor.sheet_id,
                status=RowStatus.PENDING,
                approved=False,
                created_by=row.created_by,
                edited_by=row.edited_by,
                edited_at=row.edited_at,
                comments=row.comments,
                **{name: getattr(row, name) for name in spec.fields},
            ))

        flush(self.db)
        logger.info(
            f"Sheet {sheet.sheet_id} rejected by {rejected_by}; "
            f"reopened as {successor.sheet_id} with {len(rows)} rows"
        )
        return successor

    def latest_sheets(self, process_instance_id: str, *, for_update: bool = False) -> Dict[EntityType, Optional[Sheet]]:
        """Latest sheet of each entity type for a process."""
        return {
            entity: self.find_latest_sheet(process_instance_id, entity, for_update=for_update)
            for entity in EntityType
        }
