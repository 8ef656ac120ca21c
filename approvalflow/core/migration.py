"""Migration gate: copies approved staging rows into the master tables.

The copy replaces the production snapshot of each entity type with the rows
of its latest approved sheet. Items, plans and products are copied inside one
savepoint so a failure leaves the master tables untouched.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict

from sqlalchemy.orm import Session

from approvalflow.core.errors import (
    IncompleteMigrationPrerequisiteError,
    PartialMigrationError,
    TransitionError,
    WorkflowError,
)
from approvalflow.core.sheets.entities import get_entity_spec
from approvalflow.core.sheets.store import SheetStore
from approvalflow.core.workflow.states import EntityType
from approvalflow.db.models import Sheet, SheetStatus
from approvalflow.db.session import flush

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    item_count: int = 0
    plan_count: int = 0
    product_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class MigrationGate:
    """Checks that all three sheets are approved and runs the staging -> master copy."""

    def __init__(self, db: Session):
        self.db = db
        self.store = SheetStore(db)

    def prerequisites_met(self, process_instance_id: str) -> bool:
        """True when the latest item, plan and product sheets are all approved."""
        sheets = self.store.latest_sheets(process_instance_id)
        return all(
            sheet is not None and sheet.status == SheetStatus.APPROVED
            for sheet in sheets.values()
        )

    def check_prerequisites(self, process_instance_id: str, *, for_update: bool = False) -> Dict[EntityType, Sheet]:
        """
        Return the latest approved sheet of each entity type.

        Sheets are locked in ``sheet_id`` order when ``for_update`` is set.

        Raises:
            IncompleteMigrationPrerequisiteError: If a sheet is missing or unapproved
            TransitionError: If the sheets were migrated already
        """
        latest = self.store.latest_sheets(process_instance_id)

        missing = [
            entity.value for entity, sheet in latest.items()
            if sheet is None or sheet.status not in (SheetStatus.APPROVED, SheetStatus.MIGRATED)
        ]
        if missing:
            raise IncompleteMigrationPrerequisiteError(
                f"Sheets not approved for: {', '.join(missing)}",
                process_instance_id=process_instance_id,
                missing=missing,
            )

        if all(sheet.status == SheetStatus.MIGRATED for sheet in latest.values()):
            raise TransitionError(f"Process {process_instance_id} was already migrated")

        if for_update:
            ordered = sorted(latest.values(), key=lambda s: s.sheet_id)
            for sheet in ordered:
                self.store.get_sheet(sheet.sheet_id, for_update=True)

        return latest

    def migrate(self, process_instance_id: str, migrated_by: str) -> MigrationResult:
        """
        Copy the approved rows of all three sheets into the master tables.

        Returns:
            Number of rows copied per entity type

        Raises:
            IncompleteMigrationPrerequisiteError: If any sheet is not approved
            PartialMigrationError: If the copy failed; nothing was written
        """
        sheets = self.check_prerequisites(process_instance_id, for_update=True)
        now = datetime.utcnow()

        logger.info(
            f"Migrating process {process_instance_id}: "
            + ", ".join(f"{e.value}={s.sheet_id}" for e, s in sheets.items())
        )

        try:
            with self.db.begin_nested():
                result = MigrationResult(
                    item_count=self._copy_items(sheets[EntityType.ITEM], migrated_by, now),
                    plan_count=self._copy_plans(sheets[EntityType.PLAN], migrated_by, now),
                    product_count=self._copy_products(sheets[EntityType.PRODUCT], migrated_by, now),
                )
                for sheet in sheets.values():
                    sheet.status = SheetStatus.MIGRATED
                flush(self.db)
        except WorkflowError:
            raise
        except Exception as e:
            logger.error(f"Migration of process {process_instance_id} failed and was rolled back: {e!r}")
            raise PartialMigrationError(
                f"Migration of process {process_instance_id} failed; master data left unchanged",
                process_instance_id=process_instance_id,
            ) from e

        logger.info(
            f"Migrated process {process_instance_id}: {result.item_count} items, "
            f"{result.plan_count} plans, {result.product_count} products"
        )
        return result

    def _copy_items(self, sheet: Sheet, migrated_by: str, migrated_at: datetime) -> int:
        return self._copy(EntityType.ITEM, sheet, migrated_by, migrated_at)

    def _copy_plans(self, sheet: Sheet, migrated_by: str, migrated_at: datetime) -> int:
        return self._copy(EntityType.PLAN, sheet, migrated_by, migrated_at)

    def _copy_products(self, sheet: Sheet, migrated_by: str, migrated_at: datetime) -> int:
        return self._copy(EntityType.PRODUCT, sheet, migrated_by, migrated_at)

    def _copy(self, entity_type: EntityType, sheet: Sheet, migrated_by: str, migrated_at: datetime) -> int:
        spec = get_entity_spec(entity_type)
        staging, master = spec.staging_model, spec.master_model

        rows = self.db.query(staging).filter(
            staging.sheet_id == sheet.sheet_id,
            staging.approved.is_(True),
        ).order_by(staging.id).all()

        # Replace the whole production snapshot; loaded master rows leave the session too
        self.db.query(master).delete(synchronize_session="fetch")

        for row in rows:
            self.db.add(master(
                sheet_id=sheet.sheet_id,
                approved_by=row.approved_by,
                approved_at=row.approved_at,
                edited_by=row.edited_by,
                edited_at=row.edited_at,
                comments=row.comments,
                migrated_by=migrated_by,
                migrated_at=migrated_at,
                **{name: getattr(row, name) for name in spec.fields},
            ))
            row.migrated = True
            row.migrated_at = migrated_at

        self.db.flush()
        return len(rows)
