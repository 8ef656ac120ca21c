"""Sheet database model.

One sheet is opened for each maker submission cycle of a stage and tracks the
sheet-level approval of its staging rows.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Index, text

from approvalflow.db.base import Base


class SheetStatus:
    OPEN = "OPEN"            # Being edited or awaiting checker approval
    APPROVED = "APPROVED"    # Every row and the sheet approved
    REJECTED = "REJECTED"    # Closed by a rejection, superseded by a new sheet
    MIGRATED = "MIGRATED"    # Consumed by the production migration


class Sheet(Base):
    """
    A batch of staging rows for one entity type within one process instance.

    At most one OPEN sheet exists per (process_instance_id, entity_type).
    """
    __tablename__ = "sheets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sheet_id = Column(String(32), unique=True, nullable=False, index=True)
    process_instance_id = Column(String(64), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)  # item, plan, product

    status = Column(String(20), nullable=False, default=SheetStatus.OPEN)

    created_by = Column(String(255), nullable=False)
    approved_by = Column(String(255), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    # Rejection comments carried forward to the maker
    comments = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_sheets_open_per_entity",
            "process_instance_id",
            "entity_type",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Sheet {self.sheet_id} {self.entity_type} [{self.status}]>"
