"""Staging row models.

Candidate records submitted by a maker for one sheet. Rows are approved by a
checker individually or in bulk, then copied to the master tables by the
migration. Approved rows are never deleted.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import declared_attr

from approvalflow.db.base import Base
from approvalflow.db.models.fields import ItemFields, PlanFields, ProductFields


class RowStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"


class StagingRowMixin:
    """Approval bookkeeping common to every staging table."""

    id = Column(Integer, primary_key=True, autoincrement=True)

    @declared_attr
    def sheet_id(cls):
        return Column(String(32), ForeignKey("sheets.sheet_id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=RowStatus.PENDING)

    approved = Column(Boolean, nullable=False, default=False)
    approved_by = Column(String(255), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    created_by = Column(String(255), nullable=True)  # User who first created this record
    edited_by = Column(String(255), nullable=True)   # User who last edited this record
    edited_at = Column(DateTime, nullable=True)
    comments = Column(Text, nullable=True)

    migrated = Column(Boolean, nullable=False, default=False)
    migrated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint(
                "NOT approved OR approved_by IS NOT NULL",
                name=f"ck_{cls.__tablename__}_approved_by",
            ),
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id} sheet={self.sheet_id} approved={self.approved}>"


class ItemStaging(StagingRowMixin, ItemFields, Base):
    __tablename__ = "item_staging"

    version = Column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}


class PlanStaging(StagingRowMixin, PlanFields, Base):
    __tablename__ = "plan_staging"

    version = Column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}


class ProductStaging(StagingRowMixin, ProductFields, Base):
    __tablename__ = "product_staging"

    version = Column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}
