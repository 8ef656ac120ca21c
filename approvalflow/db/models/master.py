"""Master (production) tables.

Hold the current production snapshot of each entity type. Written only by
the migration, which replaces the snapshot with the approved staging rows.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text

from approvalflow.db.base import Base
from approvalflow.db.models.fields import ItemFields, PlanFields, ProductFields


class MasterRecordMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    sheet_id = Column(String(32), nullable=False, index=True)  # Source sheet, "MASTER" for seed data

    approved_by = Column(String(255), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    edited_by = Column(String(255), nullable=True)
    edited_at = Column(DateTime, nullable=True)
    comments = Column(Text, nullable=True)

    migrated_by = Column(String(255), nullable=True)
    migrated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id} sheet={self.sheet_id}>"


class Item(MasterRecordMixin, ItemFields, Base):
    __tablename__ = "items"


class Plan(MasterRecordMixin, PlanFields, Base):
    __tablename__ = "plans"


class Product(MasterRecordMixin, ProductFields, Base):
    __tablename__ = "products"
