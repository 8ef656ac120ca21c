"""Business columns shared by the staging and master tables of each entity."""

from sqlalchemy import Column, String, Float, Integer, Date


class ItemFields:
    item_name = Column(String(255), nullable=False)
    item_category = Column(String(100), nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    effective_date = Column(Date, nullable=False)


class PlanFields:
    plan_name = Column(String(255), nullable=False)
    plan_type = Column(String(100), nullable=False)
    premium = Column(Float, nullable=False)
    coverage_amount = Column(Integer, nullable=False)
    effective_date = Column(Date, nullable=False)


class ProductFields:
    product_name = Column(String(255), nullable=False)
    rate = Column(Float, nullable=False)
    api = Column(String(255), nullable=False)  # API name/identifier
    effective_date = Column(Date, nullable=False)
