"""Entity registry: staging/master models and row schemas per entity type."""

from datetime import date
from typing import Any, Dict, List, NamedTuple, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from approvalflow.core.errors import RowValidationError
from approvalflow.core.workflow.states import EntityType
from approvalflow.db.models import (
    ItemStaging,
    PlanStaging,
    ProductStaging,
    Item,
    Plan,
    Product,
)


class _RowIn(BaseModel):
    # Accepts both item_name and itemName
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    comments: Optional[str] = None


class ItemRowIn(_RowIn):
    item_name: str = Field(min_length=1, max_length=255)
    item_category: str = Field(min_length=1, max_length=100)
    price: float = Field(ge=0)
    quantity: int = Field(ge=0)
    effective_date: date


class PlanRowIn(_RowIn):
    plan_name: str = Field(min_length=1, max_length=255)
    plan_type: str = Field(min_length=1, max_length=100)
    premium: float = Field(ge=0)
    coverage_amount: int = Field(ge=0)
    effective_date: date


class ProductRowIn(_RowIn):
    product_name: str = Field(min_length=1, max_length=255)
    rate: float = Field(ge=0)
    api: str = Field(min_length=1, max_length=255)
    effective_date: date


class EntitySpec(NamedTuple):
    entity_type: EntityType
    staging_model: Type
    master_model: Type
    row_schema: Type[_RowIn]
    fields: tuple


ENTITY_SPECS: Dict[EntityType, EntitySpec] = {
    EntityType.ITEM: EntitySpec(
        EntityType.ITEM, ItemStaging, Item, ItemRowIn,
        ("item_name", "item_category", "price", "quantity", "effective_date"),
    ),
    EntityType.PLAN: EntitySpec(
        EntityType.PLAN, PlanStaging, Plan, PlanRowIn,
        ("plan_name", "plan_type", "premium", "coverage_amount", "effective_date"),
    ),
    EntityType.PRODUCT: EntitySpec(
        EntityType.PRODUCT, ProductStaging, Product, ProductRowIn,
        ("product_name", "rate", "api", "effective_date"),
    ),
}


def get_entity_spec(entity_type) -> EntitySpec:
    """Look up the EntitySpec of an entity type given as enum or string."""
    try:
        return ENTITY_SPECS[EntityType(str(getattr(entity_type, "value", entity_type)).lower())]
    except ValueError:
        raise RowValidationError(f"Unknown entity type: {entity_type}")


def validate_rows(entity_type, rows: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Validate submitted rows for an entity type.

    Returns:
        The normalized rows (snake_case keys, parsed values)

    Raises:
        RowValidationError: If the list is empty or any row is malformed
    """
    spec = get_entity_spec(entity_type)
    if not rows:
        raise RowValidationError(f"At least one {spec.entity_type.value} row is required")

    cleaned = []
    errors = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            errors.append({"row": index, "errors": [{"loc": [], "msg": "Row must be an object", "type": "type_error"}]})
            continue
        try:
            cleaned.append(spec.row_schema.model_validate(row).model_dump())
        except ValidationError as e:
            errors.append({
                "row": index,
                "errors": [
                    {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                    for err in e.errors()
                ],
            })

    if errors:
        raise RowValidationError(
            f"{len(errors)} of {len(rows)} {spec.entity_type.value} rows are invalid",
            errors,
        )
    return cleaned


def row_to_dict(row) -> Dict[str, Any]:
    """Serialize a staging or master row into a JSON-friendly dict."""
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        data[column.key] = value
    return data
