"""Alembic migrations apply cleanly to an empty database and roll back."""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

pytestmark = pytest.mark.integration

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "approvalflow" / "migrations"

TABLES = {
    "process_instances",
    "workflow_tasks",
    "stage_history",
    "sheets",
    "item_staging",
    "plan_staging",
    "product_staging",
    "items",
    "plans",
    "products",
}


@pytest.fixture()
def alembic_config(tmp_path):
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{tmp_path / 'migrations.db'}")
    return config


def test_upgrade_creates_schema(alembic_config):
    command.upgrade(alembic_config, "head")

    engine = create_engine(alembic_config.get_main_option("sqlalchemy.url"))
    try:
        tables = set(inspect(engine).get_table_names())
        assert TABLES <= tables

        columns = {c["name"] for c in inspect(engine).get_columns("item_staging")}
        assert {"sheet_id", "item_name", "approved", "approved_by", "migrated"} <= columns
    finally:
        engine.dispose()


def test_one_open_sheet_per_entity(alembic_config):
    command.upgrade(alembic_config, "head")

    engine = create_engine(alembic_config.get_main_option("sqlalchemy.url"))
    insert = text(
        "INSERT INTO sheets (sheet_id, process_instance_id, entity_type, status, created_by, version) "
        "VALUES (:sheet_id, 'P1', 'item', :status, 'maker1', 1)"
    )
    try:
        with engine.begin() as conn:
            conn.execute(insert, {"sheet_id": "SHEET-1", "status": "REJECTED"})
            conn.execute(insert, {"sheet_id": "SHEET-2", "status": "OPEN"})

        with pytest.raises(IntegrityError):
            with engine.begin() as conn:
                conn.execute(insert, {"sheet_id": "SHEET-3", "status": "OPEN"})
    finally:
        engine.dispose()


def test_downgrade_drops_schema(alembic_config):
    command.upgrade(alembic_config, "head")
    command.downgrade(alembic_config, "base")

    engine = create_engine(alembic_config.get_main_option("sqlalchemy.url"))
    try:
        assert not TABLES & set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
