"""Initial schema: processes, tasks, sheets, staging and master tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Tables added:
- process_instances: Approval workflow runs with stage and decision variables
- workflow_tasks: User task per stage (the task token clients act on)
- stage_history: Stage transition audit trail
- sheets: One batch of staging rows per entity and submission cycle
- item_staging, plan_staging, product_staging: Rows awaiting approval
- items, plans, products: Production (master) data
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ITEM_COLUMNS = (
    ("item_name", sa.String(255)),
    ("item_category", sa.String(100)),
    ("price", sa.Float()),
    ("quantity", sa.Integer()),
    ("effective_date", sa.Date()),
)

PLAN_COLUMNS = (
    ("plan_name", sa.String(255)),
    ("plan_type", sa.String(100)),
    ("premium", sa.Float()),
    ("coverage_amount", sa.Integer()),
    ("effective_date", sa.Date()),
)

PRODUCT_COLUMNS = (
    ("product_name", sa.String(255)),
    ("rate", sa.Float()),
    ("api", sa.String(255)),
    ("effective_date", sa.Date()),
)

ENTITIES = (
    ("item_staging", "items", ITEM_COLUMNS),
    ("plan_staging", "plans", PLAN_COLUMNS),
    ("product_staging", "products", PRODUCT_COLUMNS),
)


def _business_columns(columns):
    return [sa.Column(name, type_, nullable=False) for name, type_ in columns]


def upgrade() -> None:
    """Create workflow, sheet, staging and master tables."""

    # --- process_instances ---
    op.create_table(
        "process_instances",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("business_key", sa.String(255), nullable=True),
        sa.Column("engine_process_id", sa.String(64), nullable=True),
        sa.Column("stage", sa.String(50), nullable=False, server_default="ITEM_EDIT"),
        sa.Column("variables", sa.JSON(), nullable=False),
        sa.Column("started_by", sa.String(255), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_process_instances"),
    )
    op.create_index("ix_process_instances_business_key", "process_instances", ["business_key"])
    op.create_index("ix_process_instances_stage", "process_instances", ["stage"])
    op.create_index("ix_process_instances_created_at", "process_instances", ["created_at"])

    # --- workflow_tasks ---
    op.create_table(
        "workflow_tasks",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("process_instance_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("task_definition_key", sa.String(100), nullable=False),
        sa.Column("stage", sa.String(50), nullable=False),
        sa.Column("candidate_group", sa.String(20), nullable=False),
        sa.Column("assignee", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN"),
        sa.Column("engine_task_id", sa.String(64), nullable=True),
        sa.Column("completed_by", sa.String(255), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("decision", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_tasks"),
        sa.ForeignKeyConstraint(
            ["process_instance_id"], ["process_instances.id"],
            name="fk_workflow_tasks_process_instance_id", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_workflow_tasks_process_instance_id", "workflow_tasks", ["process_instance_id"])
    op.create_index("ix_workflow_tasks_candidate_group", "workflow_tasks", ["candidate_group"])
    op.create_index("ix_workflow_tasks_assignee", "workflow_tasks", ["assignee"])
    op.create_index("ix_workflow_tasks_status", "workflow_tasks", ["status"])
    op.create_index("ix_workflow_tasks_created_at", "workflow_tasks", ["created_at"])

    # --- stage_history ---
    op.create_table(
        "stage_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("process_instance_id", sa.String(64), nullable=False),
        sa.Column("task_id", sa.String(64), nullable=True),
        sa.Column("from_stage", sa.String(50), nullable=False),
        sa.Column("to_stage", sa.String(50), nullable=False),
        sa.Column("transition", sa.String(20), nullable=False),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("variables", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_stage_history"),
        sa.ForeignKeyConstraint(
            ["process_instance_id"], ["process_instances.id"],
            name="fk_stage_history_process_instance_id", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_stage_history_process_instance_id", "stage_history", ["process_instance_id"])
    op.create_index("ix_stage_history_created_at", "stage_history", ["created_at"])

    # --- sheets ---
    op.create_table(
        "sheets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sheet_id", sa.String(32), nullable=False),
        sa.Column("process_instance_id", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN"),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("approved_by", sa.String(255), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_sheets"),
    )
    op.create_index("ix_sheets_sheet_id", "sheets", ["sheet_id"], unique=True)
    op.create_index("ix_sheets_process_instance_id", "sheets", ["process_instance_id"])
    op.create_index("ix_sheets_created_at", "sheets", ["created_at"])
    # At most one OPEN sheet per process and entity type
    op.create_index(
        "uq_sheets_open_per_entity",
        "sheets",
        ["process_instance_id", "entity_type"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
        sqlite_where=sa.text("status = 'OPEN'"),
    )

    for staging_table, master_table, columns in ENTITIES:
        op.create_table(
            staging_table,
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("sheet_id", sa.String(32), nullable=False),
            *_business_columns(columns),
            sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
            sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("approved_by", sa.String(255), nullable=True),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("created_by", sa.String(255), nullable=True),
            sa.Column("edited_by", sa.String(255), nullable=True),
            sa.Column("edited_at", sa.DateTime(), nullable=True),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("migrated", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("migrated_at", sa.DateTime(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id", name=f"pk_{staging_table}"),
            sa.ForeignKeyConstraint(["sheet_id"], ["sheets.sheet_id"], name=f"fk_{staging_table}_sheet_id"),
            sa.CheckConstraint(
                "NOT approved OR approved_by IS NOT NULL",
                name=f"ck_{staging_table}_approved_by",
            ),
        )
        op.create_index(f"ix_{staging_table}_sheet_id", staging_table, ["sheet_id"])

        op.create_table(
            master_table,
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("sheet_id", sa.String(32), nullable=False),
            *_business_columns(columns),
            sa.Column("approved_by", sa.String(255), nullable=True),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("edited_by", sa.String(255), nullable=True),
            sa.Column("edited_at", sa.DateTime(), nullable=True),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("migrated_by", sa.String(255), nullable=True),
            sa.Column("migrated_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id", name=f"pk_{master_table}"),
        )
        op.create_index(f"ix_{master_table}_sheet_id", master_table, ["sheet_id"])


def downgrade() -> None:
    """Drop all tables."""
    for staging_table, master_table, _ in reversed(ENTITIES):
        op.drop_table(master_table)
        op.drop_table(staging_table)
    op.drop_table("sheets")
    op.drop_table("stage_history")
    op.drop_table("workflow_tasks")
    op.drop_table("process_instances")
