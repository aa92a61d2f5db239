"""create crm core tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "crm_user",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="employee"),
        sa.Column("first_name", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("department_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_crm_user_email"), "crm_user", ["email"], unique=True)
    op.create_index(op.f("ix_crm_user_department_id"), "crm_user", ["department_id"], unique=False)

    op.create_table(
        "crm_department",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("manager_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index(op.f("ix_crm_department_manager_id"), "crm_department", ["manager_id"], unique=False)

    op.create_table(
        "crm_status",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("color", sa.String(length=32), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("department_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_crm_status_department_id"), "crm_status", ["department_id"], unique=False)

    op.create_table(
        "crm_site",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("department_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_crm_site_token"), "crm_site", ["token"], unique=True)
    op.create_index(op.f("ix_crm_site_department_id"), "crm_site", ["department_id"], unique=False)

    op.create_table(
        "crm_lead",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("last_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("phone2", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=320), nullable=False, server_default=""),
        sa.Column("email2", sa.String(length=320), nullable=False, server_default=""),
        sa.Column("comment", sa.Text(), nullable=False, server_default=""),
        sa.Column("department_id", sa.Uuid(), nullable=False),
        sa.Column("status_id", sa.Uuid(), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=False, server_default="manual"),
        sa.Column("site_id", sa.Uuid(), nullable=True),
        sa.Column("source_meta", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_lead_department_created", "crm_lead", ["department_id", "created_at"], unique=False)
    op.create_index("ix_crm_lead_department_phone", "crm_lead", ["department_id", "phone"], unique=False)
    op.create_index("ix_crm_lead_department_status", "crm_lead", ["department_id", "status_id"], unique=False)

    op.create_table(
        "crm_lead_assignee",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lead_id", "user_id", name="uq_crm_lead_assignee_pair"),
    )
    op.create_index(op.f("ix_crm_lead_assignee_user_id"), "crm_lead_assignee", ["user_id"], unique=False)

    op.create_table(
        "crm_lead_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_crm_lead_history_lead_id"), "crm_lead_history", ["lead_id"], unique=False)

    op.create_table(
        "crm_lead_note",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("author_id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_crm_lead_note_lead_id"), "crm_lead_note", ["lead_id"], unique=False)

    op.create_table(
        "crm_lead_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_crm_lead_task_lead_id"), "crm_lead_task", ["lead_id"], unique=False)

    op.create_table(
        "crm_lead_reminder",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("remind_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("done", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_crm_lead_reminder_lead_id"), "crm_lead_reminder", ["lead_id"], unique=False)
    op.create_index(op.f("ix_crm_lead_reminder_remind_at"), "crm_lead_reminder", ["remind_at"], unique=False)

    op.create_table(
        "crm_task_status",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("color", sa.String(length=32), nullable=False, server_default="#9ca3af"),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("department_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_crm_task_status_department_id"), "crm_task_status", ["department_id"], unique=False)

    op.create_table(
        "crm_task_priority",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("color", sa.String(length=32), nullable=False, server_default="#9ca3af"),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("department_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_crm_task_priority_department_id"), "crm_task_priority", ["department_id"], unique=False
    )

    op.create_table(
        "crm_board_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("department_id", sa.Uuid(), nullable=False),
        sa.Column("status_id", sa.Uuid(), nullable=True),
        sa.Column("priority_id", sa.Uuid(), nullable=True),
        sa.Column("assignee_id", sa.Uuid(), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_crm_board_task_department_column",
        "crm_board_task",
        ["department_id", "status_id", "order"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_crm_board_task_department_column", table_name="crm_board_task")
    op.drop_table("crm_board_task")
    op.drop_index(op.f("ix_crm_task_priority_department_id"), table_name="crm_task_priority")
    op.drop_table("crm_task_priority")
    op.drop_index(op.f("ix_crm_task_status_department_id"), table_name="crm_task_status")
    op.drop_table("crm_task_status")
    op.drop_index(op.f("ix_crm_lead_reminder_remind_at"), table_name="crm_lead_reminder")
    op.drop_index(op.f("ix_crm_lead_reminder_lead_id"), table_name="crm_lead_reminder")
    op.drop_table("crm_lead_reminder")
    op.drop_index(op.f("ix_crm_lead_task_lead_id"), table_name="crm_lead_task")
    op.drop_table("crm_lead_task")
    op.drop_index(op.f("ix_crm_lead_note_lead_id"), table_name="crm_lead_note")
    op.drop_table("crm_lead_note")
    op.drop_index(op.f("ix_crm_lead_history_lead_id"), table_name="crm_lead_history")
    op.drop_table("crm_lead_history")
    op.drop_index(op.f("ix_crm_lead_assignee_user_id"), table_name="crm_lead_assignee")
    op.drop_table("crm_lead_assignee")
    op.drop_index("ix_crm_lead_department_status", table_name="crm_lead")
    op.drop_index("ix_crm_lead_department_phone", table_name="crm_lead")
    op.drop_index("ix_crm_lead_department_created", table_name="crm_lead")
    op.drop_table("crm_lead")
    op.drop_index(op.f("ix_crm_site_department_id"), table_name="crm_site")
    op.drop_index(op.f("ix_crm_site_token"), table_name="crm_site")
    op.drop_table("crm_site")
    op.drop_index(op.f("ix_crm_status_department_id"), table_name="crm_status")
    op.drop_table("crm_status")
    op.drop_index(op.f("ix_crm_department_manager_id"), table_name="crm_department")
    op.drop_table("crm_department")
    op.drop_index(op.f("ix_crm_user_department_id"), table_name="crm_user")
    op.drop_index(op.f("ix_crm_user_email"), table_name="crm_user")
    op.drop_table("crm_user")
