from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0002_project_staff"
down_revision = "0001_create_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "project_staff",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("hourly_rate", sa.Float(), nullable=False),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_staff_project_user"),
    )
    op.create_index("ix_project_staff_project_id", "project_staff", ["project_id"])
    op.create_index("ix_project_staff_user_id", "project_staff", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_project_staff_user_id", table_name="project_staff")
    op.drop_index("ix_project_staff_project_id", table_name="project_staff")
    op.drop_table("project_staff")
