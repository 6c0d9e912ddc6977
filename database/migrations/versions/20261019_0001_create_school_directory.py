"""create school directory tables

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("school", "admin_office", "teacher", "student", "superadmin", name="user_role")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=True),
        sa.Column("section_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_school_id", "users", ["school_id"])

    op.create_table(
        "class_sections",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("school_id", "name", name="uq_class_sections_school_name"),
    )
    op.create_index("ix_class_sections_school_id", "class_sections", ["school_id"])

    op.create_table(
        "sections",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_section_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.UniqueConstraint("class_section_id", "name", name="uq_sections_class_name"),
    )
    op.create_index("ix_sections_class_section_id", "sections", ["class_section_id"])

    op.create_table(
        "subjects",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("class_section_id", sa.String(length=36), nullable=False),
        sa.Column("section_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_subjects_school_id", "subjects", ["school_id"])
    op.create_index("ix_subjects_class_section_id", "subjects", ["class_section_id"])


def downgrade() -> None:
    op.drop_index("ix_subjects_class_section_id", table_name="subjects")
    op.drop_index("ix_subjects_school_id", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_sections_class_section_id", table_name="sections")
    op.drop_table("sections")
    op.drop_index("ix_class_sections_school_id", table_name="class_sections")
    op.drop_table("class_sections")
    op.drop_index("ix_users_school_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    user_role_enum.drop(op.get_bind(), checkfirst=True)
