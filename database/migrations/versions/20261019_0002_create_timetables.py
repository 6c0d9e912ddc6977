"""create weekly and exam timetables

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:01.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


# Shared by both timetables, so it is created once up front.
weekday_enum = postgresql.ENUM(
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday", name="weekday", create_type=False
)
schedule_type_enum = sa.Enum("subject", "break", "holiday", name="schedule_type")
exam_type_enum = sa.Enum("midterm", "midterm2", "final", name="exam_type")
exam_status_enum = sa.Enum("scheduled", "ongoing", "completed", "cancelled", name="exam_status")
notification_type_enum = sa.Enum("timetable", "exam", "system", name="notification_type")


def upgrade() -> None:
    weekday_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("section_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=True),
        sa.Column("teacher_id", sa.String(length=36), nullable=True),
        sa.Column("day", weekday_enum, nullable=False),
        sa.Column("type", schedule_type_enum, nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("insert_seq", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedules_teacher_day", "schedules", ["school_id", "teacher_id", "day"])
    op.create_index("ix_schedules_class_section_day", "schedules", ["school_id", "class_id", "section_id", "day"])

    op.create_table(
        "exam_schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("section_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("exam_date", sa.Date(), nullable=False),
        sa.Column("day", weekday_enum, nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("type", exam_type_enum, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("status", exam_status_enum, nullable=False, server_default="scheduled"),
        sa.Column("insert_seq", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "school_id",
            "class_id",
            "section_id",
            "subject_id",
            "type",
            "year",
            name="uq_exam_schedules_subject_per_exam",
        ),
    )
    op.create_index("ix_exam_schedules_teacher_date", "exam_schedules", ["school_id", "teacher_id", "exam_date"])
    op.create_index(
        "ix_exam_schedules_class_section_date",
        "exam_schedules",
        ["school_id", "class_id", "section_id", "exam_date"],
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type_enum, nullable=False, server_default="system"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_school_id", "notifications", ["school_id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_school_id", "activity_logs", ["school_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_school_id", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_index("ix_notifications_school_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_exam_schedules_class_section_date", table_name="exam_schedules")
    op.drop_index("ix_exam_schedules_teacher_date", table_name="exam_schedules")
    op.drop_table("exam_schedules")
    op.drop_index("ix_schedules_class_section_day", table_name="schedules")
    op.drop_index("ix_schedules_teacher_day", table_name="schedules")
    op.drop_table("schedules")
    bind = op.get_bind()
    for enum in (notification_type_enum, exam_status_enum, exam_type_enum, schedule_type_enum, weekday_enum):
        enum.drop(bind, checkfirst=True)
