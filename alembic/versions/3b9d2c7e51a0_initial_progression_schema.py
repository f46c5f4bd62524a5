"""initial progression schema

Revision ID: 3b9d2c7e51a0
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9d2c7e51a0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid(name: str, **kw) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kw)


def upgrade() -> None:
    op.create_table(
        "courses",
        _uuid("id", primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("certification", sa.String(255), nullable=True),
        sa.Column("student_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deleted_at", sa.Integer(), nullable=True),
    )
    op.create_table(
        "classes",
        _uuid("id", primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("certification", sa.String(255), nullable=True),
        sa.Column("max_students", sa.Integer(), nullable=True),
        sa.Column("available_slots", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "available_slots IS NULL OR available_slots >= 0",
            name="ck_classes_available_slots",
        ),
    )
    op.create_table(
        "lessons",
        _uuid("id", primary_key=True),
        _uuid("course_id", sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("course_id", "order_index", name="uq_lessons_course_order"),
    )
    op.create_table(
        "tests",
        _uuid("id", primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        _uuid("course_id", sa.ForeignKey("courses.id"), nullable=True),
        _uuid("lesson_id", sa.ForeignKey("lessons.id"), nullable=True, unique=True),
        sa.Column("passing_score", sa.Integer(), nullable=False, server_default="70"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default="false"),
        sa.CheckConstraint(
            "course_id IS NOT NULL OR lesson_id IS NOT NULL", name="ck_tests_owner"
        ),
        sa.CheckConstraint(
            "passing_score BETWEEN 0 AND 100", name="ck_tests_passing_score"
        ),
        sa.CheckConstraint("max_attempts >= 1", name="ck_tests_max_attempts"),
    )
    op.create_table(
        "test_questions",
        _uuid("id", primary_key=True),
        _uuid("test_id", sa.ForeignKey("tests.id"), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("question_type", sa.String(32), nullable=False),
        sa.Column(
            "options",
            postgresql.ARRAY(sa.Text()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("correct_answer", sa.Integer(), nullable=True),
        sa.Column("correct_answer_text", sa.Text(), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("points >= 1", name="ck_questions_points"),
    )
    op.create_index("ix_test_questions_test_id", "test_questions", ["test_id"])

    op.create_table(
        "test_attempts",
        _uuid("id", primary_key=True),
        _uuid("test_id", sa.ForeignKey("tests.id"), nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column(
            "status", sa.String(32), nullable=False, server_default="in_progress"
        ),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("correct_answers", sa.Integer(), nullable=True),
        sa.Column("total_questions", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("time_taken_minutes", sa.Integer(), nullable=True),
        sa.UniqueConstraint(
            "test_id", "user_id", "attempt_number", name="uq_test_attempts_number"
        ),
    )
    op.create_index(
        "uq_test_attempts_in_progress",
        "test_attempts",
        ["test_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
    )
    op.create_table(
        "test_attempt_answers",
        _uuid("attempt_id", sa.ForeignKey("test_attempts.id"), primary_key=True),
        _uuid("question_id", sa.ForeignKey("test_questions.id"), primary_key=True),
        sa.Column("selected_answer", sa.Integer(), nullable=True),
        sa.Column("answer_text", sa.Text(), nullable=True),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("answered_at", sa.Integer(), nullable=False),
    )

    op.create_table(
        "lesson_progress",
        _uuid("user_id", primary_key=True),
        _uuid("lesson_id", sa.ForeignKey("lessons.id"), primary_key=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column(
            "progress_percentage", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "time_spent_minutes", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.Integer(), nullable=True),
    )
    op.create_table(
        "enrollments",
        _uuid("id", primary_key=True),
        _uuid("user_id", nullable=False),
        _uuid("course_id", sa.ForeignKey("courses.id"), nullable=True),
        _uuid("class_id", sa.ForeignKey("classes.id"), nullable=True),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(32), nullable=False, server_default="enrolled"),
        sa.Column("enrolled_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
        sa.UniqueConstraint("user_id", "class_id", name="uq_enrollments_user_class"),
        sa.CheckConstraint(
            "(course_id IS NULL) <> (class_id IS NULL)", name="ck_enrollments_scope"
        ),
        sa.CheckConstraint(
            "progress BETWEEN 0 AND 100", name="ck_enrollments_progress"
        ),
    )

    op.create_table(
        "certifications",
        _uuid("id", primary_key=True),
        _uuid("user_id", nullable=False),
        _uuid("course_id", sa.ForeignKey("courses.id"), nullable=True),
        _uuid("class_id", sa.ForeignKey("classes.id"), nullable=True),
        sa.Column("certification_name", sa.String(500), nullable=False),
        sa.Column("issuer", sa.String(255), nullable=False),
        sa.Column("issued_at", sa.Integer(), nullable=False),
        sa.Column("verification_code", sa.String(16), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="issued"),
        sa.Column("artifact_url", sa.Text(), nullable=True),
        sa.UniqueConstraint(
            "verification_code", name="uq_certifications_verification_code"
        ),
        sa.UniqueConstraint("user_id", "course_id", name="uq_certifications_user_course"),
        sa.UniqueConstraint("user_id", "class_id", name="uq_certifications_user_class"),
        sa.CheckConstraint(
            "(course_id IS NULL) <> (class_id IS NULL)", name="ck_certifications_scope"
        ),
    )
    # repair path scans for issued certificates still missing an artifact
    op.create_index(
        "ix_certifications_missing_artifact",
        "certifications",
        ["issued_at"],
        postgresql_where=sa.text("artifact_url IS NULL AND status = 'issued'"),
    )


def downgrade() -> None:
    op.drop_index("ix_certifications_missing_artifact", table_name="certifications")
    op.drop_table("certifications")
    op.drop_table("enrollments")
    op.drop_table("lesson_progress")
    op.drop_table("test_attempt_answers")
    op.drop_index("uq_test_attempts_in_progress", table_name="test_attempts")
    op.drop_table("test_attempts")
    op.drop_index("ix_test_questions_test_id", table_name="test_questions")
    op.drop_table("test_questions")
    op.drop_table("tests")
    op.drop_table("lessons")
    op.drop_table("classes")
    op.drop_table("courses")
