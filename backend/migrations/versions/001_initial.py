"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the Course Portal:
- courses / enrollments: courses and their rosters
- students / teachers: user directory with push tokens
- class_tests: graded assessments with a publish flag
- marks: one row per (class test, student)
- course_messages: teacher broadcasts

Also creates indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Courses Table ─────────────────────────────────────────
    op.create_table(
        'courses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('code', sa.Text(), nullable=True),
        sa.Column('teacher_email', sa.Text(), nullable=False),
        sa.Column('best_ct_count', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Enrollments Table ─────────────────────────────────────
    op.create_table(
        'enrollments',
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), primary_key=True),
        sa.Column('student_id', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('student_email', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('enrolled_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_enrollments_student_email', 'enrollments', ['student_email'])

    # ── Users ─────────────────────────────────────────────────
    op.create_table(
        'students',
        sa.Column('email', sa.Text(), primary_key=True),
        sa.Column('student_id', sa.Integer(), nullable=False, unique=True),
        sa.Column('name', sa.Text(), nullable=False, server_default=''),
        sa.Column('batch', sa.Text(), nullable=True),
        sa.Column('department', sa.Text(), nullable=True),
        sa.Column('push_token', sa.Text(), nullable=True),
        sa.Column('push_token_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        'teachers',
        sa.Column('email', sa.Text(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False, server_default=''),
        sa.Column('department', sa.Text(), nullable=True),
        sa.Column('push_token', sa.Text(), nullable=True),
        sa.Column('push_token_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Class Tests Table ─────────────────────────────────────
    op.create_table(
        'class_tests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_marks', sa.Integer(), nullable=False),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('total_marks > 0', name='ck_class_tests_total_marks_positive'),
    )
    op.create_index('ix_class_tests_course_id', 'class_tests', ['course_id'])

    # ── Marks Table ───────────────────────────────────────────
    op.create_table(
        'marks',
        sa.Column('ct_id', sa.String(36), sa.ForeignKey('class_tests.id'), primary_key=True),
        sa.Column('student_email', sa.Text(), primary_key=True),
        sa.Column('course_id', sa.String(36), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='present'),
        sa.Column('marks_obtained', sa.Float(), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_marks_course_student', 'marks', ['course_id', 'student_email'])

    # ── Course Messages Table ─────────────────────────────────
    op.create_table(
        'course_messages',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('course_name', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('sender_email', sa.Text(), nullable=False),
        sa.Column('sender_name', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_course_messages_course_created', 'course_messages',
                    ['course_id', 'created_at'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_course_messages_course_created', table_name='course_messages')
    op.drop_table('course_messages')
    op.drop_index('ix_marks_course_student', table_name='marks')
    op.drop_table('marks')
    op.drop_index('ix_class_tests_course_id', table_name='class_tests')
    op.drop_table('class_tests')
    op.drop_table('teachers')
    op.drop_table('students')
    op.drop_index('ix_enrollments_student_email', table_name='enrollments')
    op.drop_table('enrollments')
    op.drop_table('courses')
