"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the assessment service:
- candidates, jobs, applications: portal aggregates the service reads and updates
- assessments, assessment_questions: employer-authored definitions
- assessment_attempts: per-application attempt state with question snapshot
- attempt_answers: one row per answered question index
- attempt_violations: append-only proctoring log

Also creates the uniqueness constraints and indexes for common lookups.
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
    # ── Portal aggregates ─────────────────────────────────────
    op.create_table(
        'candidates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('employer_id', sa.String(36), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('assessment_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_jobs_employer_id', 'jobs', ['employer_id'])

    op.create_table(
        'applications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('job_id', sa.String(36), sa.ForeignKey('jobs.id'), nullable=False),
        sa.Column('candidate_id', sa.String(36), sa.ForeignKey('candidates.id'), nullable=False),
        sa.Column('assessment_status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('assessment_attempt_id', sa.String(36), nullable=True),
        sa.Column('assessment_score', sa.Float(), nullable=True),
        sa.Column('assessment_percentage', sa.Float(), nullable=True),
        sa.Column('assessment_result', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_applications_candidate_id', 'applications', ['candidate_id'])
    op.create_index('ix_applications_assessment_status', 'applications', ['assessment_status'])

    # ── Assessment definitions ────────────────────────────────
    op.create_table(
        'assessments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('employer_id', sa.String(36), nullable=False),
        sa.Column('serial_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False, server_default='Technical'),
        sa.Column('designation', sa.Text(), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('instructions', sa.Text(), nullable=False, server_default=''),
        sa.Column('timer', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('passing_percentage', sa.Float(), nullable=False, server_default='60'),
        sa.Column('status', sa.Text(), nullable=False, server_default='published'),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('employer_id', 'serial_number', name='uq_assessments_employer_serial'),
    )

    op.create_table(
        'assessment_questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('assessment_id', sa.String(36),
                  sa.ForeignKey('assessments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False, server_default='mcq'),
        sa.Column('options', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('correct_answer', sa.Integer(), nullable=True),
        sa.Column('marks', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('explanation', sa.Text(), nullable=False, server_default=''),
    )
    op.create_index('ix_assessment_questions_assessment_id', 'assessment_questions', ['assessment_id'])

    # ── Attempts ──────────────────────────────────────────────
    op.create_table(
        'assessment_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('assessment_id', sa.String(36), nullable=False),
        sa.Column('candidate_id', sa.String(36), sa.ForeignKey('candidates.id'), nullable=False),
        sa.Column('job_id', sa.String(36), nullable=True),
        sa.Column('application_id', sa.String(36), sa.ForeignKey('applications.id'), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='in_progress'),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('time_remaining', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_question', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_marks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('timer', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('passing_percentage', sa.Float(), nullable=False, server_default='60'),
        sa.Column('questions_snapshot', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('terms_accepted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('terms_accepted_at', sa.DateTime(), nullable=True),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('assessment_id', 'candidate_id', 'application_id',
                            name='uq_attempts_assessment_candidate_application'),
    )
    op.create_index('ix_attempts_assessment_id', 'assessment_attempts', ['assessment_id'])
    op.create_index('ix_attempts_candidate_id', 'assessment_attempts', ['candidate_id'])
    op.create_index('ix_attempts_status', 'assessment_attempts', ['status'])

    op.create_table(
        'attempt_answers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36),
                  sa.ForeignKey('assessment_attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_index', sa.Integer(), nullable=False),
        sa.Column('selected_answer', sa.Integer(), nullable=True),
        sa.Column('text_answer', sa.Text(), nullable=True),
        sa.Column('file_name', sa.Text(), nullable=True),
        sa.Column('file_original_name', sa.Text(), nullable=True),
        sa.Column('file_mimetype', sa.Text(), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('file_path', sa.Text(), nullable=True),
        sa.Column('file_uploaded_at', sa.DateTime(), nullable=True),
        sa.Column('time_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('answered_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('attempt_id', 'question_index', name='uq_attempt_answers_index'),
    )

    op.create_table(
        'attempt_violations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36),
                  sa.ForeignKey('assessment_attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_attempt_violations_attempt_id', 'attempt_violations', ['attempt_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_attempt_violations_attempt_id', table_name='attempt_violations')
    op.drop_table('attempt_violations')
    op.drop_table('attempt_answers')
    op.drop_index('ix_attempts_status', table_name='assessment_attempts')
    op.drop_index('ix_attempts_candidate_id', table_name='assessment_attempts')
    op.drop_index('ix_attempts_assessment_id', table_name='assessment_attempts')
    op.drop_table('assessment_attempts')
    op.drop_index('ix_assessment_questions_assessment_id', table_name='assessment_questions')
    op.drop_table('assessment_questions')
    op.drop_table('assessments')
    op.drop_index('ix_applications_assessment_status', table_name='applications')
    op.drop_index('ix_applications_candidate_id', table_name='applications')
    op.drop_table('applications')
    op.drop_index('ix_jobs_employer_id', table_name='jobs')
    op.drop_table('jobs')
    op.drop_table('candidates')
