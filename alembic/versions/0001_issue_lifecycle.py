"""issue lifecycle tables

Creates issues, issue_history and issue_notes. History and notes are
append-only child tables ordered by their integer keys; issues.version is the
optimistic-concurrency counter.

Revision ID: 0001_issue_lifecycle
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_issue_lifecycle'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'issues',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=4000), nullable=False),
        sa.Column('category', sa.String(length=22), nullable=False),
        sa.Column('priority', sa.String(length=6), nullable=False),
        sa.Column('status', sa.String(length=12), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('reported_by', sa.String(length=128), nullable=False),
        sa.Column('reporter_name', sa.String(length=120), nullable=True),
        sa.Column('assigned_department', sa.String(length=120), nullable=True),
        sa.Column('assigned_officer_id', sa.String(length=64), nullable=True),
        sa.Column('sla_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_notes', sa.String(length=4000), nullable=True),
        sa.Column('upvotes', sa.Integer(), server_default='0', nullable=False),
        sa.Column('escalated_to', sa.String(length=200), nullable=True),
        sa.Column('escalated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('escalation_reason', sa.String(length=1000), nullable=True),
        sa.Column('escalation_reference_id', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
    )
    op.create_index('ix_issues_title', 'issues', ['title'])
    op.create_index('ix_issues_category', 'issues', ['category'])
    op.create_index('ix_issues_priority', 'issues', ['priority'])
    op.create_index('ix_issues_status', 'issues', ['status'])
    op.create_index('ix_issues_reported_by', 'issues', ['reported_by'])
    op.create_index('ix_issues_assigned_officer_id', 'issues', ['assigned_officer_id'])
    op.create_index('ix_issues_created_at', 'issues', ['created_at'])
    op.create_index('ix_issues_lat_lng', 'issues', ['latitude', 'longitude'])

    op.create_table(
        'issue_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.String(length=32), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(length=12), nullable=False),
        sa.Column('updated_by', sa.String(length=120), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('comment', sa.String(length=1300), nullable=True),
    )
    op.create_index('ix_issue_history_issue_id', 'issue_history', ['issue_id'])

    op.create_table(
        'issue_notes',
        sa.Column('seq', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('note_id', sa.String(length=32), nullable=False),
        sa.Column('issue_id', sa.String(length=32), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author', sa.String(length=120), nullable=False),
        sa.Column('content', sa.String(length=4000), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_issue_notes_note_id', 'issue_notes', ['note_id'], unique=True)
    op.create_index('ix_issue_notes_issue_id', 'issue_notes', ['issue_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('issue_notes')
    op.drop_table('issue_history')
    op.drop_table('issues')
