"""Initial schema migration

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('role', sa.Enum('admin', 'sub-admin', 'user', name='userrole'), nullable=False, index=True),
        sa.Column('group_ids', sa.JSON(), nullable=True),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False),
    )

    # User groups table
    op.create_table(
        'user_groups',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False),
    )

    # Polls table
    op.create_table(
        'polls',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.BigInteger(), nullable=False),
        sa.Column('end_date', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.Enum('draft', 'active', 'completed', 'cancelled', name='pollstatus'), nullable=False, index=True),
        sa.Column('manager_id', sa.String(15), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('created_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('ballot', sa.JSON(), nullable=False),
        sa.Column('will_send_emails', sa.Boolean(), default=False),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False),
    )

    # Poll auditors and editors
    for table, constraint in (
        ('poll_auditors', 'uq_poll_auditors_poll_user'),
        ('poll_editors', 'uq_poll_editors_poll_user'),
    ):
        op.create_table(
            table,
            sa.Column('id', sa.String(15), primary_key=True),
            sa.Column('poll_id', sa.String(15), sa.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('created', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated', sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint('poll_id', 'user_id', name=constraint),
        )

    # Poll participants table
    op.create_table(
        'poll_participants',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('poll_id', sa.String(15), sa.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_user', sa.Boolean(), default=False),
        sa.Column('token', sa.String(128), nullable=True),
        sa.Column('token_used', sa.Boolean(), default=False),
        sa.Column('token_viewed', sa.Boolean(), default=False),
        sa.Column('token_last_revoked_at', sa.BigInteger(), nullable=True),
        sa.Column('vote_weight', sa.Float(), default=1.0),
        sa.Column('status', sa.Enum('approved', 'pending', 'rejected', name='participantstatus'), nullable=False),
        sa.Column('has_voted', sa.Boolean(), default=False),
        sa.Column('last_email_sent_at', sa.BigInteger(), nullable=True),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('poll_id', 'email', name='uq_poll_participants_poll_email'),
        sa.UniqueConstraint('poll_id', 'token', name='uq_poll_participants_poll_token'),
    )

    # Poll votes table
    op.create_table(
        'poll_votes',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('poll_id', sa.String(15), sa.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('participant_id', sa.String(15), sa.ForeignKey('poll_participants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('question_id', sa.String(100), nullable=False),
        sa.Column('selected_options', sa.JSON(), nullable=False),
        sa.Column('vote_weight', sa.Float(), default=1.0),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('participant_id', 'question_id', name='uq_poll_votes_participant_question'),
    )

    # Audit events table
    op.create_table(
        'audit_events',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('event_type', sa.String(50), nullable=False, index=True),
        sa.Column('actor_user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('poll_id', sa.String(15), sa.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('participant_id', sa.String(15), nullable=True, index=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(100), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('audit_events')
    op.drop_table('poll_votes')
    op.drop_table('poll_participants')
    op.drop_table('poll_editors')
    op.drop_table('poll_auditors')
    op.drop_table('polls')
    op.drop_table('user_groups')
    op.drop_table('users')

    op.execute('DROP TYPE IF EXISTS participantstatus')
    op.execute('DROP TYPE IF EXISTS pollstatus')
    op.execute('DROP TYPE IF EXISTS userrole')
