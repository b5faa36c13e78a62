"""add_invitation_access_tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19

Adds:
- guest_lists, contacts and guest_list_items
- access_tokens with forwarding provenance
- otp_challenges with a partial unique index (one open challenge per token)
- rsvp_responses, one row per token and contact
- audit_logs
"""
from alembic import op
import sqlalchemy as sa

revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'guest_lists',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('event_name', sa.String(255), nullable=True),
        sa.Column('event_date', sa.String(50), nullable=True),
        sa.Column('event_time', sa.String(50), nullable=True),
        sa.Column('event_location', sa.String(255), nullable=True),
        sa.Column('rsvp_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('plus_ones_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('rsvp_bcc_contacts', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'contacts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(255), nullable=False),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('organisation_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('source', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_contacts_email'), 'contacts', ['email'], unique=True)

    op.create_table(
        'guest_list_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('guest_list_id', sa.Integer(), nullable=False),
        sa.Column('contact_id', sa.Integer(), nullable=False),
        sa.Column('invite_status', sa.String(20), nullable=False, server_default='invited'),
        sa.Column('invited_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['guest_list_id'], ['guest_lists.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['contact_id'], ['contacts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('guest_list_id', 'contact_id', name='uq_guest_list_item')
    )
    op.create_index('idx_guest_list_items_list', 'guest_list_items', ['guest_list_id'])

    op.create_table(
        'access_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('secret_hash', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False, server_default='share'),
        sa.Column('subject_type', sa.String(20), nullable=False, server_default='guest_list'),
        sa.Column('subject_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('parent_token_id', sa.Integer(), nullable=True),
        sa.Column('depth', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('issued_for_contact_id', sa.Integer(), nullable=True),
        sa.Column('forwarded_by_name', sa.String(255), nullable=True),
        sa.Column('forwarded_by_email', sa.String(255), nullable=True),
        sa.Column('forward_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('access_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_accessed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['parent_token_id'], ['access_tokens.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['issued_for_contact_id'], ['contacts.id'], ondelete='SET NULL'),
        sa.CheckConstraint('expires_at > created_at', name='ck_access_tokens_expiry'),
        sa.CheckConstraint('depth >= 0', name='ck_access_tokens_depth'),
        sa.CheckConstraint('forward_count >= 0', name='ck_access_tokens_forward_count'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_access_tokens_secret_hash'), 'access_tokens', ['secret_hash'], unique=True)
    op.create_index('idx_access_tokens_subject', 'access_tokens', ['subject_type', 'subject_id'])
    op.create_index('idx_access_tokens_parent', 'access_tokens', ['parent_token_id'])

    op.create_table(
        'otp_challenges',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token_id', sa.Integer(), nullable=False),
        sa.Column('code_hash', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consumed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.ForeignKeyConstraint(['token_id'], ['access_tokens.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_otp_challenges_token_created', 'otp_challenges', ['token_id', 'created_at'])
    # At most one open challenge per token
    op.create_index(
        'uq_otp_challenges_open',
        'otp_challenges',
        ['token_id'],
        unique=True,
        postgresql_where=sa.text('consumed = false'),
    )

    op.create_table(
        'rsvp_responses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token_id', sa.Integer(), nullable=False),
        sa.Column('contact_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('response_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('plus_one_name', sa.String(255), nullable=True),
        sa.Column('plus_one_email', sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(['token_id'], ['access_tokens.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['contact_id'], ['contacts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_id', 'contact_id', name='uq_rsvp_responses_token_contact')
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=False),
        sa.Column('resource_id', sa.String(64), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='success'),
        sa.Column('actor', sa.String(255), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_logs_resource', 'audit_logs', ['resource_type', 'resource_id'])


def downgrade() -> None:
    op.drop_index('idx_audit_logs_resource', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_table('rsvp_responses')
    op.drop_index('uq_otp_challenges_open', table_name='otp_challenges')
    op.drop_index('idx_otp_challenges_token_created', table_name='otp_challenges')
    op.drop_table('otp_challenges')
    op.drop_index('idx_access_tokens_parent', table_name='access_tokens')
    op.drop_index('idx_access_tokens_subject', table_name='access_tokens')
    op.drop_index(op.f('ix_access_tokens_secret_hash'), table_name='access_tokens')
    op.drop_table('access_tokens')
    op.drop_index('idx_guest_list_items_list', table_name='guest_list_items')
    op.drop_table('guest_list_items')
    op.drop_index(op.f('ix_contacts_email'), table_name='contacts')
    op.drop_table('contacts')
    op.drop_table('guest_lists')
