"""Lead pipeline tables: leads, lead_stage_history, sales, qualification_criteria

Revision ID: 3f9a6c1d2e80
Revises:
Create Date: 2026-10-12 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a6c1d2e80'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('leads',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('stage', sa.Text(), nullable=False, server_default='lead'),
        sa.Column('is_qualified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('qualification_score', sa.Integer(), nullable=True),
        sa.Column('utm_source', sa.Text(), nullable=True),
        sa.Column('utm_medium', sa.Text(), nullable=True),
        sa.Column('utm_campaign', sa.Text(), nullable=True),
        sa.Column('utm_content', sa.Text(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=True),
        sa.Column('observation', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leads_session_id', 'leads', ['session_id'])
    # keyset pagination for dedup walks (session, created_at, id)
    op.create_index('ix_leads_session_created', 'leads', ['session_id', 'created_at', 'id'])

    op.create_table('lead_stage_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Integer(), nullable=False),
        sa.Column('previous_stage', sa.Text(), nullable=True),
        sa.Column('new_stage', sa.Text(), nullable=False),
        sa.Column('actor', sa.Text(), nullable=True),
        sa.Column('actor_name', sa.Text(), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_lead_stage_history_lead_id', 'lead_stage_history', ['lead_id'])

    op.create_table('sales',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('client_email', sa.Text(), nullable=True),
        sa.Column('client_phone', sa.Text(), nullable=True),
        sa.Column('product_name', sa.Text(), nullable=True),
        sa.Column('platform', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('qualification_criteria',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.Text(), nullable=False),
        sa.Column('field_name', sa.Text(), nullable=False),
        sa.Column('operator', sa.Text(), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('weight', sa.Float(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_qualification_criteria_session_id', 'qualification_criteria', ['session_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_qualification_criteria_session_id', table_name='qualification_criteria')
    op.drop_table('qualification_criteria')
    op.drop_table('sales')
    op.drop_index('ix_lead_stage_history_lead_id', table_name='lead_stage_history')
    op.drop_table('lead_stage_history')
    op.drop_index('ix_leads_session_created', table_name='leads')
    op.drop_index('ix_leads_session_id', table_name='leads')
    op.drop_table('leads')
