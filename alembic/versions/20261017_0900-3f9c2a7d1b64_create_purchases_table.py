"""create_purchases_table

Revision ID: 3f9c2a7d1b64
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1b64'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'purchases',
        sa.Column('id', sa.String(length=32), nullable=False, comment='Purchase id / gateway txnid'),
        sa.Column('owner_id', sa.Integer(), nullable=False, comment='Owning user id'),
        sa.Column('name', sa.String(length=200), nullable=False, comment='Customer full name'),
        sa.Column('company_name', sa.String(length=200), nullable=True),
        sa.Column('street_address', sa.String(length=300), nullable=False),
        sa.Column('apartment_address', sa.String(length=300), nullable=True),
        sa.Column('town', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('line_items', sa.JSON(), nullable=False, comment='Ticket lines'),
        sa.Column('gift_items', sa.JSON(), nullable=False, comment='Gift lines, excluded from total'),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False, comment='Amount charged'),
        sa.Column('coupon', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='created',
                  comment='created/pending_payment/confirmed/cancelled'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1', comment='Optimistic lock for cart edits'),
        sa.Column('gateway_ref', sa.String(length=100), nullable=True, comment='Gateway payment id (mihpayid)'),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_index('ix_purchases_owner_id', 'purchases', ['owner_id'], unique=False)
    op.create_index('ix_purchases_status', 'purchases', ['status'], unique=False)
    op.create_index('ix_purchases_gateway_ref', 'purchases', ['gateway_ref'], unique=False)
    op.create_index('ix_purchases_owner_status', 'purchases', ['owner_id', 'status'], unique=False)
    op.create_index('ix_purchases_created_at', 'purchases', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_purchases_created_at', table_name='purchases')
    op.drop_index('ix_purchases_owner_status', table_name='purchases')
    op.drop_index('ix_purchases_gateway_ref', table_name='purchases')
    op.drop_index('ix_purchases_status', table_name='purchases')
    op.drop_index('ix_purchases_owner_id', table_name='purchases')
    op.drop_table('purchases')
