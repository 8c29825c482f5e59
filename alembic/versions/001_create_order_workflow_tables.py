"""Create production order workflow tables.

Revision ID: 001_order_workflow
Revises:
Create Date: 2025-09-15

Tables:
- production_orders: orders with status, quantities and location distribution
- order_number_sequence: single-row counter for order numbers (seeded)
- locations: site master data read when seeding planning approvals
- order_location_approvals: one planning sign-off per (order, location)
- order_history: append-only audit trail
- notification_log: notifications handed to the notifier (dedup window)
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = '001_order_workflow'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    """Create all workflow tables."""

    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing = set(inspector.get_table_names())

    if 'production_orders' not in existing:
        op.create_table(
            'production_orders',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('order_number', sa.Integer, nullable=False),
            sa.Column('customer_name', sa.String(200), nullable=False),
            sa.Column('customer_id', sa.Uuid(), nullable=True),
            sa.Column('article_number', sa.String(100), nullable=False),
            sa.Column('article_description', sa.String(500), nullable=False),
            sa.Column('article_id', sa.Uuid(), nullable=True),
            sa.Column('product_group', sa.String(100), nullable=True),
            sa.Column('product_group_secondary', sa.String(100), nullable=True),
            sa.Column('total_quantity', sa.Integer, nullable=False),
            sa.Column('fixed_quantity', sa.Boolean, nullable=True),
            sa.Column('unit_price', sa.Numeric(14, 2), nullable=True),
            sa.Column('location_distribution', JSON_TYPE, nullable=False, comment='{location: quantity}'),
            sa.Column('earliest_delivery', sa.Date, nullable=True),
            sa.Column('latest_delivery', sa.Date, nullable=True),
            sa.Column('description', sa.Text, nullable=True),
            sa.Column('attachment_url', sa.String(1000), nullable=True),
            sa.Column('attachment_filename', sa.String(255), nullable=True),
            sa.Column('status', sa.String(50), nullable=False, server_default='DRAFT',
                      comment='DRAFT, SALES_REVIEW, SUPPLY_CHAIN_REVIEW, PLANNING_REVIEW, APPROVED, REJECTED, COMPLETED'),
            sa.Column('rejection_reason', sa.Text, nullable=True),
            sa.Column('created_by_id', sa.Uuid(), nullable=True),
            sa.Column('created_by_name', sa.String(200), nullable=False),
            sa.Column('archived', sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint('total_quantity > 0', name='ck_production_orders_total_positive'),
        )
        op.create_index('ix_production_orders_order_number', 'production_orders', ['order_number'], unique=True)
        op.create_index('ix_production_orders_status', 'production_orders', ['status'])
        op.create_index('ix_production_orders_latest_delivery', 'production_orders', ['latest_delivery'])
        op.create_index('ix_production_orders_created_by_id', 'production_orders', ['created_by_id'])
        op.create_index('ix_production_orders_status_archived', 'production_orders', ['status', 'archived'])
        print("Created production_orders table")

    if 'order_number_sequence' not in existing:
        sequence = op.create_table(
            'order_number_sequence',
            sa.Column('id', sa.Integer, primary_key=True),
            sa.Column('last_number', sa.Integer, nullable=False, server_default='0'),
        )
        op.bulk_insert(sequence, [{'id': 1, 'last_number': 0}])
        print("Created order_number_sequence table")

    if 'locations' not in existing:
        op.create_table(
            'locations',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('code', sa.String(50), nullable=False),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index('ix_locations_code', 'locations', ['code'], unique=True)
        op.create_index('ix_locations_name', 'locations', ['name'])
        print("Created locations table")

    if 'order_location_approvals' not in existing:
        op.create_table(
            'order_location_approvals',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('order_id', sa.Uuid(), sa.ForeignKey('production_orders.id', ondelete='CASCADE'), nullable=False),
            sa.Column('location', sa.String(50), nullable=False),
            sa.Column('required', sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column('approved', sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column('approved_by_id', sa.Uuid(), nullable=True),
            sa.Column('approved_by_name', sa.String(200), nullable=True),
            sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint('order_id', 'location', name='uq_order_location_approval'),
        )
        op.create_index('ix_order_location_approvals_order_id', 'order_location_approvals', ['order_id'])
        op.create_index('ix_location_approvals_pending', 'order_location_approvals',
                        ['location', 'required', 'approved'])
        print("Created order_location_approvals table")

    if 'order_history' not in existing:
        op.create_table(
            'order_history',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('order_id', sa.Uuid(), sa.ForeignKey('production_orders.id', ondelete='CASCADE'), nullable=False),
            sa.Column('sequence', sa.Integer, nullable=False, server_default='0'),
            sa.Column('actor_id', sa.Uuid(), nullable=True),
            sa.Column('actor_name', sa.String(200), nullable=False),
            sa.Column('actor_role', sa.String(50), nullable=True),
            sa.Column('action', sa.String(100), nullable=False),
            sa.Column('previous_status', sa.String(50), nullable=True),
            sa.Column('new_status', sa.String(50), nullable=True),
            sa.Column('reason', sa.Text, nullable=True),
            sa.Column('old_data', JSON_TYPE, nullable=True),
            sa.Column('new_data', JSON_TYPE, nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index('ix_order_history_order_id', 'order_history', ['order_id'])
        op.create_index('ix_order_history_created_at', 'order_history', ['created_at'])
        print("Created order_history table")

    if 'notification_log' not in existing:
        op.create_table(
            'notification_log',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('order_id', sa.Uuid(), sa.ForeignKey('production_orders.id', ondelete='CASCADE'), nullable=False),
            sa.Column('event_kind', sa.String(50), nullable=False),
            sa.Column('order_status', sa.String(50), nullable=False),
            sa.Column('reason', sa.Text, nullable=True),
            sa.Column('dedup_key', sa.String(64), nullable=False),
            sa.Column('actor_id', sa.Uuid(), nullable=True),
            sa.Column('actor_name', sa.String(200), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index('ix_notification_log_order_id', 'notification_log', ['order_id'])
        op.create_index('ix_notification_log_event_kind', 'notification_log', ['event_kind'])
        op.create_index('ix_notification_log_dedup', 'notification_log', ['dedup_key', 'created_at'])
        print("Created notification_log table")


def downgrade() -> None:
    """Drop all workflow tables."""
    op.drop_table('notification_log')
    op.drop_table('order_history')
    op.drop_table('order_location_approvals')
    op.drop_table('locations')
    op.drop_table('order_number_sequence')
    op.drop_table('production_orders')
