"""initial_schema

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 09:12:44.118204+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. purchase_requests (no FKs)
    op.create_table('purchase_requests',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('request_code', sa.String(length=50), nullable=False),
    sa.Column('project_id', sa.String(length=64), nullable=False),
    sa.Column('name_ar', sa.String(length=300), nullable=False),
    sa.Column('name_en', sa.String(length=300), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('purchase_method', sa.String(length=20), nullable=False),
    sa.Column('request_date', sa.Date(), nullable=False),
    sa.Column('publication_date', sa.Date(), nullable=True),
    sa.Column('deadline_date', sa.Date(), nullable=True),
    sa.Column('requester_id', sa.String(length=64), nullable=False),
    sa.Column('requester_name', sa.String(length=200), nullable=False),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('workflow_version', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.Column('submitted_at', sa.DateTime(), nullable=True),
    sa.Column('approved_at', sa.DateTime(), nullable=True),
    sa.Column('rejected_at', sa.DateTime(), nullable=True),
    sa.Column('awarded_at', sa.DateTime(), nullable=True),
    sa.Column('deleted_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint("status IN ('DRAFT','PENDING_APPROVAL','APPROVED','REJECTED','AWARDED')", name='chk_pr_status'),
    sa.CheckConstraint("purchase_method IN ('DIRECT','QUOTATION','TENDER')", name='chk_pr_method'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('request_code')
    )
    op.create_index('idx_pr_status', 'purchase_requests', ['status'], unique=False)
    op.create_index('idx_pr_requester', 'purchase_requests', ['requester_id'], unique=False)
    op.create_index('idx_pr_project', 'purchase_requests', ['project_id'], unique=False)

    # 2. pr_line_items, pr_notes, approvals (FK to purchase_requests)
    op.create_table('pr_line_items',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('pr_id', sa.UUID(), nullable=False),
    sa.Column('line_number', sa.Integer(), nullable=False),
    sa.Column('item_id', sa.String(length=64), nullable=False),
    sa.Column('quantity', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('quantity > 0', name='chk_pr_line_qty'),
    sa.ForeignKeyConstraint(['pr_id'], ['purchase_requests.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('pr_id', 'line_number', name='uq_pr_line_item'),
    sa.UniqueConstraint('pr_id', 'item_id', name='uq_pr_line_item_item')
    )
    op.create_index('idx_pr_items_pr', 'pr_line_items', ['pr_id'], unique=False)

    op.create_table('pr_notes',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('pr_id', sa.UUID(), nullable=False),
    sa.Column('text', sa.Text(), nullable=False),
    sa.Column('author_id', sa.String(length=64), nullable=False),
    sa.Column('author_name', sa.String(length=200), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['pr_id'], ['purchase_requests.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_pr_notes_pr', 'pr_notes', ['pr_id'], unique=False)

    op.create_table('approvals',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('pr_id', sa.UUID(), nullable=False),
    sa.Column('approval_level', sa.Integer(), nullable=False),
    sa.Column('role_id', sa.String(length=64), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('actor_id', sa.String(length=64), nullable=True),
    sa.Column('actor_name', sa.String(length=200), nullable=True),
    sa.Column('comments', sa.Text(), nullable=True),
    sa.Column('acted_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('approval_level > 0', name='chk_approval_level_positive'),
    sa.CheckConstraint("status IN ('PENDING','APPROVED','REJECTED')", name='chk_approval_status'),
    sa.ForeignKeyConstraint(['pr_id'], ['purchase_requests.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('pr_id', 'approval_level', name='uq_approval_level')
    )
    op.create_index('idx_approvals_pr', 'approvals', ['pr_id'], unique=False)
    op.create_index('idx_approvals_role', 'approvals', ['role_id', 'status'], unique=False)

    # 3. workflow_registries (standalone, versioned)
    op.create_table('workflow_registries',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('version', sa.Integer(), nullable=False),
    sa.Column('role_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('updated_by', sa.String(length=64), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('version > 0', name='chk_workflow_version_positive'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('version')
    )

    # 4. supplier_quotations + quotation_items
    op.create_table('supplier_quotations',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('pr_id', sa.UUID(), nullable=False),
    sa.Column('supplier_id', sa.String(length=64), nullable=False),
    sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False),
    sa.Column('quotation_date', sa.Date(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('discount_percent >= 0 AND discount_percent <= 100', name='chk_quotation_discount'),
    sa.ForeignKeyConstraint(['pr_id'], ['purchase_requests.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('pr_id', 'supplier_id', name='uq_quotation_supplier')
    )
    op.create_index('idx_quotations_pr', 'supplier_quotations', ['pr_id'], unique=False)

    op.create_table('quotation_items',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('quotation_id', sa.UUID(), nullable=False),
    sa.Column('item_id', sa.String(length=64), nullable=False),
    sa.Column('price', sa.Numeric(precision=14, scale=4), nullable=False),
    sa.CheckConstraint('price >= 0', name='chk_quotation_item_price'),
    sa.ForeignKeyConstraint(['quotation_id'], ['supplier_quotations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('quotation_id', 'item_id', name='uq_quotation_item')
    )
    op.create_index('idx_quotation_items_quotation', 'quotation_items', ['quotation_id'], unique=False)

    # 5. purchase_orders + po_line_items
    op.create_table('purchase_orders',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('po_number', sa.String(length=50), nullable=False),
    sa.Column('pr_id', sa.UUID(), nullable=False),
    sa.Column('supplier_id', sa.String(length=64), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('total_amount', sa.Numeric(precision=16, scale=2), nullable=False),
    sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('created_by', sa.String(length=64), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.Column('deleted_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint("status IN ('PENDING','AWARDED','COMPLETED')", name='chk_po_status'),
    sa.ForeignKeyConstraint(['pr_id'], ['purchase_requests.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('po_number')
    )
    op.create_index('idx_po_pr', 'purchase_orders', ['pr_id'], unique=False)
    op.create_index('idx_po_supplier', 'purchase_orders', ['supplier_id'], unique=False)
    op.create_index('idx_po_status', 'purchase_orders', ['status'], unique=False)

    op.create_table('po_line_items',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('po_id', sa.UUID(), nullable=False),
    sa.Column('line_number', sa.Integer(), nullable=False),
    sa.Column('item_id', sa.String(length=64), nullable=False),
    sa.Column('quantity', sa.Integer(), nullable=False),
    sa.Column('price', sa.Numeric(precision=14, scale=4), nullable=False),
    sa.CheckConstraint('quantity > 0', name='chk_po_line_qty'),
    sa.CheckConstraint('price >= 0', name='chk_po_line_price'),
    sa.ForeignKeyConstraint(['po_id'], ['purchase_orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('po_id', 'line_number', name='uq_po_line_item')
    )
    op.create_index('idx_po_items_po', 'po_line_items', ['po_id'], unique=False)

    # 6. audit_logs (append-only)
    op.create_table('audit_logs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('actor_id', sa.String(length=64), nullable=True),
    sa.Column('actor_name', sa.String(length=200), nullable=True),
    sa.Column('action', sa.String(length=100), nullable=False),
    sa.Column('entity_type', sa.String(length=50), nullable=False),
    sa.Column('entity_id', sa.UUID(), nullable=False),
    sa.Column('before_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('after_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('changed_fields', postgresql.ARRAY(sa.Text()), nullable=True),
    sa.Column('request_id', sa.String(length=64), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)
    op.create_index('idx_audit_actor', 'audit_logs', ['actor_id'], unique=False)
    op.create_index('idx_audit_created', 'audit_logs', [sa.text('created_at DESC')], unique=False)


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('po_line_items')
    op.drop_table('purchase_orders')
    op.drop_table('quotation_items')
    op.drop_table('supplier_quotations')
    op.drop_table('workflow_registries')
    op.drop_table('approvals')
    op.drop_table('pr_notes')
    op.drop_table('pr_line_items')
    op.drop_table('purchase_requests')
