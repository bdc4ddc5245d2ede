"""initial_schema

Revision ID: 4e8a1c2b9d07
Revises:
Create Date: 2026-10-19 09:12:41.508112+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4e8a1c2b9d07'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. contractors / investors (no FKs)
    op.create_table('contractors',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('identity_user_id', sa.String(length=255), nullable=False),
    sa.Column('company_name', sa.String(length=255), nullable=False),
    sa.Column('contact_person', sa.String(length=255), nullable=True),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('gstin', sa.String(length=20), nullable=True),
    sa.Column('verification_status', sa.String(length=30), nullable=False),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('identity_user_id')
    )
    op.create_index('idx_contractors_email', 'contractors', ['email'], unique=False)
    op.create_index('idx_contractors_status', 'contractors', ['status'], unique=False)

    op.create_table('investors',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('identity_user_id', sa.String(length=255), nullable=True),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('investor_type', sa.String(length=50), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('identity_user_id'),
    sa.UniqueConstraint('email')
    )
    op.create_index('idx_investors_status', 'investors', ['status'], unique=False)

    op.create_table('materials',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('unit', sa.String(length=30), nullable=False),
    sa.Column('category', sa.String(length=100), nullable=True),
    sa.Column('hsn_code', sa.String(length=20), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )

    # 2. investor side tables
    op.create_table('investor_accounts',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('investor_id', sa.UUID(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['investor_id'], ['investors.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('investor_id')
    )

    op.create_table('investor_bank_details',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('investor_id', sa.UUID(), nullable=False),
    sa.Column('account_holder_name', sa.String(length=255), nullable=False),
    sa.Column('bank_name', sa.String(length=255), nullable=False),
    sa.Column('account_number', sa.String(length=50), nullable=False),
    sa.Column('ifsc_code', sa.String(length=20), nullable=False),
    sa.Column('branch', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['investor_id'], ['investors.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('investor_id')
    )

    op.create_table('capital_transactions',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('investor_id', sa.UUID(), nullable=False),
    sa.Column('transaction_type', sa.String(length=20), nullable=False),
    sa.Column('amount', sa.Numeric(precision=16, scale=2), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('reference_number', sa.String(length=100), nullable=True),
    sa.Column('admin_user_id', sa.String(length=255), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('amount > 0', name='chk_capital_txn_amount'),
    sa.CheckConstraint("transaction_type IN ('inflow','outflow','allocation','return')", name='chk_capital_txn_type'),
    sa.CheckConstraint("status IN ('pending','completed','failed')", name='chk_capital_txn_status'),
    sa.ForeignKeyConstraint(['investor_id'], ['investors.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_capital_txn_investor', 'capital_transactions', ['investor_id'], unique=False)

    op.create_table('investor_payment_submissions',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('investor_id', sa.UUID(), nullable=False),
    sa.Column('amount', sa.Numeric(precision=16, scale=2), nullable=False),
    sa.Column('payment_date', sa.Date(), nullable=False),
    sa.Column('payment_method', sa.String(length=50), nullable=False),
    sa.Column('payment_reference', sa.String(length=100), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('proof_document_path', sa.Text(), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('review_notes', sa.Text(), nullable=True),
    sa.Column('approved_by', sa.String(length=255), nullable=True),
    sa.Column('approved_at', sa.DateTime(), nullable=True),
    sa.Column('capital_transaction_id', sa.UUID(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('amount > 0', name='chk_payment_submission_amount'),
    sa.CheckConstraint("status IN ('pending','approved','rejected')", name='chk_payment_submission_status'),
    sa.ForeignKeyConstraint(['investor_id'], ['investors.id'], ),
    sa.ForeignKeyConstraint(['capital_transaction_id'], ['capital_transactions.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_payment_submissions_investor', 'investor_payment_submissions', ['investor_id'], unique=False)
    op.create_index('idx_payment_submissions_status', 'investor_payment_submissions', ['status'], unique=False)

    # 3. projects and materials (FK to contractors)
    op.create_table('projects',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('contractor_id', sa.UUID(), nullable=False),
    sa.Column('project_name', sa.String(length=255), nullable=False),
    sa.Column('client_name', sa.String(length=255), nullable=True),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('estimated_value', sa.Numeric(precision=16, scale=2), nullable=True),
    sa.Column('funding_required', sa.Numeric(precision=16, scale=2), nullable=True),
    sa.Column('funding_status', sa.String(length=30), nullable=False),
    sa.Column('po_number', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('funding_required IS NULL OR estimated_value IS NULL OR funding_required <= estimated_value', name='chk_project_funding_le_value'),
    sa.ForeignKeyConstraint(['contractor_id'], ['contractors.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_projects_contractor', 'projects', ['contractor_id'], unique=False)
    op.create_index('idx_projects_status', 'projects', ['status'], unique=False)

    op.create_table('project_materials',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('project_id', sa.UUID(), nullable=False),
    sa.Column('material_id', sa.UUID(), nullable=True),
    sa.Column('contractor_id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=True),
    sa.Column('unit', sa.String(length=30), nullable=True),
    sa.Column('required_qty', sa.Numeric(precision=14, scale=3), nullable=False),
    sa.Column('available_qty', sa.Numeric(precision=14, scale=3), nullable=False),
    sa.Column('source_type', sa.String(length=50), nullable=True),
    sa.Column('source_file_name', sa.String(length=255), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('required_qty >= 0', name='chk_pm_required_qty'),
    sa.CheckConstraint('available_qty >= 0', name='chk_pm_available_qty'),
    sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ),
    sa.ForeignKeyConstraint(['material_id'], ['materials.id'], ),
    sa.ForeignKeyConstraint(['contractor_id'], ['contractors.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_project_materials_project', 'project_materials', ['project_id'], unique=False)

    op.create_table('boq_takeoffs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('project_id', sa.UUID(), nullable=False),
    sa.Column('contractor_id', sa.UUID(), nullable=False),
    sa.Column('file_name', sa.String(length=255), nullable=False),
    sa.Column('file_url', sa.Text(), nullable=True),
    sa.Column('takeoff_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('total_items', sa.Integer(), nullable=False),
    sa.Column('verification_status', sa.String(length=30), nullable=False),
    sa.Column('admin_verified_quantity', sa.Numeric(precision=14, scale=3), nullable=True),
    sa.Column('estimated_rate', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('admin_notes', sa.Text(), nullable=True),
    sa.Column('verified_by', sa.String(length=255), nullable=True),
    sa.Column('verified_at', sa.DateTime(), nullable=True),
    sa.Column('submitted_for_verification_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ),
    sa.ForeignKeyConstraint(['contractor_id'], ['contractors.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('project_id', 'contractor_id', 'file_name', name='uq_takeoff_file')
    )
    op.create_index('idx_takeoffs_status', 'boq_takeoffs', ['verification_status'], unique=False)
    op.create_index('idx_takeoffs_contractor', 'boq_takeoffs', ['contractor_id'], unique=False)

    # 4. purchase requests, items, invoices
    op.create_table('purchase_requests',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('project_id', sa.UUID(), nullable=False),
    sa.Column('contractor_id', sa.UUID(), nullable=False),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('remarks', sa.Text(), nullable=True),
    sa.Column('approved_by', sa.String(length=255), nullable=True),
    sa.Column('approval_notes', sa.Text(), nullable=True),
    sa.Column('po_number', sa.String(length=50), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.Column('submitted_at', sa.DateTime(), nullable=True),
    sa.Column('approved_at', sa.DateTime(), nullable=True),
    sa.Column('funded_at', sa.DateTime(), nullable=True),
    sa.Column('delivery_status', sa.String(length=30), nullable=False),
    sa.Column('dispatched_at', sa.DateTime(), nullable=True),
    sa.Column('dispute_window_hours', sa.Integer(), nullable=True),
    sa.Column('dispute_deadline', sa.DateTime(), nullable=True),
    sa.Column('dispute_raised_at', sa.DateTime(), nullable=True),
    sa.Column('dispute_raised_by', sa.String(length=255), nullable=True),
    sa.Column('dispute_reason', sa.Text(), nullable=True),
    sa.Column('delivered_at', sa.DateTime(), nullable=True),
    sa.Column('invoice_generated_at', sa.DateTime(), nullable=True),
    sa.Column('invoice_claimed_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint("status IN ('draft','submitted','approved','funded','po_generated','completed','rejected','cancelled')", name='chk_pr_status'),
    sa.CheckConstraint("delivery_status IN ('not_dispatched','dispatched','disputed','delivered')", name='chk_pr_delivery_status'),
    sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ),
    sa.ForeignKeyConstraint(['contractor_id'], ['contractors.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_pr_project', 'purchase_requests', ['project_id'], unique=False)
    op.create_index('idx_pr_contractor', 'purchase_requests', ['contractor_id'], unique=False)
    op.create_index('idx_pr_status', 'purchase_requests', ['status'], unique=False)
    op.create_index('idx_pr_delivery', 'purchase_requests', ['delivery_status', 'dispute_deadline'], unique=False)

    op.create_table('purchase_request_items',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('purchase_request_id', sa.UUID(), nullable=False),
    sa.Column('project_material_id', sa.UUID(), nullable=False),
    sa.Column('item_description', sa.Text(), nullable=True),
    sa.Column('hsn_code', sa.String(length=20), nullable=True),
    sa.Column('requested_qty', sa.Numeric(precision=14, scale=3), nullable=False),
    sa.Column('approved_qty', sa.Numeric(precision=14, scale=3), nullable=True),
    sa.Column('unit_rate', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('tax_percent', sa.Numeric(precision=5, scale=2), nullable=False),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('requested_qty > 0', name='chk_pr_item_requested_qty'),
    sa.CheckConstraint('approved_qty IS NULL OR (approved_qty >= 0 AND approved_qty <= requested_qty)', name='chk_pr_item_approved_qty'),
    sa.ForeignKeyConstraint(['purchase_request_id'], ['purchase_requests.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['project_material_id'], ['project_materials.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_pr_items_pr', 'purchase_request_items', ['purchase_request_id'], unique=False)
    op.create_index('idx_pr_items_material', 'purchase_request_items', ['project_material_id'], unique=False)

    op.create_table('invoices',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('purchase_request_id', sa.UUID(), nullable=False),
    sa.Column('contractor_id', sa.UUID(), nullable=False),
    sa.Column('project_id', sa.UUID(), nullable=False),
    sa.Column('invoice_number', sa.String(length=50), nullable=False),
    sa.Column('invoice_date', sa.DateTime(), nullable=False),
    sa.Column('subtotal', sa.Numeric(precision=16, scale=2), nullable=False),
    sa.Column('total_tax', sa.Numeric(precision=16, scale=2), nullable=False),
    sa.Column('total_amount', sa.Numeric(precision=16, scale=2), nullable=False),
    sa.Column('line_items', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('invoice_url', sa.Text(), nullable=True),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('generated_by', sa.String(length=50), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['purchase_request_id'], ['purchase_requests.id'], ),
    sa.ForeignKeyConstraint(['contractor_id'], ['contractors.id'], ),
    sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('purchase_request_id'),
    sa.UniqueConstraint('invoice_number')
    )
    op.create_index('idx_invoices_contractor', 'invoices', ['contractor_id'], unique=False)
    op.create_index('idx_invoices_project', 'invoices', ['project_id'], unique=False)

    # 5. audit trail (append-only)
    op.create_table('audit_logs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('actor_id', sa.String(length=255), nullable=True),
    sa.Column('actor_email', sa.String(length=255), nullable=True),
    sa.Column('action', sa.String(length=100), nullable=False),
    sa.Column('entity_type', sa.String(length=50), nullable=False),
    sa.Column('entity_id', sa.UUID(), nullable=False),
    sa.Column('before_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('after_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('changed_fields', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)
    op.create_index('idx_audit_actor', 'audit_logs', ['actor_id'], unique=False)
    op.create_index('idx_audit_created', 'audit_logs', [sa.text('created_at DESC')], unique=False)


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('invoices')
    op.drop_table('purchase_request_items')
    op.drop_table('purchase_requests')
    op.drop_table('boq_takeoffs')
    op.drop_table('project_materials')
    op.drop_table('projects')
    op.drop_table('investor_payment_submissions')
    op.drop_table('capital_transactions')
    op.drop_table('investor_bank_details')
    op.drop_table('investor_accounts')
    op.drop_table('materials')
    op.drop_table('investors')
    op.drop_table('contractors')
