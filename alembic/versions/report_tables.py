"""Report ingestion tables

Revision ID: report_tables
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'report_tables'
down_revision = None
branch_labels = None
depends_on = None


def _source_and_timestamps():
    return [
        sa.Column('source_message_id', sa.Text(), nullable=True),
        sa.Column('source_file_name', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade():
    # Directory tables are owned by the field application; create them only when absent
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing = set(inspector.get_table_names())

    if 'users' not in existing:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('first_name', sa.String(255)),
            sa.Column('last_name', sa.String(255)),
            sa.Column('email', sa.String(255)),
        )

    if 'verified_dealers' not in existing:
        op.create_table(
            'verified_dealers',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('dealer_code', sa.String(255)),
            sa.Column('dealer_party_name', sa.String(255)),
            sa.Column('zone', sa.String(255)),
            sa.Column('area', sa.String(255)),
        )

    op.create_table(
        'daily_tasks',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('assigned_by_user_id', sa.Integer()),
        sa.Column('verified_dealer_id', sa.Integer(), sa.ForeignKey('verified_dealers.id', ondelete='SET NULL')),
        sa.Column('task_date', sa.Date(), nullable=False),
        sa.Column('visit_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('dealer_name', sa.String(255), nullable=False),
        sa.Column('dealer_mobile', sa.String(50)),
        sa.Column('responsible_person', sa.String(255)),
        sa.Column('zone', sa.String(120)),
        sa.Column('area', sa.String(255), nullable=False, server_default=''),
        sa.Column('route', sa.String(500), nullable=False, server_default=''),
        sa.Column('description', sa.String(500), nullable=False, server_default=''),
        sa.Column('week', sa.String(50)),
        sa.Column('required_visit_count', sa.Integer()),
        sa.Column('institution', sa.String(10)),
        *_source_and_timestamps(),
        sa.UniqueConstraint(
            'user_id', 'task_date', 'dealer_name', 'visit_type', 'area', 'route', 'description',
            name='uq_daily_task_visit'
        ),
    )
    op.create_index('ix_daily_tasks_task_date', 'daily_tasks', ['task_date'])

    op.create_table(
        'collection_reports',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('institution', sa.String(10), nullable=False),
        sa.Column('voucher_no', sa.String(100), nullable=False),
        sa.Column('voucher_date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Float()),
        sa.Column('bank_account', sa.String(255)),
        sa.Column('remarks', sa.String(500)),
        sa.Column('party_name', sa.String(255), nullable=False),
        sa.Column('sales_promoter_name', sa.String(255)),
        sa.Column('sales_promoter_user_id', sa.Integer()),
        sa.Column('zone', sa.String(100)),
        sa.Column('district', sa.String(100)),
        sa.Column('verified_dealer_id', sa.Integer(), sa.ForeignKey('verified_dealers.id', ondelete='SET NULL')),
        *_source_and_timestamps(),
        sa.UniqueConstraint('voucher_no', 'institution', name='uq_collection_voucher_inst'),
    )
    op.create_index('ix_collection_voucher_date', 'collection_reports', ['voucher_date'])

    op.create_table(
        'projection_reports',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('institution', sa.String(10), nullable=False),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('zone', sa.String(100), nullable=False),
        sa.Column('order_dealer_name', sa.String(255), nullable=False),
        sa.Column('order_qty_mt', sa.Float()),
        sa.Column('collection_dealer_name', sa.String(255), nullable=False),
        sa.Column('collection_amount', sa.Float()),
        sa.Column('sales_promoter_user_id', sa.Integer()),
        sa.Column('verified_dealer_id', sa.Integer(), sa.ForeignKey('verified_dealers.id', ondelete='SET NULL')),
        *_source_and_timestamps(),
        sa.UniqueConstraint(
            'report_date', 'order_dealer_name', 'collection_dealer_name', 'institution', 'zone',
            name='uq_projection_snapshot'
        ),
    )
    op.create_index('ix_projection_report_date', 'projection_reports', ['report_date'])

    op.create_table(
        'projection_vs_actual_reports',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('institution', sa.String(10), nullable=False),
        sa.Column('zone', sa.String(120), nullable=False),
        sa.Column('dealer_name', sa.String(255), nullable=False),
        sa.Column('order_projection_mt', sa.Float()),
        sa.Column('actual_order_received_mt', sa.Float()),
        sa.Column('do_done_mt', sa.Float()),
        sa.Column('projection_vs_actual_order_mt', sa.Float()),
        sa.Column('actual_order_vs_do_mt', sa.Float()),
        sa.Column('collection_projection', sa.Float()),
        sa.Column('actual_collection', sa.Float()),
        sa.Column('short_fall', sa.Float()),
        sa.Column('percent', sa.Float()),
        sa.Column('verified_dealer_id', sa.Integer(), sa.ForeignKey('verified_dealers.id', ondelete='SET NULL')),
        *_source_and_timestamps(),
        sa.UniqueConstraint('report_date', 'dealer_name', 'institution', name='uq_proj_actual_snapshot'),
    )
    op.create_index('ix_proj_actual_zone', 'projection_vs_actual_reports', ['zone'])

    op.create_table(
        'outstanding_reports',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('institution', sa.String(10), nullable=False),
        sa.Column('dealer_key', sa.String(300), nullable=False),
        sa.Column('temp_dealer_name', sa.Text()),
        sa.Column('verified_dealer_id', sa.Integer(), sa.ForeignKey('verified_dealers.id', ondelete='SET NULL')),
        sa.Column('security_deposit_amt', sa.Float()),
        sa.Column('pending_amt', sa.Float()),
        sa.Column('less_than_10_days', sa.Float()),
        sa.Column('days_10_to_15', sa.Float()),
        sa.Column('days_15_to_21', sa.Float()),
        sa.Column('days_21_to_30', sa.Float()),
        sa.Column('days_30_to_45', sa.Float()),
        sa.Column('days_45_to_60', sa.Float()),
        sa.Column('days_60_to_75', sa.Float()),
        sa.Column('days_75_to_90', sa.Float()),
        sa.Column('greater_than_90_days', sa.Float()),
        sa.Column('is_overdue', sa.Boolean()),
        *_source_and_timestamps(),
        sa.UniqueConstraint('report_date', 'dealer_key', 'institution', name='uq_outstanding_entry'),
    )
    op.create_index('ix_outstanding_verified_dealer', 'outstanding_reports', ['verified_dealer_id'])

    op.create_table(
        'email_reports',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('message_id', sa.Text(), nullable=False),
        sa.Column('subject', sa.Text()),
        sa.Column('sender', sa.Text()),
        sa.Column('file_name', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('processed', sa.Boolean()),
        sa.Column('institution', sa.String(10)),
        sa.Column('report_name', sa.Text()),
        sa.Column('report_date', sa.Date()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.UniqueConstraint('message_id', 'file_name', name='uq_email_report_file'),
    )
    op.create_index('ix_email_reports_message', 'email_reports', ['message_id'])


def downgrade():
    # Directory tables belong to the field application and are left in place
    for table in (
        'email_reports',
        'outstanding_reports',
        'projection_vs_actual_reports',
        'projection_reports',
        'collection_reports',
        'daily_tasks',
    ):
        op.drop_table(table)
