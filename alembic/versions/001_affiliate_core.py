"""Create affiliate tables

Revision ID: 001
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('affiliate_partners',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('company_name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('contact_email', sa.String(255), nullable=True),
        sa.Column('website_url', sa.String(1000), nullable=True),
        sa.Column('commission_rate', sa.Float(), nullable=False),
        sa.Column('commission_type', sa.String(20), nullable=False),
        sa.Column('cookie_window_days', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payout_threshold_cents', sa.Integer(), nullable=False),
        sa.Column('payout_method', sa.String(20), nullable=False),
        sa.Column('stripe_account_id', sa.String(255), nullable=True),
        sa.Column('api_secret', sa.String(128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
        sa.CheckConstraint('commission_rate >= 0', name='ck_partner_rate_non_negative'),
        sa.CheckConstraint('cookie_window_days > 0', name='ck_partner_window_positive'),
    )
    op.create_index('ix_affiliate_partners_status', 'affiliate_partners', ['status'])

    op.create_table('affiliate_products',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('partner_id', sa.String(36), sa.ForeignKey('affiliate_partners.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('product_url', sa.String(2000), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('commission_override', sa.Float(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )
    op.create_index('ix_affiliate_products_partner_id', 'affiliate_products', ['partner_id'])
    op.create_index('ix_affiliate_products_partner_status', 'affiliate_products', ['partner_id', 'status'])

    op.create_table('affiliate_campaigns',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('partner_id', sa.String(36), sa.ForeignKey('affiliate_partners.id'), nullable=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('affiliate_products.id'), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('bonus_commission_rate', sa.Float(), nullable=True),
        sa.Column('discount_code', sa.String(100), nullable=True),
        sa.Column('utm_source', sa.String(100), nullable=True),
        sa.Column('utm_medium', sa.String(100), nullable=True),
        sa.Column('utm_campaign', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_affiliate_campaigns_status', 'affiliate_campaigns', ['status'])
    op.create_index('ix_affiliate_campaigns_status_dates', 'affiliate_campaigns', ['status', 'start_date', 'end_date'])

    op.create_table('affiliate_links',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('short_code', sa.String(32), nullable=False),
        sa.Column('partner_id', sa.String(36), sa.ForeignKey('affiliate_partners.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('affiliate_products.id'), nullable=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('affiliate_campaigns.id'), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('destination_url', sa.String(2000), nullable=False),
        sa.Column('tracking_url', sa.String(4000), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('total_conversions', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('short_code'),
    )
    op.create_index('ix_affiliate_links_partner_id', 'affiliate_links', ['partner_id'])

    op.create_table('affiliate_clicks',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('link_id', sa.String(36), sa.ForeignKey('affiliate_links.id'), nullable=False),
        sa.Column('partner_id', sa.String(36), sa.ForeignKey('affiliate_partners.id'), nullable=False),
        sa.Column('product_id', sa.String(36), nullable=True),
        sa.Column('campaign_id', sa.String(36), nullable=True),
        sa.Column('clicked_at', sa.DateTime(), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('referrer', sa.String(1000), nullable=True),
        sa.Column('country_code', sa.String(2), nullable=True),
        sa.Column('device_type', sa.String(20), nullable=False),
        sa.Column('browser', sa.String(50), nullable=True),
        sa.Column('os', sa.String(50), nullable=True),
        sa.Column('is_bot', sa.Boolean(), nullable=False),
        sa.Column('bot_type', sa.String(50), nullable=True),
        sa.Column('fraud_score', sa.Integer(), nullable=True),
        sa.Column('session_id', sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_affiliate_clicks_link_clicked', 'affiliate_clicks', ['link_id', 'clicked_at'])
    op.create_index('ix_affiliate_clicks_partner_clicked', 'affiliate_clicks', ['partner_id', 'clicked_at'])
    op.create_index('ix_affiliate_clicks_ip_clicked', 'affiliate_clicks', ['ip_address', 'clicked_at'])

    op.create_table('affiliate_payouts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('partner_id', sa.String(36), sa.ForeignKey('affiliate_partners.id'), nullable=False),
        sa.Column('total_commission_cents', sa.Integer(), nullable=False),
        sa.Column('total_conversions', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payout_method', sa.String(20), nullable=False),
        sa.Column('transaction_reference', sa.String(255), nullable=True),
        sa.Column('payout_date', sa.DateTime(), nullable=True),
        sa.Column('failure_reason', sa.String(500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('total_commission_cents >= 0', name='ck_payout_total_non_negative'),
    )
    op.create_index('ix_affiliate_payouts_partner_id', 'affiliate_payouts', ['partner_id'])

    op.create_table('affiliate_conversions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('partner_id', sa.String(36), sa.ForeignKey('affiliate_partners.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('affiliate_products.id'), nullable=True),
        sa.Column('link_id', sa.String(36), sa.ForeignKey('affiliate_links.id'), nullable=True),
        sa.Column('click_id', sa.String(36), sa.ForeignKey('affiliate_clicks.id'), nullable=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('affiliate_campaigns.id'), nullable=True),
        sa.Column('order_id', sa.String(255), nullable=False),
        sa.Column('transaction_id', sa.String(255), nullable=True),
        sa.Column('conversion_type', sa.String(20), nullable=False),
        sa.Column('sale_amount_cents', sa.Integer(), nullable=True),
        sa.Column('commission_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('conversion_status', sa.String(20), nullable=False),
        sa.Column('payout_status', sa.String(20), nullable=False),
        sa.Column('payout_id', sa.String(36), sa.ForeignKey('affiliate_payouts.id'), nullable=True),
        sa.Column('validation_method', sa.String(20), nullable=False),
        sa.Column('fraud_score', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('metadata_json', sa.JSON(), nullable=True),
        sa.Column('converted_at', sa.DateTime(), nullable=False),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('partner_id', 'order_id', name='uq_affiliate_conversions_partner_order'),
        sa.CheckConstraint('commission_cents >= 0', name='ck_conversion_commission_non_negative'),
    )
    op.create_index(
        'ix_affiliate_conversions_partner_status', 'affiliate_conversions',
        ['partner_id', 'conversion_status', 'payout_status'],
    )
    op.create_index('ix_affiliate_conversions_converted_at', 'affiliate_conversions', ['converted_at'])

    op.create_table('partner_api_logs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('partner_id', sa.String(36), nullable=True),
        sa.Column('endpoint', sa.String(255), nullable=False),
        sa.Column('request_method', sa.String(10), nullable=False),
        sa.Column('request_payload', sa.Text(), nullable=True),
        sa.Column('response_status', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('response_time_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_partner_api_logs_partner_created', 'partner_api_logs', ['partner_id', 'created_at'])

    op.create_table('affiliate_blocked_ips',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=False),
        sa.Column('reason', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ip_address'),
    )


def downgrade():
    op.drop_table('affiliate_blocked_ips')
    op.drop_index('ix_partner_api_logs_partner_created', 'partner_api_logs')
    op.drop_table('partner_api_logs')
    op.drop_index('ix_affiliate_conversions_converted_at', 'affiliate_conversions')
    op.drop_index('ix_affiliate_conversions_partner_status', 'affiliate_conversions')
    op.drop_table('affiliate_conversions')
    op.drop_index('ix_affiliate_payouts_partner_id', 'affiliate_payouts')
    op.drop_table('affiliate_payouts')
    op.drop_index('ix_affiliate_clicks_ip_clicked', 'affiliate_clicks')
    op.drop_index('ix_affiliate_clicks_partner_clicked', 'affiliate_clicks')
    op.drop_index('ix_affiliate_clicks_link_clicked', 'affiliate_clicks')
    op.drop_table('affiliate_clicks')
    op.drop_index('ix_affiliate_links_partner_id', 'affiliate_links')
    op.drop_table('affiliate_links')
    op.drop_index('ix_affiliate_campaigns_status_dates', 'affiliate_campaigns')
    op.drop_index('ix_affiliate_campaigns_status', 'affiliate_campaigns')
    op.drop_table('affiliate_campaigns')
    op.drop_index('ix_affiliate_products_partner_status', 'affiliate_products')
    op.drop_index('ix_affiliate_products_partner_id', 'affiliate_products')
    op.drop_table('affiliate_products')
    op.drop_index('ix_affiliate_partners_status', 'affiliate_partners')
    op.drop_table('affiliate_partners')
