"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Category catalog
    op.create_table(
        'categories',
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('parent_slug', sa.String(255), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default='1'),
        sa.PrimaryKeyConstraint('slug')
    )
    op.create_index('ix_categories_parent_slug', 'categories', ['parent_slug'])

    # Recurring collection plans
    op.create_table(
        'scrape_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=True, server_default='1'),
        sa.Column('schedule_type', sa.String(20), nullable=False, server_default='daily'),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='Asia/Baku'),
        sa.Column('run_hour', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('run_minute', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('days_of_week', sa.JSON(), nullable=False),
        sa.Column('days_of_month', sa.JSON(), nullable=False),
        sa.Column('once_run_at', sa.DateTime(), nullable=True),
        sa.Column('category_strategy', sa.String(20), nullable=False, server_default='all'),
        sa.Column('include_category_ids', sa.JSON(), nullable=False),
        sa.Column('exclude_category_ids', sa.JSON(), nullable=False),
        sa.Column('interval_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_pages', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_listings', sa.Integer(), nullable=False, server_default='120'),
        sa.Column('page_delay_ms', sa.Integer(), nullable=False, server_default='1500'),
        sa.Column('detail_delay_ms', sa.Integer(), nullable=False, server_default='2200'),
        sa.Column('headless', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('user_agent', sa.String(256), nullable=True),
        sa.Column('cron_expression', sa.String(64), nullable=True),
        sa.Column('schedule_summary', sa.Text(), nullable=True),
        sa.Column('last_run_at', sa.DateTime(), nullable=True),
        sa.Column('next_run_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('updated_by', sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_scrape_plans_id', 'scrape_plans', ['id'])
    op.create_index('ix_scrape_plans_enabled', 'scrape_plans', ['enabled'])
    op.create_index('ix_scrape_plans_next_run_at', 'scrape_plans', ['next_run_at'])

    op.create_table(
        'scrape_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('job_id', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('listings_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('snapshot_path', sa.String(1000), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['plan_id'], ['scrape_plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_scrape_runs_id', 'scrape_runs', ['id'])
    op.create_index('ix_scrape_runs_plan_id', 'scrape_runs', ['plan_id'])
    op.create_index('ix_scrape_runs_job_id', 'scrape_runs', ['job_id'])

    # Raw capture, one row per (job, remote id)
    op.create_table(
        'scraped_listings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('job_id', sa.String(100), nullable=False),
        sa.Column('tap_id', sa.String(100), nullable=False),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(14, 2), nullable=True),
        sa.Column('currency', sa.String(10), nullable=True),
        sa.Column('seller_name', sa.String(255), nullable=True),
        sa.Column('seller_type', sa.String(20), nullable=True),
        sa.Column('category_slug', sa.String(255), nullable=True),
        sa.Column('subcategory_slug', sa.String(255), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('is_new', sa.Boolean(), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=True),
        sa.Column('favorites_count', sa.Integer(), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('posted_at_text', sa.String(255), nullable=True),
        sa.Column('condition_label', sa.String(100), nullable=True),
        sa.Column('fetched_at', sa.DateTime(), nullable=False),
        sa.Column('listing_url', sa.String(1000), nullable=True),
        sa.Column('image_url', sa.String(1000), nullable=True),
        sa.Column('raw', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'tap_id', name='uq_scraped_listing_job_tap')
    )
    op.create_index('ix_scraped_listings_id', 'scraped_listings', ['id'])
    op.create_index('ix_scraped_listings_job_id', 'scraped_listings', ['job_id'])
    op.create_index('ix_scraped_listings_tap_id', 'scraped_listings', ['tap_id'])

    # Canonical listings
    op.create_table(
        'listings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('remote_id', sa.String(100), nullable=False),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_slug', sa.String(255), nullable=True),
        sa.Column('subcategory_slug', sa.String(255), nullable=True),
        sa.Column('seller_name', sa.String(255), nullable=True),
        sa.Column('seller_type', sa.String(20), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('listing_url', sa.String(1000), nullable=True),
        sa.Column('image_url', sa.String(1000), nullable=True),
        sa.Column('price_current', sa.Numeric(14, 2), nullable=True),
        sa.Column('currency', sa.String(10), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('is_new', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False),
        sa.Column('last_scraped_job_id', sa.String(100), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_listings_id', 'listings', ['id'])
    op.create_index('ix_listings_remote_id', 'listings', ['remote_id'], unique=True)
    op.create_index('ix_listings_category_slug', 'listings', ['category_slug'])
    op.create_index('ix_listings_last_seen', 'listings', ['last_seen_at'])

    op.create_table(
        'listing_daily_stats',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('listing_id', sa.Integer(), nullable=False),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('views_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('favorites_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price', sa.Numeric(14, 2), nullable=True),
        sa.Column('scraped_at', sa.DateTime(), nullable=False),
        sa.Column('job_id', sa.String(100), nullable=False),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('listing_id', 'snapshot_date', name='uq_listing_daily_stat')
    )
    op.create_index('ix_listing_daily_stats_id', 'listing_daily_stats', ['id'])

    op.create_table(
        'listing_price_changes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('listing_id', sa.Integer(), nullable=False),
        sa.Column('old_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('new_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sa.Column('job_id', sa.String(100), nullable=False),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_listing_price_changes_id', 'listing_price_changes', ['id'])
    op.create_index('ix_listing_price_changes_listing_id', 'listing_price_changes', ['listing_id'])


def downgrade() -> None:
    op.drop_table('listing_price_changes')
    op.drop_table('listing_daily_stats')
    op.drop_table('listings')
    op.drop_table('scraped_listings')
    op.drop_table('scrape_runs')
    op.drop_table('scrape_plans')
    op.drop_table('categories')
