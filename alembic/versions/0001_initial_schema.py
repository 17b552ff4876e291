"""Initial bid extraction schema.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

Creates users, projects, uploads, extraction batches, bids with their
normalized children, generated FAQs/questions and the raw callback log.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True)


def _timestamps(updated=True):
    columns = [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'))
        )
    return columns


def _fk(name, target, ondelete='CASCADE', nullable=False, **kwargs):
    return sa.Column(
        name, postgresql.UUID(as_uuid=True),
        sa.ForeignKey(f'{target}.id', ondelete=ondelete), nullable=nullable, **kwargs
    )


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        'users',
        _id(),
        sa.Column('supabase_user_id', sa.String(), unique=True, nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'projects',
        _id(),
        _fk('user_id', 'users', index=True),
        sa.Column('project_name', sa.String(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='draft'),
        sa.Column('notification_email', sa.String(), nullable=True),
        sa.Column('notify_on_completion', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notification_sent_at', sa.TIMESTAMP(timezone=True), nullable=True,
                  comment='Set once when the completion email is claimed; never cleared'),
        sa.Column('notification_last_error', sa.Text(), nullable=True),
        sa.Column('rerun_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('analysis_queued_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'pdf_uploads',
        _id(),
        _fk('project_id', 'projects', index=True),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_size_bytes', sa.Integer(), nullable=True),
        sa.Column('storage_path', sa.String(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='uploaded'),
        sa.Column('extraction_confidence', sa.String(16), nullable=True,
                  comment='high | medium | low | manual'),
        sa.Column('batch_request_id', sa.String(), nullable=True, index=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processing_started_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('processing_completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('uploaded_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table(
        'extraction_batches',
        _id(),
        sa.Column('request_id', sa.String(), unique=True, nullable=False),
        _fk('project_id', 'projects', index=True),
        sa.Column('document_ids', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('priorities', postgresql.JSONB(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='dispatching'),
        sa.Column('workflow_run_id', sa.String(), nullable=True),
        sa.Column('callback_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('dispatched_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_callback_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        'bids',
        _id(),
        _fk('project_id', 'projects', index=True),
        _fk('document_id', 'pdf_uploads', unique=True),
        sa.Column('request_id', sa.String(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('contractor_name', sa.String(), nullable=True),
        sa.Column('extraction_confidence', sa.String(16), nullable=True),
        sa.Column('processing_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
    )

    money = sa.Numeric(12, 2)
    rating = sa.Numeric(5, 2)
    years = sa.Numeric(5, 1)

    op.create_table(
        'bid_scope',
        _id(),
        _fk('bid_id', 'bids', unique=True),

        # Pricing
        sa.Column('total_bid_amount', money, nullable=True),
        sa.Column('equipment_cost', money, nullable=True),
        sa.Column('labor_cost', money, nullable=True),
        sa.Column('materials_cost', money, nullable=True),
        sa.Column('permit_cost', money, nullable=True),
        sa.Column('disposal_cost', money, nullable=True),
        sa.Column('electrical_cost', money, nullable=True),
        sa.Column('total_before_rebates', money, nullable=True),
        sa.Column('estimated_rebates', money, nullable=True),
        sa.Column('total_after_rebates', money, nullable=True),

        # Payment
        sa.Column('deposit_required', sa.Boolean(), nullable=True),
        sa.Column('deposit_amount', money, nullable=True),
        sa.Column('deposit_percentage', rating, nullable=True),
        sa.Column('payment_schedule', sa.Text(), nullable=True),
        sa.Column('financing_offered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('financing_terms', sa.Text(), nullable=True),

        # Warranty
        sa.Column('labor_warranty_years', years, nullable=True),
        sa.Column('equipment_warranty_years', years, nullable=True),
        sa.Column('compressor_warranty_years', years, nullable=True),
        sa.Column('extended_warranty_offered', sa.Boolean(), nullable=True),
        sa.Column('warranty_details', sa.Text(), nullable=True),

        # Timeline
        sa.Column('estimated_days', sa.Integer(), nullable=True),
        sa.Column('start_date_available', sa.String(), nullable=True),
        sa.Column('bid_date', sa.String(), nullable=True),
        sa.Column('valid_until', sa.String(), nullable=True),

        # Scope of work
        sa.Column('scope_summary', sa.Text(), nullable=True),
        sa.Column('inclusions', postgresql.JSONB(), nullable=True),
        sa.Column('exclusions', postgresql.JSONB(), nullable=True),
        *[
            sa.Column(f'{name}_included', sa.Boolean(), nullable=True)
            for name in (
                'permit', 'disposal', 'electrical_work', 'ductwork', 'thermostat',
                'manual_j', 'commissioning', 'air_handler', 'line_set',
                'disconnect', 'pad', 'drain_line',
            )
        ],

        # Electrical
        sa.Column('panel_assessment_included', sa.Boolean(), nullable=True),
        sa.Column('panel_upgrade_included', sa.Boolean(), nullable=True),
        sa.Column('panel_upgrade_cost', money, nullable=True),
        sa.Column('existing_panel_amps', sa.Integer(), nullable=True),
        sa.Column('proposed_panel_amps', sa.Integer(), nullable=True),
        sa.Column('electrical_notes', sa.Text(), nullable=True),

        sa.Column('line_items', postgresql.JSONB(), nullable=True,
                  comment='[{item_type, description, quantity, unit_price, total_price, ...}]'),
        sa.Column('extraction_notes', sa.Text(), nullable=True),
        sa.Column('confidence', sa.String(16), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'bid_contractors',
        _id(),
        _fk('bid_id', 'bids', unique=True),
        sa.Column('company_name', sa.String(), nullable=True),
        sa.Column('contact_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('website', sa.String(), nullable=True),
        sa.Column('license_number', sa.String(), nullable=True),
        sa.Column('license_state', sa.String(8), nullable=True),
        sa.Column('confidence', sa.String(16), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'bid_equipment',
        _id(),
        _fk('bid_id', 'bids', index=True),
        sa.Column('line_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('equipment_type', sa.String(32), nullable=False, server_default='other'),
        sa.Column('brand', sa.String(), nullable=True),
        sa.Column('model_number', sa.String(), nullable=True),
        sa.Column('model_name', sa.String(), nullable=True),
        sa.Column('capacity_btu', sa.Integer(), nullable=True),
        sa.Column('capacity_tons', rating, nullable=True),
        sa.Column('seer_rating', rating, nullable=True),
        sa.Column('seer2_rating', rating, nullable=True),
        sa.Column('hspf_rating', rating, nullable=True),
        sa.Column('hspf2_rating', rating, nullable=True),
        sa.Column('eer_rating', rating, nullable=True),
        sa.Column('variable_speed', sa.Boolean(), nullable=True),
        sa.Column('stages', sa.Integer(), nullable=True,
                  comment='1 single, 2 two-stage, 99 variable'),
        sa.Column('refrigerant_type', sa.String(), nullable=True),
        sa.Column('sound_level_db', years, nullable=True),
        sa.Column('voltage', sa.Integer(), nullable=True),
        sa.Column('energy_star_certified', sa.Boolean(), nullable=True),
        sa.Column('energy_star_most_efficient', sa.Boolean(), nullable=True),
        sa.Column('equipment_cost', money, nullable=True),
        sa.Column('confidence', sa.String(16), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        'bid_scores',
        _id(),
        _fk('bid_id', 'bids', unique=True),
        sa.Column('overall_score', rating, nullable=True),
        sa.Column('value_score', rating, nullable=True),
        sa.Column('quality_score', rating, nullable=True),
        sa.Column('completeness_score', rating, nullable=True),
        sa.Column('score_details', postgresql.JSONB(), nullable=True),
        sa.Column('calculated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table(
        'bid_questions',
        _id(),
        _fk('bid_id', 'bids', index=True),
        sa.Column('question_key', sa.String(64), nullable=False,
                  comment='sha256 of the normalized question text'),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_category', sa.String(32), nullable=True),
        sa.Column('priority', sa.String(16), nullable=True),
        sa.Column('missing_field', sa.String(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auto_generated', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_answered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('request_id', sa.String(), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('bid_id', 'question_key', name='uq_bid_question_key'),
    )

    op.create_table(
        'bid_faqs',
        _id(),
        _fk('project_id', 'projects', index=True),
        _fk('bid_id', 'bids', nullable=True),
        sa.Column('faq_key', sa.String(), nullable=False),
        sa.Column('scope_key', sa.String(), nullable=False,
                  comment="'<bid id>:<faq_key>' or 'project:<faq_key>'"),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=True),
        sa.Column('answer_confidence', sa.String(16), nullable=True),
        sa.Column('is_answered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('request_id', sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'scope_key', name='uq_faq_scope_key'),
    )

    op.create_table(
        'extraction_callbacks',
        _id(),
        sa.Column('request_id', sa.String(), nullable=False, index=True),
        _fk('project_id', 'projects', ondelete='SET NULL', nullable=True),
        sa.Column('callback_status', sa.String(16), nullable=True),
        sa.Column('raw_json', postgresql.JSONB(), nullable=False),
        sa.Column('parsed_successfully', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('parsing_errors', postgresql.JSONB(), nullable=True),
        sa.Column('overall_confidence', rating, nullable=True),
        sa.Column('received_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in (
        'extraction_callbacks',
        'bid_faqs',
        'bid_questions',
        'bid_scores',
        'bid_equipment',
        'bid_contractors',
        'bid_scope',
        'bids',
        'extraction_batches',
        'pdf_uploads',
        'projects',
        'users',
    ):
        op.drop_table(table)
