"""Create deal, proposal, contract, firm offer and project tables.

Revision ID: 001_lifecycle_tables
Revises:
Create Date: 2026-10-19

No foreign key constraints between the tables; referential integrity is
enforced by the repositories, and deals are never hard-deleted. Token
columns hold SHA-256 hex digests only.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_lifecycle_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=True)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    # ── deals ───────────────────────────────────────────────────────────

    op.create_table(
        "deals",
        _id_column(),
        sa.Column("client_name", sa.String(255), nullable=False),
        sa.Column("client_email", sa.String(255), nullable=True),
        sa.Column("client_phone", sa.String(50), nullable=True),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("event_title", sa.String(500), nullable=False),
        _timestamp("event_date"),
        sa.Column("event_location", sa.String(500), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=True),
        sa.Column("attendee_count", sa.Integer, nullable=True),
        sa.Column("speaker_requested", sa.String(255), nullable=True),
        sa.Column("deal_value", sa.Float, nullable=False, server_default="0"),
        sa.Column("commission_percentage", sa.Float, nullable=True),
        sa.Column("commission_amount", sa.Float, nullable=True),
        sa.Column("budget_range", sa.String(100), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="lead"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("source", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        _timestamp("last_contact"),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("firm_offer_id", UUID(as_uuid=True), nullable=True),
        _created_at(),
        _timestamp("updated_at"),
    )
    op.create_index("idx_deals_status", "deals", ["status"])
    op.create_index("idx_deals_client_email", "deals", ["client_email"])
    op.create_index("idx_deals_external_id", "deals", ["external_id"])

    # ── proposals ───────────────────────────────────────────────────────

    op.create_table(
        "proposals",
        _id_column(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("proposal_number", sa.String(50), nullable=False, unique=True),
        sa.Column("speaker_name", sa.String(255), nullable=True),
        sa.Column("event_title", sa.String(500), nullable=True),
        _timestamp("event_date"),
        sa.Column("event_location", sa.String(500), nullable=True),
        sa.Column("total_investment", sa.Float, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="sent"),
        _timestamp("valid_until"),
        sa.Column("access_token_hash", sa.String(64), nullable=False, unique=True),
        _timestamp("accepted_at"),
        sa.Column("accepted_by", sa.String(255), nullable=True),
        _timestamp("rejected_at"),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index("idx_proposals_deal_id", "proposals", ["deal_id"])

    # ── contracts ───────────────────────────────────────────────────────

    op.create_table(
        "contracts",
        _id_column(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("contract_number", sa.String(50), nullable=False, unique=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("speaker_fee", sa.Float, nullable=False),
        sa.Column("total_amount", sa.Float, nullable=False),
        sa.Column("payment_terms", sa.Text, nullable=False),
        sa.Column("additional_terms", sa.Text, nullable=True),
        sa.Column("event_title", sa.String(500), nullable=False),
        _timestamp("event_date"),
        sa.Column("event_location", sa.String(500), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=True),
        sa.Column("client_name", sa.String(255), nullable=False),
        sa.Column("client_email", sa.String(255), nullable=True),
        sa.Column("client_company", sa.String(255), nullable=True),
        sa.Column("client_signer_name", sa.String(255), nullable=True),
        sa.Column("client_signer_email", sa.String(255), nullable=True),
        sa.Column("speaker_name", sa.String(255), nullable=True),
        sa.Column("speaker_email", sa.String(255), nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("access_token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("client_signing_token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("speaker_signing_token_hash", sa.String(64), nullable=False, unique=True),
        _timestamp("client_signed_at"),
        sa.Column("client_signer_ip", sa.String(64), nullable=True),
        _timestamp("speaker_signed_at"),
        sa.Column("speaker_signer_name", sa.String(255), nullable=True),
        sa.Column("amendments", sa.JSON, server_default=sa.text("'[]'::json")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("sent_at"),
        sa.Column("created_by", sa.String(255), nullable=True),
        _created_at(),
        _timestamp("updated_at"),
    )
    op.create_index("idx_contracts_deal_id", "contracts", ["deal_id"])
    op.create_index("idx_contracts_status", "contracts", ["status"])

    # ── firm_offers ─────────────────────────────────────────────────────

    op.create_table(
        "firm_offers",
        _id_column(),
        sa.Column("proposal_id", UUID(as_uuid=True), nullable=True),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("event_overview", sa.JSON, nullable=True),
        sa.Column("speaker_program", sa.JSON, nullable=True),
        sa.Column("event_schedule", sa.JSON, nullable=True),
        sa.Column("technical_requirements", sa.JSON, nullable=True),
        sa.Column("travel_accommodation", sa.JSON, nullable=True),
        sa.Column("additional_info", sa.JSON, nullable=True),
        sa.Column("financial_details", sa.JSON, nullable=True),
        sa.Column("confirmation", sa.JSON, nullable=True),
        sa.Column("speaker_access_token_hash", sa.String(64), nullable=False, unique=True),
        _timestamp("submitted_at"),
        _timestamp("sent_to_speaker_at"),
        _timestamp("speaker_viewed_at"),
        _timestamp("speaker_response_at"),
        sa.Column("speaker_confirmed", sa.Boolean, nullable=True),
        sa.Column("speaker_notes", sa.Text, nullable=True),
        _created_at(),
        _timestamp("updated_at"),
    )
    op.create_index("idx_firm_offers_status", "firm_offers", ["status"])
    op.create_index("idx_firm_offers_proposal_id", "firm_offers", ["proposal_id"])
    op.create_index("idx_firm_offers_deal_id", "firm_offers", ["deal_id"])

    # ── projects ────────────────────────────────────────────────────────

    op.create_table(
        "projects",
        _id_column(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("contract_id", UUID(as_uuid=True), nullable=True),
        sa.Column("firm_offer_id", UUID(as_uuid=True), nullable=True),
        sa.Column("proposal_id", UUID(as_uuid=True), nullable=True),
        sa.Column("project_name", sa.String(500), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=False),
        sa.Column("client_email", sa.String(255), nullable=True),
        sa.Column("company", sa.String(255), nullable=True),
        _timestamp("event_date"),
        sa.Column("event_location", sa.String(500), nullable=True),
        sa.Column("speaker_fee", sa.Float, nullable=True),
        sa.Column("budget", sa.Float, nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="planning"),
        sa.Column("source", sa.String(50), nullable=True),
        _created_at(),
    )
    op.create_index("idx_projects_status", "projects", ["status"])


def downgrade() -> None:
    op.drop_table("projects")
    op.drop_table("firm_offers")
    op.drop_table("contracts")
    op.drop_table("proposals")
    op.drop_table("deals")
