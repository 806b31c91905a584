"""Initial schema for Nexus registry cache

Revision ID: 0001
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enum types
    op.execute(
        """CREATE TYPE company_status AS ENUM (
            'active', 'dissolved', 'liquidation', 'dormant',
            'suspended', 'strike_off', 'unknown'
        )"""
    )
    op.execute(
        """CREATE TYPE company_type AS ENUM (
            'private_limited', 'public_limited', 'limited_partnership',
            'unlimited_company', 'community_interest_company',
            'charitable_incorporated_organisation', 'llp', 'sole_trader', 'other'
        )"""
    )
    op.execute(
        """CREATE TYPE officer_role AS ENUM (
            'director', 'secretary', 'person_of_significant_control',
            'shareholder', 'trustee', 'other'
        )"""
    )

    # Create companies table
    op.create_table(
        "companies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_number", sa.String(8), nullable=False, unique=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(name="company_status", create_type=False),
            nullable=False,
            server_default="unknown",
        ),
        sa.Column(
            "company_type",
            postgresql.ENUM(name="company_type", create_type=False),
            nullable=False,
            server_default="other",
        ),
        sa.Column("incorporation_date", sa.Date),
        sa.Column("dissolution_date", sa.Date),
        sa.Column("jurisdiction", sa.String(100)),
        sa.Column("registered_address", sa.Text),
        sa.Column("postal_code", sa.String(20)),
        sa.Column("sic_codes", postgresql.JSONB, server_default="[]"),
        sa.Column("last_synced_at", sa.DateTime),
        sa.Column("officers_synced_at", sa.DateTime),
        sa.Column("controllers_synced_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_companies_name", "companies", ["name"])
    op.create_index("idx_companies_status", "companies", ["status"])
    op.create_index("idx_companies_last_synced", "companies", ["last_synced_at"])

    # Create persons table
    op.create_table(
        "persons",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("person_key", sa.String(600), nullable=False, unique=True),
        sa.Column("full_name", sa.String(500), nullable=False),
        sa.Column("normalized_name", sa.String(500), nullable=False),
        sa.Column("birth_month", sa.Integer),
        sa.Column("birth_year", sa.Integer),
        sa.Column("nationality", sa.String(100)),
        sa.Column("address", sa.Text),
        sa.Column("postal_code", sa.String(20)),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint(
            "birth_month IS NULL OR (birth_month >= 1 AND birth_month <= 12)",
            name="ck_persons_birth_month",
        ),
    )
    op.create_index("idx_persons_normalized_name", "persons", ["normalized_name"])

    # Create company_officers table
    op.create_table(
        "company_officers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("appointment_key", sa.String(700), nullable=False, unique=True),
        sa.Column(
            "company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "person_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("persons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "role",
            postgresql.ENUM(name="officer_role", create_type=False),
            nullable=False,
        ),
        sa.Column("appointed_on", sa.Date),
        sa.Column("resigned_on", sa.Date),
        sa.Column("natures_of_control", postgresql.JSONB, server_default="[]"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_company_officers_company", "company_officers", ["company_id"])
    op.create_index("idx_company_officers_person", "company_officers", ["person_id"])
    op.create_index(
        "idx_company_officers_active", "company_officers", ["company_id", "resigned_on"]
    )

    # Create company_relationships table
    op.create_table(
        "company_relationships",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "from_company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "to_company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("relationship_type", sa.String(50), nullable=False),
        sa.Column("ownership_percentage", sa.Float),
        sa.Column("confidence_score", sa.Float, nullable=False, server_default="1.0"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "from_company_id",
            "to_company_id",
            "relationship_type",
            name="uq_company_relationships_link",
        ),
        sa.CheckConstraint(
            "ownership_percentage IS NULL OR "
            "(ownership_percentage >= 0 AND ownership_percentage <= 100)",
            name="ck_company_relationships_ownership",
        ),
        sa.CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_company_relationships_confidence",
        ),
    )
    op.create_index(
        "idx_company_relationships_from", "company_relationships", ["from_company_id"]
    )
    op.create_index("idx_company_relationships_to", "company_relationships", ["to_company_id"])

    # Create search_queries table
    op.create_table(
        "search_queries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("caller_id", sa.String(255), nullable=False),
        sa.Column("query_text", sa.Text, nullable=False),
        sa.Column("query_type", sa.String(50), nullable=False),
        sa.Column("results_count", sa.Integer),
        sa.Column("execution_time_ms", sa.Integer),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_search_queries_caller_created", "search_queries", ["caller_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("search_queries")
    op.drop_table("company_relationships")
    op.drop_table("company_officers")
    op.drop_table("persons")
    op.drop_table("companies")

    op.execute("DROP TYPE IF EXISTS officer_role")
    op.execute("DROP TYPE IF EXISTS company_type")
    op.execute("DROP TYPE IF EXISTS company_status")
