"""create locations, categories and category location keyword tables

Revision ID: 3e5f7a9b1c2d
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3e5f7a9b1c2d"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "counties",
        sa.Column("county_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.PrimaryKeyConstraint("county_id"),
    )
    op.create_table(
        "towns",
        sa.Column("town_id", sa.Integer(), nullable=False),
        sa.Column("county_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.ForeignKeyConstraint(["county_id"], ["counties.county_id"]),
        sa.PrimaryKeyConstraint("town_id"),
    )
    op.create_index(op.f("ix_towns_county_id"), "towns", ["county_id"], unique=False)

    op.create_table(
        "business_categories",
        sa.Column("category_id", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="Active", nullable=False),
        sa.PrimaryKeyConstraint("category_id"),
    )

    op.create_table(
        "admin_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "search_volume_refresh_cooldown_days",
            sa.Integer(),
            server_default="30",
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "category_location_keywords",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("category_id", sa.String(length=255), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("keyword", sa.String(length=500), nullable=False),
        sa.Column("keyword_normalized", sa.String(length=500), nullable=False),
        sa.Column("keyword_type", sa.String(length=20), server_default="modifier", nullable=False),
        sa.Column("canonical_keyword_id", sa.Integer(), nullable=True),
        sa.Column("fingerprint", sa.String(length=64), nullable=True),
        sa.Column("avg_search_volume", sa.Integer(), nullable=True),
        sa.Column("cpc", sa.Float(), nullable=True),
        sa.Column("competition", sa.String(length=50), nullable=True),
        sa.Column("competition_index", sa.Integer(), nullable=True),
        sa.Column("low_top_of_page_bid", sa.Float(), nullable=True),
        sa.Column("high_top_of_page_bid", sa.Float(), nullable=True),
        sa.Column("no_data", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("no_data_reason", sa.String(length=20), nullable=True),
        sa.Column("last_attempted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_succeeded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_status_code", sa.Integer(), nullable=True),
        sa.Column("last_status_message", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["category_id"], ["business_categories.category_id"]),
        sa.ForeignKeyConstraint(["location_id"], ["towns.town_id"]),
        sa.ForeignKeyConstraint(
            ["canonical_keyword_id"],
            ["category_location_keywords.id"],
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "category_id",
            "location_id",
            "keyword_normalized",
            name="uq_category_location_keywords_scope_keyword",
        ),
    )
    op.create_index(
        "ix_category_location_keywords_scope",
        "category_location_keywords",
        ["category_id", "location_id"],
        unique=False,
    )
    op.create_index(
        "uq_category_location_keywords_main_term",
        "category_location_keywords",
        ["category_id", "location_id"],
        unique=True,
        postgresql_where=sa.text("keyword_type = 'main_term'"),
    )

    op.create_table(
        "category_location_search_volumes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("keyword_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("search_volume", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["keyword_id"],
            ["category_location_keywords.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "keyword_id",
            "year",
            "month",
            name="uq_category_location_search_volumes_keyword_month",
        ),
    )
    op.create_index(
        op.f("ix_category_location_search_volumes_keyword_id"),
        "category_location_search_volumes",
        ["keyword_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        op.f("ix_category_location_search_volumes_keyword_id"),
        table_name="category_location_search_volumes",
    )
    op.drop_table("category_location_search_volumes")
    op.drop_index(
        "uq_category_location_keywords_main_term",
        table_name="category_location_keywords",
    )
    op.drop_index(
        "ix_category_location_keywords_scope",
        table_name="category_location_keywords",
    )
    op.drop_table("category_location_keywords")
    op.drop_table("admin_settings")
    op.drop_table("business_categories")
    op.drop_index(op.f("ix_towns_county_id"), table_name="towns")
    op.drop_table("towns")
    op.drop_table("counties")
