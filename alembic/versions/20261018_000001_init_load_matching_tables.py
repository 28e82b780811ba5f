"""Create trip, load and load suggestion tables

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 09:00:00

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True) -> list:
    columns = [sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    op.create_table(
        "company",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_company_owner_id", "company", ["owner_id"])

    op.create_table(
        "driver",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("company_id", sa.String(), sa.ForeignKey("company.id"), nullable=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("pay_mode", sa.String(), nullable=False, server_default="per_mile"),
        sa.Column("rate_per_mile", sa.Float(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_driver_company_id", "driver", ["company_id"])
    op.create_index("ix_driver_owner_id", "driver", ["owner_id"])

    op.create_table(
        "trailer",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("company_id", sa.String(), sa.ForeignKey("company.id"), nullable=True),
        sa.Column("unit_number", sa.String(), nullable=True),
        sa.Column("cubic_capacity", sa.Float(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_trailer_company_id", "trailer", ["company_id"])

    op.create_table(
        "freight_load",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("company_id", sa.String(), sa.ForeignKey("company.id"), nullable=True),
        sa.Column("load_number", sa.String(), nullable=True),
        sa.Column("pickup_city", sa.String(), nullable=True),
        sa.Column("pickup_state", sa.String(), nullable=True),
        sa.Column("pickup_postal_code", sa.String(), nullable=True),
        sa.Column("delivery_city", sa.String(), nullable=True),
        sa.Column("delivery_state", sa.String(), nullable=True),
        sa.Column("delivery_postal_code", sa.String(), nullable=True),
        sa.Column("cubic_feet", sa.Float(), nullable=True),
        sa.Column("actual_cuft_loaded", sa.Float(), nullable=True),
        sa.Column("total_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("rate_per_cuft", sa.Numeric(10, 4), nullable=True),
        sa.Column("balance_due", sa.Numeric(12, 2), nullable=True),
        sa.Column("posting_type", sa.String(), nullable=True),
        sa.Column("posting_status", sa.String(), nullable=True),
        sa.Column("is_marketplace_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("assigned_carrier_id", sa.String(), nullable=True),
        sa.Column("load_status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("pickup_date", sa.Date(), nullable=True),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_freight_load_owner_id", "freight_load", ["owner_id"])
    op.create_index("ix_freight_load_company_id", "freight_load", ["company_id"])
    op.create_index("ix_freight_load_pickup_state", "freight_load", ["pickup_state"])
    op.create_index("ix_freight_load_delivery_state", "freight_load", ["delivery_state"])
    op.create_index("ix_freight_load_posting_status", "freight_load", ["posting_status"])
    op.create_index("ix_freight_load_assigned_carrier_id", "freight_load", ["assigned_carrier_id"])

    op.create_table(
        "trip",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("company_id", sa.String(), sa.ForeignKey("company.id"), nullable=True),
        sa.Column("driver_id", sa.String(), sa.ForeignKey("driver.id"), nullable=True),
        sa.Column("trailer_id", sa.String(), sa.ForeignKey("trailer.id"), nullable=True),
        sa.Column("trip_number", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="planned"),
        sa.Column("origin_city", sa.String(), nullable=True),
        sa.Column("origin_state", sa.String(), nullable=True),
        sa.Column("origin_postal_code", sa.String(), nullable=True),
        sa.Column("destination_city", sa.String(), nullable=True),
        sa.Column("destination_state", sa.String(), nullable=True),
        sa.Column("destination_postal_code", sa.String(), nullable=True),
        sa.Column("remaining_capacity_cuft", sa.Float(), nullable=True),
        sa.Column("return_route_preference", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_trip_owner_id", "trip", ["owner_id"])
    op.create_index("ix_trip_company_id", "trip", ["company_id"])
    op.create_index("ix_trip_driver_id", "trip", ["driver_id"])

    op.create_table(
        "trip_load",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("trip_id", sa.String(), sa.ForeignKey("trip.id"), nullable=False),
        sa.Column("load_id", sa.String(), sa.ForeignKey("freight_load.id"), nullable=False),
        sa.Column("sequence_index", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("trip_id", "load_id", name="uq_trip_load_trip_id_load_id"),
    )
    op.create_index("ix_trip_load_trip_id", "trip_load", ["trip_id"])
    op.create_index("ix_trip_load_load_id", "trip_load", ["load_id"])

    op.create_table(
        "company_matching_settings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("company_id", sa.String(), sa.ForeignKey("company.id"), nullable=False, unique=True),
        sa.Column("min_profit_per_mile", sa.Float(), nullable=True),
        sa.Column("max_deadhead_miles", sa.Float(), nullable=True),
        sa.Column("min_match_score", sa.Float(), nullable=True),
        sa.Column("preferred_return_states", sa.JSON(), nullable=True),
        sa.Column("excluded_states", sa.JSON(), nullable=True),
        sa.Column("min_capacity_utilization_percent", sa.Float(), nullable=True),
        sa.Column("max_capacity_utilization_percent", sa.Float(), nullable=True),
        sa.Column("notification_preference", sa.String(), nullable=False, server_default="push_and_dashboard"),
        *_timestamps(),
    )
    op.create_index("ix_company_matching_settings_owner_id", "company_matching_settings", ["owner_id"])

    op.create_table(
        "load_suggestion",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("company_id", sa.String(), sa.ForeignKey("company.id"), nullable=True),
        sa.Column("trip_id", sa.String(), sa.ForeignKey("trip.id"), nullable=False),
        sa.Column("driver_id", sa.String(), sa.ForeignKey("driver.id"), nullable=True),
        sa.Column("load_id", sa.String(), sa.ForeignKey("freight_load.id"), nullable=False),
        sa.Column("suggestion_type", sa.String(), nullable=False),
        sa.Column("distance_to_pickup_miles", sa.Float(), nullable=False),
        sa.Column("load_miles", sa.Float(), nullable=True),
        sa.Column("total_miles", sa.Float(), nullable=True),
        sa.Column("revenue_estimate", sa.Float(), nullable=True),
        sa.Column("driver_cost_estimate", sa.Float(), nullable=True),
        sa.Column("fuel_cost_estimate", sa.Float(), nullable=True),
        sa.Column("profit_estimate", sa.Float(), nullable=False),
        sa.Column("profit_per_mile", sa.Float(), nullable=False),
        sa.Column("capacity_fit_percent", sa.Float(), nullable=False),
        sa.Column("match_score", sa.Float(), nullable=False),
        sa.Column("score_breakdown", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        *_timestamps(),
        sa.Column("viewed_at", sa.DateTime(), nullable=True),
        sa.Column("actioned_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("trip_id", "load_id", name="uq_load_suggestion_trip_id_load_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'viewed', 'interested', 'dismissed', 'claimed')",
            name="ck_load_suggestion_status",
        ),
    )
    op.create_index("ix_load_suggestion_owner_id", "load_suggestion", ["owner_id"])
    op.create_index("ix_load_suggestion_company_id", "load_suggestion", ["company_id"])
    op.create_index("ix_load_suggestion_trip_id", "load_suggestion", ["trip_id"])
    op.create_index("ix_load_suggestion_driver_id", "load_suggestion", ["driver_id"])
    op.create_index("ix_load_suggestion_load_id", "load_suggestion", ["load_id"])
    op.create_index("ix_load_suggestion_match_score", "load_suggestion", ["match_score"])
    op.create_index("ix_load_suggestion_owner_status", "load_suggestion", ["owner_id", "status"])


def downgrade() -> None:
    op.drop_table("load_suggestion")
    op.drop_table("company_matching_settings")
    op.drop_table("trip_load")
    op.drop_table("trip")
    op.drop_table("freight_load")
    op.drop_table("trailer")
    op.drop_table("driver")
    op.drop_table("company")
