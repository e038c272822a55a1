"""Create subscription plans, user subscriptions and payment history."""
from __future__ import annotations

import uuid

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_create_plans_and_subscriptions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "plans",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'NGN'")),
        sa.Column(
            "billing_cycle", sa.String(16), nullable=False, server_default=sa.text("'monthly'")
        ),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("quality", sa.String(16), nullable=True),
        sa.Column("resolution", sa.String(16), nullable=True),
        sa.Column("screens", sa.Integer(), nullable=True),
        sa.Column("devices", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_plans_active_name",
        "plans",
        ["name"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    plan_table = sa.table(
        "plans",
        sa.column("id", sa.Uuid()),
        sa.column("name", sa.String()),
        sa.column("amount", sa.Numeric(10, 2)),
        sa.column("currency", sa.String()),
        sa.column("billing_cycle", sa.String()),
        sa.column("features", sa.JSON()),
        sa.column("quality", sa.String()),
        sa.column("resolution", sa.String()),
        sa.column("screens", sa.Integer()),
        sa.column("devices", sa.String()),
        sa.column("is_active", sa.Boolean()),
    )

    op.bulk_insert(
        plan_table,
        [
            {
                "id": uuid.uuid4(),
                "name": "Basic",
                "amount": 500,
                "currency": "NGN",
                "billing_cycle": "monthly",
                "features": ["Watch on 1 screen", "Good video quality", "720p resolution"],
                "quality": "Good",
                "resolution": "720p",
                "screens": 1,
                "devices": "Phone + Tablet",
                "is_active": True,
            },
            {
                "id": uuid.uuid4(),
                "name": "Standard",
                "amount": 600,
                "currency": "NGN",
                "billing_cycle": "monthly",
                "features": [
                    "Watch on 2 screens",
                    "Better video quality",
                    "1080p resolution",
                    "Download on 2 devices",
                ],
                "quality": "Better",
                "resolution": "1080p",
                "screens": 2,
                "devices": "Phone + Tablet + TV",
                "is_active": True,
            },
            {
                "id": uuid.uuid4(),
                "name": "Premium",
                "amount": 700,
                "currency": "USD",
                "billing_cycle": "monthly",
                "features": [
                    "Watch on 4 screens",
                    "Best video quality",
                    "4K+HDR resolution",
                    "Download on 4 devices",
                    "Dolby Atmos",
                ],
                "quality": "Best",
                "resolution": "4K+HDR",
                "screens": 4,
                "devices": "All Devices",
                "is_active": True,
            },
        ],
    )

    op.create_table(
        "user_subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column("plan_name", sa.String(32), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'NGN'")),
        sa.Column(
            "billing_cycle", sa.String(16), nullable=False, server_default=sa.text("'monthly'")
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "payment_method", sa.String(32), nullable=False, server_default=sa.text("'paystack'")
        ),
        sa.Column("payment_reference", sa.String(128), nullable=True),
        sa.Column("access_code", sa.String(128), nullable=True),
        sa.Column("authorization_url", sa.String(512), nullable=True),
        sa.Column("authorization_code", sa.String(128), nullable=True),
        sa.Column("card_type", sa.String(32), nullable=True),
        sa.Column("last4", sa.String(4), nullable=True),
        sa.Column("exp_month", sa.String(2), nullable=True),
        sa.Column("exp_year", sa.String(4), nullable=True),
        sa.Column("bank", sa.String(128), nullable=True),
        sa.Column("account_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_user_subscriptions_one_active",
        "user_subscriptions",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index("ix_user_subscriptions_user_status", "user_subscriptions", ["user_id", "status"])
    op.create_index("ix_user_subscriptions_end_date", "user_subscriptions", ["end_date"])
    op.create_index(
        "ix_user_subscriptions_payment_reference", "user_subscriptions", ["payment_reference"]
    )

    op.create_table(
        "subscription_payments",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "subscription_id",
            sa.Uuid(),
            sa.ForeignKey("user_subscriptions.id"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("reference", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "subscription_id", "reference", name="uq_payment_subscription_reference"
        ),
    )
    op.create_index(
        "ix_subscription_payments_subscription_id", "subscription_payments", ["subscription_id"]
    )
    op.create_index("ix_subscription_payments_reference", "subscription_payments", ["reference"])


def downgrade() -> None:
    op.drop_table("subscription_payments")
    op.drop_table("user_subscriptions")
    op.drop_table("plans")
