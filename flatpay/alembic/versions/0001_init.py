"""init schema

Revision ID: 0001_init
Revises:
Create Date: 2025-01-06
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _money(name: str, nullable: bool = False, **kw):
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable, **kw)


def upgrade():
    op.create_table(
        "societies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("bank_account_name", sa.String(length=160), nullable=True),
        sa.Column("bank_account_number", sa.String(length=40), nullable=True),
        sa.Column("bank_ifsc_code", sa.String(length=20), nullable=True),
        sa.Column("due_date_days", sa.Integer(), nullable=False, server_default="15"),
        _money("late_fee_amount", nullable=True),
        sa.Column("late_fee_grace_period_days", sa.Integer(), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="Asia/Kolkata"),
        sa.Column("logo_url", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=True, index=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="admin"),
        sa.Column("phone_number", sa.String(length=30), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("actor_profile_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=False),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "society_blocks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("block_name", sa.String(length=80), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("society_id", "block_name", name="uq_blocks_society_name"),
    )

    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("block_id", sa.Integer(), sa.ForeignKey("society_blocks.id"), nullable=True),
        sa.Column("unit_number", sa.String(length=40), nullable=False),
        sa.Column("size_sqft", sa.Numeric(10, 2), nullable=True),
        sa.Column("occupancy_status", sa.String(length=20), nullable=False, server_default="occupied"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("society_id", "unit_number", name="uq_units_society_number"),
    )

    op.create_table(
        "residents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("primary_unit_id", sa.Integer(), sa.ForeignKey("units.id"), nullable=True, index=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("phone_number", sa.String(length=30), nullable=True),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("move_in_date", sa.Date(), nullable=True),
        sa.Column("move_out_date", sa.Date(), nullable=True),
        sa.Column("whatsapp_opt_in", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "recurring_charges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("charge_name", sa.String(length=120), nullable=False),
        sa.Column("calculation_type", sa.String(length=20), nullable=False),
        sa.Column("amount_or_rate", sa.Numeric(12, 4), nullable=False),
        sa.Column("frequency", sa.String(length=20), nullable=False, server_default="monthly"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "invoice_batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("billing_period_start", sa.Date(), nullable=False),
        sa.Column("billing_period_end", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Draft", index=True),
        sa.Column("total_invoice_count", sa.Integer(), nullable=False, server_default="0"),
        _money("total_amount", server_default="0"),
        sa.Column("generated_by_profile_id", sa.String(length=64), nullable=True),
        sa.Column("generated_at", sa.DateTime(), nullable=False),
        sa.Column("finalized_at", sa.DateTime(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            "society_id", "billing_period_start", "billing_period_end", name="uq_invoice_batches_society_period"
        ),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=80), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        _money("amount"),
        sa.Column("allocation_rule", sa.String(length=30), nullable=False, server_default="dont_allocate"),
        sa.Column("is_allocated_to_bill", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "allocated_batch_id",
            sa.Integer(),
            sa.ForeignKey("invoice_batches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("entered_by_profile_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("invoice_batch_id", sa.Integer(), sa.ForeignKey("invoice_batches.id"), nullable=True, index=True),
        sa.Column("resident_id", sa.Integer(), sa.ForeignKey("residents.id"), nullable=False),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id"), nullable=False),
        sa.Column("invoice_number", sa.String(length=60), nullable=False),
        sa.Column("billing_period_start", sa.Date(), nullable=False),
        sa.Column("billing_period_end", sa.Date(), nullable=False),
        sa.Column("generation_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        _money("total_amount"),
        _money("amount_paid", server_default="0"),
        _money("balance_due"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft", index=True),
        sa.Column("invoice_pdf_url", sa.Text(), nullable=True),
        sa.Column("invoice_pdf_path", sa.String(length=300), nullable=True),
        sa.Column("generated_by_profile_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("society_id", "invoice_number", name="uq_invoices_society_number"),
    )
    op.create_index("ix_invoices_society_resident", "invoices", ["society_id", "resident_id"])

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("description", sa.String(length=255), nullable=False),
        _money("amount"),
        sa.Column(
            "related_charge_id", sa.Integer(), sa.ForeignKey("recurring_charges.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("related_expense_id", sa.Integer(), sa.ForeignKey("expenses.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), sa.ForeignKey("societies.id"), nullable=False, index=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id"), nullable=False, index=True),
        sa.Column("payment_date", sa.Date(), nullable=False),
        _money("amount"),
        sa.Column("payment_method", sa.String(length=30), nullable=False),
        sa.Column("reference_number", sa.String(length=80), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by_profile_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("payments")
    op.drop_table("invoice_items")
    op.drop_index("ix_invoices_society_resident", table_name="invoices")
    op.drop_table("invoices")
    op.drop_table("expenses")
    op.drop_table("invoice_batches")
    op.drop_table("recurring_charges")
    op.drop_table("residents")
    op.drop_table("units")
    op.drop_table("society_blocks")
    op.drop_table("audit_events")
    op.drop_table("profiles")
    op.drop_table("societies")
