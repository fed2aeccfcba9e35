# flatpay/models.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base

Money = Numeric(12, 2)

# -----------------------------
# Status vocabularies
# -----------------------------
BATCH_DRAFT = "Draft"
BATCH_PENDING = "Pending"
BATCH_SENT = "Sent"
BATCH_CANCELLED = "Cancelled"
BATCH_STATUSES = (BATCH_DRAFT, BATCH_PENDING, BATCH_SENT, BATCH_CANCELLED)

INVOICE_DRAFT = "draft"
INVOICE_PENDING = "pending"
INVOICE_SENT = "sent"
# claimed by a send in progress; becomes sent on delivery, pending otherwise
INVOICE_SENDING = "sending"
INVOICE_PARTIALLY_PAID = "partially_paid"
INVOICE_PAID = "paid"
INVOICE_OVERDUE = "overdue"
INVOICE_CANCELLED = "cancelled"
INVOICE_STATUSES = (
    INVOICE_DRAFT,
    INVOICE_PENDING,
    INVOICE_SENDING,
    INVOICE_SENT,
    INVOICE_PARTIALLY_PAID,
    INVOICE_PAID,
    INVOICE_OVERDUE,
    INVOICE_CANCELLED,
)
# statuses that count as "billed" (visible on the resident's ledger)
BILLED_INVOICE_STATUSES = (
    INVOICE_PENDING,
    INVOICE_SENDING,
    INVOICE_SENT,
    INVOICE_PARTIALLY_PAID,
    INVOICE_PAID,
    INVOICE_OVERDUE,
)
PAYABLE_INVOICE_STATUSES = (INVOICE_PENDING, INVOICE_SENDING, INVOICE_SENT, INVOICE_PARTIALLY_PAID, INVOICE_OVERDUE)

CALC_FIXED_PER_UNIT = "fixed_per_unit"
CALC_PER_SQFT = "per_sqft"
CALCULATION_TYPES = (CALC_FIXED_PER_UNIT, CALC_PER_SQFT)
CHARGE_FREQUENCIES = ("monthly", "quarterly", "yearly", "one_time")

ALLOCATE_NONE = "dont_allocate"
ALLOCATE_EQUAL_ALL = "allocate_equal_all"
ALLOCATION_RULES = (ALLOCATE_NONE, ALLOCATE_EQUAL_ALL)

PAYMENT_METHODS = ("Cash", "Cheque", "Bank Transfer", "UPI", "Other")
OCCUPANCY_STATUSES = ("vacant", "occupied")
PROFILE_ROLES = ("admin", "manager", "viewer")


# -----------------------------
# Tenancy: societies + profiles
# -----------------------------
class Society(Base):
    __tablename__ = "societies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    bank_account_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    bank_ifsc_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    due_date_days: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    late_fee_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    late_fee_grace_period_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Asia/Kolkata")
    logo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Profile(Base):
    """One row per authenticated user; id is the auth provider's subject."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    society_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="admin")
    phone_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)
    actor_profile_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Directory: blocks / units / residents
# -----------------------------
class Block(Base):
    __tablename__ = "society_blocks"
    __table_args__ = (UniqueConstraint("society_id", "block_name", name="uq_blocks_society_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)
    block_name: Mapped[str] = mapped_column(String(80), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("society_id", "unit_number", name="uq_units_society_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)
    block_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("society_blocks.id"), nullable=True)

    unit_number: Mapped[str] = mapped_column(String(40), nullable=False)
    size_sqft: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    occupancy_status: Mapped[str] = mapped_column(String(20), nullable=False, default="occupied")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    block: Mapped[Optional["Block"]] = relationship()


class Resident(Base):
    __tablename__ = "residents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)
    primary_unit_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("units.id"), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(160), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    move_in_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    move_out_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    whatsapp_opt_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    unit: Mapped[Optional["Unit"]] = relationship()


# -----------------------------
# Charges / expenses
# -----------------------------
class RecurringCharge(Base):
    __tablename__ = "recurring_charges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)

    charge_name: Mapped[str] = mapped_column(String(120), nullable=False)
    calculation_type: Mapped[str] = mapped_column(String(20), nullable=False)  # fixed_per_unit|per_sqft
    amount_or_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)

    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False, default="general")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    allocation_rule: Mapped[str] = mapped_column(String(30), nullable=False, default="dont_allocate")
    is_allocated_to_bill: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allocated_batch_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("invoice_batches.id", ondelete="SET NULL"), nullable=True
    )

    entered_by_profile_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Billing
# -----------------------------
class InvoiceBatch(Base):
    __tablename__ = "invoice_batches"
    __table_args__ = (
        UniqueConstraint(
            "society_id", "billing_period_start", "billing_period_end", name="uq_invoice_batches_society_period"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)

    billing_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    billing_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BATCH_DRAFT, index=True)

    total_invoice_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))

    generated_by_profile_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    invoices: Mapped[List["Invoice"]] = relationship(back_populates="batch", order_by="Invoice.id")


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("society_id", "invoice_number", name="uq_invoices_society_number"),
        Index("ix_invoices_society_resident", "society_id", "resident_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)
    invoice_batch_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("invoice_batches.id"), nullable=True, index=True
    )
    resident_id: Mapped[int] = mapped_column(Integer, ForeignKey("residents.id"), nullable=False)
    unit_id: Mapped[int] = mapped_column(Integer, ForeignKey("units.id"), nullable=False)

    invoice_number: Mapped[str] = mapped_column(String(60), nullable=False)
    billing_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    billing_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    generation_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    balance_due: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=INVOICE_DRAFT, index=True)

    invoice_pdf_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invoice_pdf_path: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    generated_by_profile_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    batch: Mapped[Optional["InvoiceBatch"]] = relationship(back_populates="invoices")
    items: Mapped[List["InvoiceItem"]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan", order_by="InvoiceItem.id"
    )
    resident: Mapped["Resident"] = relationship()
    unit: Mapped["Unit"] = relationship()


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), index=True, nullable=False
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    related_charge_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("recurring_charges.id", ondelete="SET NULL"), nullable=True
    )
    related_expense_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("expenses.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    invoice: Mapped["Invoice"] = relationship(back_populates="items")


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    society_id: Mapped[int] = mapped_column(Integer, ForeignKey("societies.id"), index=True, nullable=False)
    invoice_id: Mapped[int] = mapped_column(Integer, ForeignKey("invoices.id"), index=True, nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_number: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    recorded_by_profile_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    invoice: Mapped["Invoice"] = relationship()
