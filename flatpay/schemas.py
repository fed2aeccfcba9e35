# flatpay/schemas.py
from __future__ import annotations

import datetime as _dt
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# -------------------- Society / directory --------------------

class SocietyOut(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_ifsc_code: Optional[str] = None
    due_date_days: int
    late_fee_amount: Optional[float] = None
    late_fee_grace_period_days: Optional[int] = None
    timezone: str
    logo_url: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class SocietyUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_ifsc_code: Optional[str] = None
    due_date_days: Optional[int] = Field(default=None, ge=0, le=365)
    late_fee_amount: Optional[Decimal] = Field(default=None, ge=0)
    late_fee_grace_period_days: Optional[int] = Field(default=None, ge=0)
    timezone: Optional[str] = None
    logo_url: Optional[str] = None


class BlockIn(BaseModel):
    block_name: str = Field(min_length=1, max_length=80)


class BlockOut(BaseModel):
    id: int
    block_name: str
    model_config = ConfigDict(from_attributes=True)


class UnitCreate(BaseModel):
    unit_number: str = Field(min_length=1, max_length=40)
    block_id: Optional[int] = None
    size_sqft: Optional[Decimal] = Field(default=None, gt=0)
    occupancy_status: str = "occupied"


class UnitUpdate(BaseModel):
    unit_number: Optional[str] = Field(default=None, min_length=1, max_length=40)
    block_id: Optional[int] = None
    size_sqft: Optional[Decimal] = Field(default=None, gt=0)
    occupancy_status: Optional[str] = None


class UnitOut(BaseModel):
    id: int
    unit_number: str
    block_id: Optional[int] = None
    size_sqft: Optional[float] = None
    occupancy_status: str
    model_config = ConfigDict(from_attributes=True)


class ResidentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=160)
    primary_unit_id: Optional[int] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True
    move_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    whatsapp_opt_in: bool = True


class ResidentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=160)
    primary_unit_id: Optional[int] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None
    move_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    whatsapp_opt_in: Optional[bool] = None


class ResidentOut(BaseModel):
    id: int
    name: str
    primary_unit_id: Optional[int] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    is_active: bool
    move_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    whatsapp_opt_in: bool
    model_config = ConfigDict(from_attributes=True)


class ChargeCreate(BaseModel):
    charge_name: str = Field(min_length=1, max_length=120)
    calculation_type: str
    amount_or_rate: Decimal = Field(ge=0)
    frequency: str = "monthly"
    is_active: bool = True


class ChargeUpdate(BaseModel):
    charge_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    calculation_type: Optional[str] = None
    amount_or_rate: Optional[Decimal] = Field(default=None, ge=0)
    frequency: Optional[str] = None
    is_active: Optional[bool] = None


class ChargeOut(BaseModel):
    id: int
    charge_name: str
    calculation_type: str
    amount_or_rate: float
    frequency: str
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class ExpenseCreate(BaseModel):
    expense_date: date
    amount: Decimal = Field(gt=0)
    category: str = "general"
    description: Optional[str] = None
    allocation_rule: str = "dont_allocate"


class ExpenseUpdate(BaseModel):
    expense_date: Optional[date] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    category: Optional[str] = None
    description: Optional[str] = None
    allocation_rule: Optional[str] = None


class ExpenseOut(BaseModel):
    id: int
    expense_date: date
    amount: float
    category: str
    description: Optional[str] = None
    allocation_rule: str
    is_allocated_to_bill: bool
    allocated_batch_id: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


# -------------------- Billing --------------------

class GenerateInvoicesIn(BaseModel):
    society_id: int
    billing_period_start: date
    billing_period_end: date


class SkippedResident(BaseModel):
    resident_id: int
    reason: str


class GenerationOut(BaseModel):
    batch_id: int
    invoice_count: int
    total_amount: float
    due_date: Optional[date] = None
    skipped: list[SkippedResident] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class InvoiceItemOut(BaseModel):
    id: int
    description: str
    amount: float
    related_charge_id: Optional[int] = None
    related_expense_id: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class InvoiceOut(BaseModel):
    id: int
    invoice_batch_id: Optional[int] = None
    resident_id: int
    unit_id: int
    invoice_number: str
    billing_period_start: date
    billing_period_end: date
    generation_date: date
    due_date: date
    total_amount: float
    amount_paid: float
    balance_due: float
    status: str
    invoice_pdf_url: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class InvoiceDetailOut(InvoiceOut):
    items: list[InvoiceItemOut] = Field(default_factory=list)


class BatchOut(BaseModel):
    id: int
    billing_period_start: date
    billing_period_end: date
    status: str
    total_invoice_count: int
    total_amount: float
    generated_by_profile_id: Optional[str] = None
    generated_at: datetime
    finalized_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class BatchDetailOut(BatchOut):
    invoices: list[InvoiceOut] = Field(default_factory=list)


class InvoiceFailure(BaseModel):
    invoice_id: int
    reason: str


class RenderedPdf(BaseModel):
    invoice_id: int
    pdf_url: str


class PdfResults(BaseModel):
    batch_id: int
    rendered: list[RenderedPdf] = Field(default_factory=list)
    failures: list[InvoiceFailure] = Field(default_factory=list)


class FinalizeOut(BaseModel):
    batch_id: int
    status: str
    updated_invoices: int
    pdf_results: Optional[PdfResults] = None


class CancelOut(BaseModel):
    batch_id: int
    deleted_invoices: int


class SendBatchOut(BaseModel):
    batch_id: int
    messages_triggered: int
    trigger_failures: int
    total_invoices: int
    failures: list[InvoiceFailure] = Field(default_factory=list)


class InvoicePdfOut(BaseModel):
    invoice_id: int
    pdf_url: str
    path: str


# -------------------- Payments --------------------

class PaymentIn(BaseModel):
    amount: Decimal
    payment_date: date
    payment_method: str
    reference_number: Optional[str] = Field(default=None, max_length=80)
    notes: Optional[str] = None


class PaymentResultOut(BaseModel):
    payment_id: int
    invoice_id: int
    new_balance_due: float
    status: str


class PaymentOut(BaseModel):
    id: int
    invoice_id: int
    payment_date: date
    amount: float
    payment_method: str
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    recorded_by_profile_id: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class MarkOverdueIn(BaseModel):
    as_of: Optional[date] = None


class MarkOverdueOut(BaseModel):
    as_of: date
    marked_overdue: int


# -------------------- Reports --------------------

class LedgerEntryOut(BaseModel):
    date: _dt.date
    description: str
    charge: Optional[float] = None
    payment: Optional[float] = None
    running_balance: float
    kind: str
    ref_id: int
    model_config = ConfigDict(from_attributes=True)


class LedgerOut(BaseModel):
    resident_id: int
    resident_name: str
    start: date
    end: date
    opening_balance: float
    closing_balance: float
    total_charges: float
    total_payments: float
    entries: list[LedgerEntryOut] = Field(default_factory=list)


class ReceiptsPaymentsOut(BaseModel):
    start: date
    end: date
    total_receipts: float
    total_payments: float
    net: float
    receipts_by_method: dict[str, float] = Field(default_factory=dict)
    payments_by_category: dict[str, float] = Field(default_factory=dict)


class DashboardOut(BaseModel):
    active_residents: int
    total_units: int
    occupied_units: int
    pending_invoices: int
    paid_invoices: int
    outstanding_balance: float

