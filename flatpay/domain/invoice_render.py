# flatpay/domain/invoice_render.py
from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

BRAND = {
    "primary": colors.HexColor("#1f4e79"),
    "muted": colors.HexColor("#5e6d80"),
    "border": colors.HexColor("#d0d7de"),
    "light_bg": colors.HexColor("#f6f8fa"),
}


@dataclass(frozen=True)
class InvoiceDocument:
    """Everything printed on one invoice, already resolved from the database."""

    society_name: str
    invoice_number: str
    generation_date: date
    due_date: date
    period_start: date
    period_end: date
    resident_name: str
    unit_label: str
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    items: list[tuple[str, Decimal]] = field(default_factory=list)
    society_address: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_ifsc_code: Optional[str] = None
    currency_label: str = "Rs."


def _fmt_money(v: Decimal, label: str) -> str:
    return f"{label} {Decimal(v):,.2f}"


def _fmt_date(d: date) -> str:
    return d.strftime("%d %b %Y")


def _p(text: Optional[str], style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text or ""), style)


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    body = ParagraphStyle("Body", parent=base["Normal"], fontSize=9, leading=12)
    return {
        "society": ParagraphStyle("Society", parent=base["Title"], fontSize=16, alignment=0, textColor=BRAND["primary"]),
        "muted": ParagraphStyle("Muted", parent=body, textColor=BRAND["muted"]),
        "title": ParagraphStyle("InvoiceTitle", parent=base["Heading2"], alignment=TA_RIGHT, textColor=BRAND["primary"]),
        "head": ParagraphStyle("Head", parent=body, fontName="Helvetica-Bold", textColor=colors.white),
        "head_right": ParagraphStyle(
            "HeadRight", parent=body, fontName="Helvetica-Bold", textColor=colors.white, alignment=TA_RIGHT
        ),
        "section": ParagraphStyle("Section", parent=body, fontName="Helvetica-Bold", spaceBefore=6, spaceAfter=2),
        "body": body,
        "right": ParagraphStyle("Right", parent=body, alignment=TA_RIGHT),
        "total": ParagraphStyle("Total", parent=body, fontName="Helvetica-Bold", alignment=TA_RIGHT, fontSize=10),
    }


def _header(doc: InvoiceDocument, s: dict[str, ParagraphStyle]) -> list:
    left = [_p(doc.society_name, s["society"])]
    if doc.society_address:
        left.append(_p(doc.society_address, s["muted"]))
    right = [
        Paragraph("INVOICE", s["title"]),
        _p(f"No. {doc.invoice_number}", s["right"]),
    ]
    t = Table([[left, right]], colWidths=[104 * mm, 70 * mm])
    t.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    return [t, HRFlowable(width="100%", thickness=1, color=BRAND["primary"], spaceBefore=4, spaceAfter=8)]


def _meta(doc: InvoiceDocument, s: dict[str, ParagraphStyle]) -> list:
    bill_to = [Paragraph("Bill To", s["section"]), _p(doc.resident_name, s["body"]), _p(doc.unit_label, s["body"])]
    if doc.phone_number:
        bill_to.append(_p(f"Phone: {doc.phone_number}", s["muted"]))
    if doc.email:
        bill_to.append(_p(f"Email: {doc.email}", s["muted"]))

    dates = [
        ["Invoice Date", _fmt_date(doc.generation_date)],
        ["Due Date", _fmt_date(doc.due_date)],
        ["Billing Period", f"{_fmt_date(doc.period_start)} - {_fmt_date(doc.period_end)}"],
    ]
    dates_t = Table([[_p(k, s["muted"]), _p(v, s["right"])] for k, v in dates], colWidths=[28 * mm, 52 * mm])

    t = Table([[bill_to, dates_t]], colWidths=[94 * mm, 80 * mm])
    t.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    return [t]


def _items(doc: InvoiceDocument, s: dict[str, ParagraphStyle]) -> list:
    rows = [[Paragraph("Description", s["head"]), Paragraph("Amount", s["head_right"])]]
    for desc, amount in doc.items:
        rows.append([_p(desc, s["body"]), _p(_fmt_money(amount, doc.currency_label), s["right"])])

    # repeatRows keeps the header on every page when the item list spills over
    t = Table(rows, colWidths=[130 * mm, 44 * mm], repeatRows=1)
    cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), BRAND["primary"]),
        ("LINEBELOW", (0, 0), (-1, -1), 0.25, BRAND["border"]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    for i in range(2, len(rows), 2):
        cmds.append(("BACKGROUND", (0, i), (-1, i), BRAND["light_bg"]))
    t.setStyle(TableStyle(cmds))
    return [t]


def _totals(doc: InvoiceDocument, s: dict[str, ParagraphStyle]) -> list:
    cur = doc.currency_label
    rows = [
        [_p("Total", s["right"]), _p(_fmt_money(doc.total_amount, cur), s["right"])],
        [_p("Amount Paid", s["right"]), _p(_fmt_money(doc.amount_paid, cur), s["right"])],
        [_p("Balance Due", s["total"]), _p(_fmt_money(doc.balance_due, cur), s["total"])],
    ]
    t = Table(rows, colWidths=[130 * mm, 44 * mm])
    t.setStyle(TableStyle([("LINEABOVE", (0, 2), (-1, 2), 1, BRAND["primary"])]))
    return [t]


def _payment_instructions(doc: InvoiceDocument, s: dict[str, ParagraphStyle]) -> list:
    lines = []
    if doc.bank_account_name:
        lines.append(f"Account Name: {doc.bank_account_name}")
    if doc.bank_account_number:
        lines.append(f"Account Number: {doc.bank_account_number}")
    if doc.bank_ifsc_code:
        lines.append(f"IFSC: {doc.bank_ifsc_code}")
    if not lines:
        return []
    out: list = [
        HRFlowable(width="100%", thickness=0.5, color=BRAND["border"], spaceBefore=10, spaceAfter=4),
        Paragraph("Payment Instructions", s["section"]),
    ]
    out.extend(_p(line, s["body"]) for line in lines)
    out.append(_p(f"Please quote invoice {doc.invoice_number} with your payment.", s["muted"]))
    return out


def render_invoice_pdf(doc: InvoiceDocument) -> bytes:
    """A4 invoice as PDF bytes. Long item lists flow onto further pages."""
    buf = io.BytesIO()
    pdf = SimpleDocTemplate(
        buf,
        pagesize=A4,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        title=f"Invoice {doc.invoice_number}",
        author=doc.society_name,
    )
    s = _styles()

    story: list = []
    story.extend(_header(doc, s))
    story.extend(_meta(doc, s))
    story.append(Spacer(1, 10))
    story.extend(_items(doc, s))
    story.append(Spacer(1, 6))
    story.extend(_totals(doc, s))
    story.extend(_payment_instructions(doc, s))

    pdf.build(story)
    return buf.getvalue()
