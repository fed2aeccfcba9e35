# tests/test_send_batch.py
from __future__ import annotations

import asyncio
import json
import threading

import httpx
import pytest
from sqlalchemy import select

from flatpay.clients.messaging import InvoiceMessage, MessagingClient, normalize_phone
from flatpay.domain.fanout import settle_all
from flatpay.db import SessionLocal
from flatpay.errors import ConflictError, ExternalServiceError, InvalidStateError, ValidationError
from flatpay.models import Invoice
from flatpay.services.batch_state_machine import finalize_batch, get_batch
from flatpay.services.invoice_generator import generate_invoices
from flatpay.services.invoice_pdf import render_batch_pdfs
from flatpay.services.notifications import send_batch
from flatpay.services.tenancy import SocietyScope

from conftest import JAN_END, JAN_START


def _client(handler):
    return MessagingClient(
        webhook_url="https://hooks.example.test/track",
        api_key="test-key",
        event_name="InvoiceSent",
        transport=httpx.MockTransport(handler),
    )


def _ready(w, storage, *, render=True):
    out = generate_invoices(w.scope, society_id=w.society.id, billing_period_start=JAN_START, billing_period_end=JAN_END)
    finalize_batch(w.scope, out.batch_id)
    if render:
        render_batch_pdfs(w.scope, out.batch_id, storage=storage)
    return out.batch_id


def _invoices(db, batch_id):
    return db.scalars(select(Invoice).where(Invoice.invoice_batch_id == batch_id).order_by(Invoice.id)).all()


def test_normalize_phone():
    assert normalize_phone("98765 43210") == "+919876543210"
    assert normalize_phone("098765-43210") == "+919876543210"
    assert normalize_phone("+1 (415) 555-0100") == "+14155550100"
    assert normalize_phone("0044 20 7946 0958") == "+442079460958"
    assert normalize_phone("12345", default_country_code="+44") == "+4412345"
    assert normalize_phone("") is None
    assert normalize_phone("n/a") is None
    assert normalize_phone(None) is None


def test_message_payload_shape():
    msg = InvoiceMessage(
        phone_number="+919876543210",
        name="Asha Rao",
        invoice_number="INV-1-202501-0001",
        amount=500.0,
        due_date="16/01/2025",
        invoice_url="http://x/1.pdf",
    )
    assert msg.payload(event="InvoiceSent") == {
        "phoneNumber": "+919876543210",
        "event": "InvoiceSent",
        "traits": {
            "name": "Asha Rao",
            "invoiceNumber": "INV-1-202501-0001",
            "amount": 500.0,
            "dueDate": "16/01/2025",
            "invoiceUrl": "http://x/1.pdf",
        },
    }


def test_settle_all_keeps_every_outcome():
    async def ok():
        return 1

    async def boom():
        raise RuntimeError("down")

    out = asyncio.run(settle_all({"a": ok, "b": boom, "c": ok}, max_concurrency=2))
    assert [(s.key, s.ok) for s in out] == [("a", True), ("b", False), ("c", True)]
    assert out[1].error == "RuntimeError: down"


def test_send_all_delivered_moves_batch_to_sent(db, world, storage):
    batch_id = _ready(world, storage)
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Api-Key"] == "test-key"
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    out = send_batch(world.scope, batch_id, client=_client(handler))

    assert out["messages_triggered"] == 2
    assert out["trigger_failures"] == 0
    assert out["total_invoices"] == 2
    assert sorted(p["phoneNumber"] for p in seen) == ["+919123456789", "+919876543210"]
    assert all(p["event"] == "InvoiceSent" and p["traits"]["invoiceUrl"] for p in seen)

    assert get_batch(world.scope, batch_id).status == "Sent"
    assert {i.status for i in _invoices(db, batch_id)} == {"sent"}


def test_overlapping_send_does_not_message_twice(db, world, storage):
    batch_id = _ready(world, storage)
    calls = []
    second: dict = {}

    def send_again():
        other = SessionLocal()
        try:
            scope = SocietyScope(db=other, society_id=world.society.id, profile_id="admin-1")
            send_batch(scope, batch_id, client=_client(lambda r: httpx.Response(200)))
        except Exception as e:
            second["error"] = e
        finally:
            other.close()

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content)["phoneNumber"])
        if len(calls) == 1:
            t = threading.Thread(target=send_again)
            t.start()
            t.join()
        return httpx.Response(200)

    out = send_batch(world.scope, batch_id, client=_client(handler))

    assert type(second["error"]) is ConflictError
    assert len(calls) == 2
    assert out["messages_triggered"] == 2
    assert get_batch(world.scope, batch_id).status == "Sent"
    assert {i.status for i in _invoices(db, batch_id)} == {"sent"}


def test_partial_failure_keeps_failed_invoice_pending(db, world, storage):
    batch_id = _ready(world, storage)
    bad_phone = "+919123456789"

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["phoneNumber"] == bad_phone:
            return httpx.Response(500, json={"error": "provider down"})
        return httpx.Response(202)

    out = send_batch(world.scope, batch_id, client=_client(handler))

    assert out["messages_triggered"] == 1
    assert out["trigger_failures"] == 1
    invs = _invoices(db, batch_id)
    assert out["failures"][0]["invoice_id"] == invs[1].id
    assert [i.status for i in invs] == ["sent", "pending"]
    assert get_batch(world.scope, batch_id).status == "Sent"


def test_every_delivery_failing_leaves_batch_pending(db, world, storage):
    batch_id = _ready(world, storage)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    out = send_batch(world.scope, batch_id, client=_client(handler))

    assert out["messages_triggered"] == 0
    assert out["trigger_failures"] == 2
    assert get_batch(world.scope, batch_id).status == "Pending"
    assert {i.status for i in _invoices(db, batch_id)} == {"pending"}


def test_missing_phone_or_pdf_is_reported_not_sent(db, world, storage):
    world.residents[0].phone_number = None
    db.commit()
    batch_id = _ready(world, storage, render=False)
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    out = send_batch(world.scope, batch_id, client=_client(handler))

    assert calls == []
    assert out["messages_triggered"] == 0
    reasons = sorted(f["reason"] for f in out["failures"])
    assert reasons == ["invoice has no PDF URL", "resident has no phone number"]


def test_send_requires_pending_batch(db, world, storage):
    out = generate_invoices(world.scope, society_id=world.society.id, billing_period_start=JAN_START, billing_period_end=JAN_END)
    with pytest.raises(InvalidStateError):
        send_batch(world.scope, out.batch_id, client=_client(lambda r: httpx.Response(200)))


def test_send_without_webhook_config_fails(db, world, storage):
    batch_id = _ready(world, storage)
    client = MessagingClient(webhook_url="", api_key="")
    with pytest.raises(ExternalServiceError):
        send_batch(world.scope, batch_id, client=client)
    assert get_batch(world.scope, batch_id).status == "Pending"


def test_sent_batch_has_nothing_left_to_send(db, world, storage):
    batch_id = _ready(world, storage)
    client = _client(lambda r: httpx.Response(200))
    send_batch(world.scope, batch_id, client=client)

    with pytest.raises(InvalidStateError):
        send_batch(world.scope, batch_id, client=client)


def test_pending_batch_without_pending_invoices_is_validation_error(db, world, storage):
    batch_id = _ready(world, storage)
    world.scope.db.execute(
        Invoice.__table__.update().where(Invoice.invoice_batch_id == batch_id).values(status="paid")
    )
    db.commit()
    with pytest.raises(ValidationError):
        send_batch(world.scope, batch_id, client=_client(lambda r: httpx.Response(200)))
