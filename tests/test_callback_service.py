import threading
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from models import Base, Invoice, InvoiceStatus, Payment, PaymentMethod, PaymentStatus, Tenant
from services.callback_service import (
    apply_stk_callback,
    handle_stk_callback,
    parse_stk_callback,
    transition_payment,
)
from services.exceptions import CallbackParseError
from services.payment_service import PaymentService
from tests.fakes import stk_callback_payload


@pytest.fixture
def processing_payment(db, fake_client, tenant, invoice):
    result = PaymentService(fake_client).initiate_stk_push(
        db, tenant.tenant_id, 1500, "254712345678", invoice_id=invoice.id
    )
    return result.payment


def _reload(db, payment_id):
    db.expire_all()
    return db.get(Payment, payment_id)


class TestParse:

    def test_success_metadata_by_key(self):
        callback = parse_stk_callback(stk_callback_payload())
        assert callback.succeeded
        assert callback.checkout_request_id == "ws_123"
        assert callback.receipt_number == "QGR7XXXX"
        assert callback.phone_number == "254712345678"
        assert callback.transaction_date == "20240115103000"
        assert callback.amount == 1500

    def test_failure_has_no_metadata(self):
        callback = parse_stk_callback(stk_callback_payload(result_code=1032))
        assert not callback.succeeded
        assert callback.result_desc == "Request cancelled by user"
        assert callback.metadata == {}
        assert callback.receipt_number is None

    def test_missing_metadata_keys_are_tolerated(self):
        payload = stk_callback_payload()
        payload["Body"]["stkCallback"]["CallbackMetadata"]["Item"] = [{"Name": "Amount", "Value": 1500}]
        callback = parse_stk_callback(payload)
        assert callback.receipt_number is None
        assert callback.phone_number is None

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            {},
            {"Body": {}},
            {"Body": {"stkCallback": {"ResultCode": 0}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "ws_123", "ResultCode": "not-a-number"}}},
        ],
    )
    def test_malformed_bodies(self, payload):
        with pytest.raises(CallbackParseError):
            parse_stk_callback(payload)


class TestApply:

    def test_success_completes_and_settles_invoice(self, db, processing_payment, invoice):
        outcome = apply_stk_callback(db, parse_stk_callback(stk_callback_payload()))

        assert outcome.applied
        assert outcome.invoice_settled
        payment = _reload(db, processing_payment.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.mpesa_receipt_number == "QGR7XXXX"
        assert "M-Pesa Receipt: QGR7XXXX" in payment.notes
        assert "Phone: 254712345678" in payment.notes
        assert "Date: 20240115103000" in payment.notes
        assert payment.notes.startswith("M-Pesa CheckoutRequestID: ws_123")
        assert db.get(type(invoice), invoice.id).status == InvoiceStatus.PAID

    def test_duplicate_delivery_is_a_noop(self, db, processing_payment):
        callback = parse_stk_callback(stk_callback_payload())
        first = apply_stk_callback(db, callback)
        notes_after_first = _reload(db, processing_payment.id).notes

        second = apply_stk_callback(db, callback)

        assert first.applied
        assert not second.applied
        payment = _reload(db, processing_payment.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.notes == notes_after_first
        assert db.query(Payment).count() == 1

    def test_failure_appends_reason(self, db, processing_payment, invoice):
        outcome = apply_stk_callback(db, parse_stk_callback(stk_callback_payload(result_code=1032)))

        assert outcome.applied
        assert not outcome.invoice_settled
        payment = _reload(db, processing_payment.id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.notes.endswith("Failed: Request cancelled by user")
        assert db.get(type(invoice), invoice.id).status == InvoiceStatus.PENDING

    def test_late_success_cannot_revive_failed_payment(self, db, processing_payment, invoice):
        apply_stk_callback(db, parse_stk_callback(stk_callback_payload(result_code=1032)))
        outcome = apply_stk_callback(db, parse_stk_callback(stk_callback_payload()))

        assert not outcome.applied
        assert _reload(db, processing_payment.id).status == PaymentStatus.FAILED
        assert db.get(type(invoice), invoice.id).status == InvoiceStatus.PENDING

    def test_unknown_token_changes_nothing(self, db, processing_payment):
        outcome = apply_stk_callback(db, parse_stk_callback(stk_callback_payload(checkout_request_id="ws_unknown")))

        assert not outcome.applied
        payment = _reload(db, processing_payment.id)
        assert payment.status == PaymentStatus.PROCESSING
        assert payment.notes == "M-Pesa CheckoutRequestID: ws_123"

    def test_token_must_match_exactly(self, db, processing_payment):
        outcome = apply_stk_callback(db, parse_stk_callback(stk_callback_payload(checkout_request_id="ws_12")))
        assert not outcome.applied
        assert _reload(db, processing_payment.id).status == PaymentStatus.PROCESSING

    def test_manual_payments_are_never_matched(self, db, tenant):
        manual = PaymentService.record_manual_payment(
            db, tenant.tenant_id, 1500, PaymentMethod.CASH, status=PaymentStatus.PROCESSING
        )
        outcome = apply_stk_callback(db, parse_stk_callback(stk_callback_payload()))
        assert not outcome.applied
        assert _reload(db, manual.id).status == PaymentStatus.PROCESSING

    def test_settlement_failure_keeps_payment_completed(self, db, processing_payment, invoice):
        with patch("services.callback_service.settle_invoice", return_value=False) as settle:
            outcome = apply_stk_callback(db, parse_stk_callback(stk_callback_payload()))

        settle.assert_called_once_with(db, invoice.id)
        assert outcome.applied
        assert not outcome.invoice_settled
        assert _reload(db, processing_payment.id).status == PaymentStatus.COMPLETED

    def test_amount_mismatch_is_logged(self, db, processing_payment, caplog):
        outcome = apply_stk_callback(db, parse_stk_callback(stk_callback_payload(amount=1400)))

        assert outcome.applied
        assert "M-Pesa confirmed 1400" in caplog.text
        assert _reload(db, processing_payment.id).status == PaymentStatus.COMPLETED

    def test_processing_is_not_a_target(self, db, processing_payment):
        with pytest.raises(ValueError):
            transition_payment(db, "ws_123", PaymentStatus.PROCESSING, "noop")


class TestHandle:

    def test_never_raises_on_garbage(self, db, processing_payment):
        assert handle_stk_callback(db, {"unexpected": True}) is None
        assert handle_stk_callback(db, "not a dict") is None
        assert _reload(db, processing_payment.id).status == PaymentStatus.PROCESSING

    def test_swallows_internal_errors(self, db, processing_payment):
        with patch("services.callback_service.apply_stk_callback", side_effect=RuntimeError("db down")):
            assert handle_stk_callback(db, stk_callback_payload()) is None

    def test_applies_valid_callback(self, db, processing_payment):
        outcome = handle_stk_callback(db, stk_callback_payload())
        assert outcome.applied
        assert outcome.payment.id == processing_payment.id


def test_concurrent_duplicate_delivery_applies_once(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with Session() as setup:
        tenant = Tenant(first_name="Jane", last_name="Wanjiku", email="jane@example.com")
        setup.add(tenant)
        setup.flush()
        invoice = Invoice(
            tenant_id=tenant.tenant_id,
            invoice_number="INV-2024-001",
            amount=Decimal("1500.00"),
            due_date=date(2024, 1, 31),
            status=InvoiceStatus.PENDING,
        )
        setup.add(invoice)
        setup.flush()
        setup.add(Payment(
            tenant_id=tenant.tenant_id,
            invoice_id=invoice.id,
            amount=Decimal("1500"),
            payment_method=PaymentMethod.MPESA,
            status=PaymentStatus.PROCESSING,
            checkout_request_id="ws_123",
            notes="M-Pesa CheckoutRequestID: ws_123",
        ))
        setup.commit()
        invoice_id = invoice.id

    barrier = threading.Barrier(2)
    outcomes = []

    def deliver():
        with Session() as db:
            barrier.wait()
            outcomes.append(handle_stk_callback(db, stk_callback_payload()))

    threads = [threading.Thread(target=deliver) for _ in range(2)]
    try:
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert len(outcomes) == 2
        assert all(outcome is not None for outcome in outcomes)
        applied = [outcome for outcome in outcomes if outcome.applied]
        assert len(applied) == 1
        assert applied[0].invoice_settled

        with Session() as db:
            payments = db.query(Payment).all()
            assert [p.status for p in payments] == [PaymentStatus.COMPLETED]
            assert payments[0].notes.count("M-Pesa Receipt: QGR7XXXX") == 1
            assert db.get(Invoice, invoice_id).status == InvoiceStatus.PAID
    finally:
        engine.dispose()
