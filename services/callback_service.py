# services/callback_service.py
"""
Callback receiver logic for M-Pesa STK push results.

The rail delivers results asynchronously and retries until it gets an
acknowledgement, so the same result may arrive more than once, late, or for
a token we never stored. Every transition is a single conditional UPDATE:

     UPDATE payments SET status = :terminal, ...
     WHERE checkout_request_id = :token AND status = 'PROCESSING'

Exactly one delivery can match; every other one affects zero rows and is
reported as not applied.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from models import Payment, PaymentStatus, TERMINAL_STATUSES
from schemas.mpesa import StkCallback, StkCallbackEnvelope
from .exceptions import CallbackParseError
from .settlement_service import settle_invoice

logger = logging.getLogger(__name__)


@dataclass
class CallbackOutcome:
     """What a delivery did. applied is False for unknown, duplicate or late callbacks."""
     applied: bool
     checkout_request_id: str
     status: Optional[PaymentStatus] = None
     payment: Optional[Payment] = None
     invoice_settled: bool = False


def parse_stk_callback(payload) -> StkCallback:
     """
     Extract Body.stkCallback from a callback body.

     Raises:
          CallbackParseError: body is not the STK callback shape
     """
     if not isinstance(payload, dict):
          raise CallbackParseError("Callback body must be a JSON object")
     try:
          return StkCallbackEnvelope.model_validate(payload).body.stk_callback
     except ValidationError as exc:
          raise CallbackParseError(f"Malformed STK callback: {exc.error_count()} validation error(s)") from exc


def _success_note(callback: StkCallback) -> str:
     parts = []
     if callback.receipt_number:
          parts.append(f"M-Pesa Receipt: {callback.receipt_number}")
     if callback.phone_number:
          parts.append(f"Phone: {callback.phone_number}")
     if callback.transaction_date:
          parts.append(f"Date: {callback.transaction_date}")
     return " | ".join(parts) or "M-Pesa payment confirmed"


def transition_payment(
     db: Session,
     checkout_request_id: str,
     new_status: PaymentStatus,
     note: str,
     receipt_number: Optional[str] = None,
) -> CallbackOutcome:
     """
     Move the PROCESSING payment carrying checkout_request_id to a terminal
     status, appending note to its annotation, and propagate settlement.

     Commits the payment transition before touching the invoice.
     """
     if new_status not in TERMINAL_STATUSES:
          raise ValueError("transition_payment only moves payments to a terminal status")

     values = {
          "status": new_status,
          "notes": case(
               (Payment.notes.is_(None), note),
               (Payment.notes == "", note),
               else_=Payment.notes + " | " + note,
          ),
     }
     if receipt_number:
          values["mpesa_receipt_number"] = receipt_number

     result = db.execute(
          update(Payment)
          .where(
               Payment.checkout_request_id == checkout_request_id,
               Payment.status == PaymentStatus.PROCESSING,
          )
          .values(**values),
          execution_options={"synchronize_session": False},
     )

     if result.rowcount != 1:
          db.rollback()
          logger.warning(
               "No PROCESSING payment for CheckoutRequestID %s (unknown, duplicate or late); ignoring",
               checkout_request_id,
          )
          return CallbackOutcome(applied=False, checkout_request_id=checkout_request_id)

     db.commit()

     payment = db.execute(
          select(Payment)
          .where(Payment.checkout_request_id == checkout_request_id)
          .execution_options(populate_existing=True)
     ).scalar_one()
     logger.info("Payment %s moved to %s", payment.id, new_status.value)

     invoice_settled = False
     if new_status == PaymentStatus.COMPLETED and payment.invoice_id is not None:
          invoice_settled = settle_invoice(db, payment.invoice_id)

     return CallbackOutcome(
          applied=True,
          checkout_request_id=checkout_request_id,
          status=new_status,
          payment=payment,
          invoice_settled=invoice_settled,
     )


def apply_stk_callback(db: Session, callback: StkCallback) -> CallbackOutcome:
     """Apply one parsed callback to the ledger."""
     if callback.succeeded:
          outcome = transition_payment(
               db,
               callback.checkout_request_id,
               PaymentStatus.COMPLETED,
               _success_note(callback),
               receipt_number=callback.receipt_number,
          )
          if outcome.applied and callback.amount is not None and callback.amount != outcome.payment.amount:
               logger.warning(
                    "M-Pesa confirmed %s for payment %s recorded as %s",
                    callback.amount,
                    outcome.payment.id,
                    outcome.payment.amount,
               )
          return outcome
     return transition_payment(
          db,
          callback.checkout_request_id,
          PaymentStatus.FAILED,
          f"Failed: {callback.result_desc or f'result code {callback.result_code}'}",
     )


def handle_stk_callback(db: Session, payload) -> Optional[CallbackOutcome]:
     """
     Entry point for the webhook route: parse, apply, and never raise.

     Returns None when the body could not be processed at all.
     """
     try:
          callback = parse_stk_callback(payload)
          logger.info(
               "M-Pesa callback received: CheckoutRequestID=%s ResultCode=%s",
               callback.checkout_request_id,
               callback.result_code,
          )
          return apply_stk_callback(db, callback)
     except CallbackParseError:
          logger.warning("Ignoring unparseable M-Pesa callback", exc_info=True)
     except Exception:
          db.rollback()
          logger.exception("Unexpected error while processing M-Pesa callback")
     return None
