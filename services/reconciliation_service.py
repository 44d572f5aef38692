# services/reconciliation_service.py
"""
Reconciliation sweep for M-Pesa payments stuck in PROCESSING.

A PROCESSING payment whose callback never arrived is indistinguishable from
one whose payer has not yet entered a PIN. The sweep asks the rail for the
status of every PROCESSING payment older than a threshold and applies any
definitive answer through the same conditional transition the callback
uses, so a sweep racing a late callback still yields one transition. When
the rail answers without a verdict and the payment is older than
expire_after, it is expired to FAILED. A payment whose status query failed
is left PROCESSING for the next sweep.
"""
import logging
import os
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from models import Payment, PaymentMethod, PaymentStatus
from .callback_service import transition_payment
from .mpesa_client import AuthenticationError, MpesaClient, MpesaRequestError

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(minutes=int(os.getenv("MPESA_STALE_AFTER_MINUTES", "5")))
EXPIRE_AFTER = timedelta(minutes=int(os.getenv("MPESA_EXPIRE_AFTER_MINUTES", "60")))
TIMED_OUT_NOTE = "Failed: Timed out awaiting M-Pesa confirmation"


@dataclass
class ReconciliationReport:
     checked: int = 0
     completed: int = 0
     failed: int = 0
     expired: int = 0
     pending: int = 0
     errors: int = 0

     def to_dict(self) -> dict:
          return asdict(self)


def find_stale_payments(db: Session, cutoff: datetime, limit: int = 100):
     return (
          db.query(Payment)
          .filter(
               Payment.status == PaymentStatus.PROCESSING,
               Payment.payment_method == PaymentMethod.MPESA,
               Payment.checkout_request_id.isnot(None),
               Payment.created_at <= cutoff,
          )
          .order_by(Payment.created_at)
          .limit(limit)
          .all()
     )


def reconcile_stale_payments(
     db: Session,
     client: MpesaClient,
     older_than: timedelta = STALE_AFTER,
     expire_after: Optional[timedelta] = EXPIRE_AFTER,
     now: Optional[datetime] = None,
     limit: int = 100,
) -> ReconciliationReport:
     """
     Resolve PROCESSING M-Pesa payments older than older_than.

     created_at is compared as a naive timestamp in the database clock; pass
     now explicitly when that clock is not UTC.
     """
     now = now or datetime.now(timezone.utc).replace(tzinfo=None)
     report = ReconciliationReport()

     for payment in find_stale_payments(db, now - older_than, limit):
          report.checked += 1
          token = payment.checkout_request_id
          created_at = payment.created_at

          try:
               answer = client.query_stk_status(token)
          except (AuthenticationError, MpesaRequestError) as exc:
               # Left PROCESSING for the next sweep
               report.errors += 1
               logger.warning("STK status query failed for %s: %s", token, exc)
               continue

          if answer.is_final:
               if answer.result_code == 0:
                    outcome = transition_payment(
                         db, token, PaymentStatus.COMPLETED, "M-Pesa payment confirmed by status query"
                    )
                    if outcome.applied:
                         report.completed += 1
               else:
                    outcome = transition_payment(
                         db, token, PaymentStatus.FAILED, f"Failed: {answer.result_desc or answer.result_code}"
                    )
                    if outcome.applied:
                         report.failed += 1
               continue

          if expire_after is not None and created_at <= now - expire_after:
               outcome = transition_payment(db, token, PaymentStatus.FAILED, TIMED_OUT_NOTE)
               if outcome.applied:
                    report.expired += 1
                    logger.warning("Expired payment %s after %s without confirmation", payment.id, expire_after)
               continue

          report.pending += 1

     logger.info("Reconciliation sweep finished: %s", report.to_dict())
     return report
