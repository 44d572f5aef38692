# services/settlement_service.py
"""
Settlement propagation: a COMPLETED payment linked to an invoice marks that
invoice PAID.

The invoice update runs in its own transaction after the payment transition
has been committed. A failure here is logged and leaves the payment
COMPLETED; the invoice status is a derived projection that can be repaired
by re-running settle_invoice.
"""
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Invoice, InvoiceStatus

logger = logging.getLogger(__name__)


def settle_invoice(db: Session, invoice_id: int) -> bool:
     """
     Mark an invoice PAID.

     Returns:
          True if the invoice moved to PAID by this call, False if it was
          already paid, does not exist, or the update failed.
     """
     try:
          result = db.execute(
               update(Invoice)
               .where(Invoice.id == invoice_id, Invoice.status != InvoiceStatus.PAID)
               .values(status=InvoiceStatus.PAID),
               execution_options={"synchronize_session": "fetch"},
          )
          db.commit()
     except SQLAlchemyError:
          db.rollback()
          logger.exception("Failed to mark invoice %s as paid; manual reconciliation required", invoice_id)
          return False

     if result.rowcount == 1:
          logger.info("Invoice %s marked as PAID", invoice_id)
          return True
     logger.info("Invoice %s already paid or missing; settlement is a no-op", invoice_id)
     return False
