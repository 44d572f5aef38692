# services/payment_service.py
"""
Payment Service - business logic for creating payment records.

Two ways a payment enters the ledger:

1. Gateway path (M-Pesa STK push): validate, ask the rail to prompt the
   payer, and only if the rail accepts create a PROCESSING record carrying
   the rail's CheckoutRequestID. The final status arrives later through the
   callback (see callback_service).
2. Manual path: an operator records a bank transfer, card, cash or check
   payment directly in its final status.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from models import Invoice, Payment, PaymentMethod, PaymentStatus, Tenant
from .exceptions import (
     GatewayAuthError,
     GatewayRejected,
     InvalidAmount,
     InvalidPaymentMethod,
     InvalidPhoneNumber,
     InvoiceAlreadyPaid,
     InvoiceNotFound,
     TenantNotFound,
)
from .mpesa_client import AuthenticationError, MpesaClient, MpesaRequestError, DEFAULT_ACCOUNT_REFERENCE
from .phone import normalize_phone_number
from .settlement_service import settle_invoice

logger = logging.getLogger(__name__)

STK_PUSH_SENT_MESSAGE = "STK push sent. Check your phone and enter your M-Pesa PIN."


@dataclass
class InitiationResult:
     payment: Payment
     checkout_request_id: str
     merchant_request_id: Optional[str]
     message: str = STK_PUSH_SENT_MESSAGE


def _validate_amount(amount) -> Decimal:
     try:
          value = Decimal(str(amount))
     except (ArithmeticError, ValueError):
          raise InvalidAmount(f"Invalid amount: {amount!r}")
     if not value.is_finite() or value <= 0:
          raise InvalidAmount("Amount must be greater than zero")
     return value


def _get_tenant(db: Session, tenant_id: int) -> Tenant:
     tenant = db.query(Tenant).filter(Tenant.tenant_id == tenant_id).first()
     if not tenant:
          raise TenantNotFound(tenant_id)
     return tenant


def _get_open_invoice(db: Session, invoice_id: int, tenant_id: int) -> Invoice:
     invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
     if not invoice or invoice.tenant_id != tenant_id:
          raise InvoiceNotFound(invoice_id)
     return invoice


class PaymentService:
     """Service class for payment initiation and recording."""

     def __init__(self, client: MpesaClient):
          self.client = client

     def initiate_stk_push(
          self,
          db: Session,
          tenant_id: int,
          amount,
          phone_number: Optional[str] = None,
          invoice_id: Optional[int] = None,
          account_reference: Optional[str] = None,
          user_id: Optional[int] = None,
     ) -> InitiationResult:
          """
          Send an STK push and record the pending payment.

          Everything that can be checked locally is checked before the rail is
          contacted. The PROCESSING record is committed before returning so a
          fast callback can always find it.

          Args:
               db: SQLAlchemy database session
               tenant_id: Tenant being billed
               amount: Amount in whole KES
               phone_number: Payer phone; defaults to the tenant's contact number
               invoice_id: Optional invoice the payment settles
               account_reference: Shown on the payer's phone; defaults to the tenant name
               user_id: Authenticated caller stamped on the record

          Raises:
               InvalidAmount: not positive, or not whole shillings
               InvalidPhoneNumber, TenantNotFound, InvoiceNotFound,
               InvoiceAlreadyPaid: rejected locally, nothing sent
               GatewayAuthError: no access token could be obtained
               GatewayRejected: the rail declined or could not be reached
          """
          value = _validate_amount(amount)
          # The rail only charges whole shillings
          if value != value.to_integral_value():
               raise InvalidAmount("M-Pesa amounts must be whole shillings")
          tenant = _get_tenant(db, tenant_id)

          raw_phone = phone_number or tenant.contact_number
          if not raw_phone:
               raise InvalidPhoneNumber("")
          msisdn = normalize_phone_number(raw_phone)

          if invoice_id is not None:
               invoice = _get_open_invoice(db, invoice_id, tenant_id)
               if invoice.is_paid:
                    raise InvoiceAlreadyPaid(invoice_id)

          reference = account_reference or tenant.display_name or DEFAULT_ACCOUNT_REFERENCE

          try:
               answer = self.client.stk_push(value, msisdn, account_reference=reference)
          except AuthenticationError as exc:
               logger.error("M-Pesa authentication failed: %s", exc)
               raise GatewayAuthError("Failed to authenticate with M-Pesa") from exc
          except MpesaRequestError as exc:
               logger.error("M-Pesa STK push failed: %s", exc)
               raise GatewayRejected("M-Pesa is unreachable, please try again") from exc

          if not answer.accepted:
               logger.warning(
                    "M-Pesa rejected STK push for tenant %s: %s (code %s)",
                    tenant_id,
                    answer.description,
                    answer.response_code,
               )
               raise GatewayRejected(answer.description, response=answer.raw)

          payment = Payment(
               user_id=user_id,
               tenant_id=tenant_id,
               invoice_id=invoice_id,
               amount=value,
               payment_method=PaymentMethod.MPESA,
               status=PaymentStatus.PROCESSING,
               checkout_request_id=answer.checkout_request_id,
               merchant_request_id=answer.merchant_request_id,
               notes=f"M-Pesa CheckoutRequestID: {answer.checkout_request_id}",
          )
          db.add(payment)
          db.commit()

          logger.info(
               "STK push accepted: payment %s CheckoutRequestID=%s",
               payment.id,
               answer.checkout_request_id,
          )
          return InitiationResult(
               payment=payment,
               checkout_request_id=answer.checkout_request_id,
               merchant_request_id=answer.merchant_request_id,
          )

     @staticmethod
     def record_manual_payment(
          db: Session,
          tenant_id: int,
          amount,
          payment_method: PaymentMethod,
          status: PaymentStatus = PaymentStatus.COMPLETED,
          invoice_id: Optional[int] = None,
          payment_date: Optional[datetime] = None,
          notes: Optional[str] = None,
          user_id: Optional[int] = None,
     ) -> Payment:
          """
          Record a payment that did not go through the gateway.

          The record is created directly in the operator-chosen status and has
          no correlation token, so the callback path can never touch it. A
          COMPLETED payment linked to an invoice settles that invoice.

          Raises:
               InvalidAmount, InvalidPaymentMethod, TenantNotFound, InvoiceNotFound
          """
          value = _validate_amount(amount)
          method = PaymentMethod(payment_method)
          if method == PaymentMethod.MPESA:
               raise InvalidPaymentMethod("M-Pesa payments must be initiated through STK push")

          _get_tenant(db, tenant_id)
          if invoice_id is not None:
               _get_open_invoice(db, invoice_id, tenant_id)

          payment = Payment(
               user_id=user_id,
               tenant_id=tenant_id,
               invoice_id=invoice_id,
               amount=value,
               payment_method=method,
               status=PaymentStatus(status),
               notes=notes,
          )
          if payment_date is not None:
               payment.payment_date = payment_date
          db.add(payment)
          db.commit()
          logger.info("Recorded %s payment %s (%s)", method.value, payment.id, payment.status.value)

          if payment.status == PaymentStatus.COMPLETED and invoice_id is not None:
               settle_invoice(db, invoice_id)

          return payment
