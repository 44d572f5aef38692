"""
Payment model - the local source of truth for a payment's lifecycle.

Gateway (M-Pesa) payments are created in PROCESSING with the rail's
CheckoutRequestID as correlation token and move exactly once to COMPLETED or
FAILED when the callback arrives. Manually recorded payments are created
directly in their final status and carry no correlation token.
"""
import enum
import uuid

from sqlalchemy import Column, Integer, String, Numeric, Text, DateTime, ForeignKey, Enum, Index, func, text
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin


class PaymentMethod(str, enum.Enum):
     """How the money moved."""
     MPESA = "MPESA"
     BANK_TRANSFER = "BANK_TRANSFER"
     CARD = "CARD"
     CASH = "CASH"
     CHECK = "CHECK"


class PaymentStatus(str, enum.Enum):
     """Payment lifecycle state."""
     PROCESSING = "PROCESSING"
     COMPLETED = "COMPLETED"
     FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})


def _new_payment_id() -> str:
     return str(uuid.uuid4())


class Payment(TimestampMixin, Base):
     """
     Payment ledger record.
     """
     __tablename__ = "payments"

     id = Column(String(36), primary_key=True, default=_new_payment_id)

     # Ownership and billing party
     user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
     tenant_id = Column(
          Integer,
          ForeignKey("tenants.tenant_id"),
          nullable=False,
          index=True
     )
     invoice_id = Column(
          Integer,
          ForeignKey("invoices.id"),
          nullable=True,
          index=True
     )

     amount = Column(Numeric(12, 2), nullable=False)
     payment_method = Column(
          Enum(PaymentMethod, name="payment_method", create_constraint=True),
          nullable=False
     )
     status = Column(
          Enum(PaymentStatus, name="payment_status", create_constraint=True),
          default=PaymentStatus.PROCESSING,
          nullable=False,
          index=True
     )

     # Rail correlation (gateway path only)
     checkout_request_id = Column(String(100), nullable=True)
     merchant_request_id = Column(String(100), nullable=True)
     mpesa_receipt_number = Column(String(50), nullable=True)

     notes = Column(Text, nullable=True)
     payment_date = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     user = relationship("User", back_populates="payments")
     tenant = relationship("Tenant", back_populates="payments")
     invoice = relationship("Invoice", back_populates="payments")

     # Unique among gateway payments only; manual payments all carry NULL
     __table_args__ = (
          Index(
               "ix_payments_checkout_request_id",
               "checkout_request_id",
               unique=True,
               mssql_where=text("checkout_request_id IS NOT NULL"),
               postgresql_where=text("checkout_request_id IS NOT NULL"),
               sqlite_where=text("checkout_request_id IS NOT NULL"),
          ),
     )

     def __repr__(self):
          return (
               f"<Payment(id={self.id}, amount={self.amount}, "
               f"method='{self.payment_method.value}', status='{self.status.value}')>"
          )

