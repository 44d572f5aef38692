import enum
from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, ForeignKey, Enum, func
from sqlalchemy.orm import relationship
from .base import Base


class InvoiceStatus(str, enum.Enum):
     """Enumeration for invoice payment status."""
     PENDING = "PENDING"
     PAID = "PAID"
     OVERDUE = "OVERDUE"


class Invoice(Base):
     """
     Invoice model - billing records for tenants.

     Invoices are managed elsewhere; the payment flow only links payments to
     them and flips their status to PAID on settlement.
     """
     __tablename__ = "invoices"

     id = Column(Integer, primary_key=True, autoincrement=True)

     tenant_id = Column(
          Integer,
          ForeignKey("tenants.tenant_id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )
     invoice_number = Column(String(50), nullable=False, unique=True)

     amount = Column(Numeric(12, 2), nullable=False)
     due_date = Column(Date, nullable=False, index=True)
     status = Column(
          Enum(InvoiceStatus, name="invoice_status", create_constraint=True),
          default=InvoiceStatus.PENDING,
          nullable=False,
          index=True
     )

     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     tenant = relationship("Tenant", back_populates="invoices")
     payments = relationship("Payment", back_populates="invoice")

     def __repr__(self):
          return f"<Invoice(id={self.id}, number='{self.invoice_number}', status='{self.status.value}')>"

     @property
     def is_paid(self) -> bool:
          return self.status == InvoiceStatus.PAID
