from .base import Base
from .user import User
from .tenant import Tenant
from .invoice import Invoice, InvoiceStatus
from .payment import Payment, PaymentMethod, PaymentStatus, TERMINAL_STATUSES

__all__ = [
     "Base",
     "User",
     "Tenant",
     "Invoice",
     "InvoiceStatus",
     "Payment",
     "PaymentMethod",
     "PaymentStatus",
     "TERMINAL_STATUSES",
]
