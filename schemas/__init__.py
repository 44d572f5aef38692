from .payment import (
     PaymentCreate,
     PaymentResponse,
     PaymentListResponse,
     PaymentMethodEnum,
     PaymentStatusEnum,
)
from .mpesa import (
     StkCallback,
     StkCallbackEnvelope,
     CallbackAcknowledgement,
     StkPushRequest,
     StkPushResponse,
     ReconciliationResponse,
)

__all__ = [
     "PaymentCreate",
     "PaymentResponse",
     "PaymentListResponse",
     "PaymentMethodEnum",
     "PaymentStatusEnum",
     "StkCallback",
     "StkCallbackEnvelope",
     "CallbackAcknowledgement",
     "StkPushRequest",
     "StkPushResponse",
     "ReconciliationResponse",
]
