# routers/errors.py
"""Translate service exceptions into HTTP errors."""
from fastapi import HTTPException, status

from services.exceptions import (
     GatewayAuthError,
     GatewayNotConfigured,
     GatewayRejected,
     InvalidAmount,
     InvalidPaymentMethod,
     InvalidPhoneNumber,
     InvoiceAlreadyPaid,
     InvoiceNotFound,
     PaymentError,
     TenantNotFound,
)

_STATUS_BY_ERROR = (
     (InvalidPhoneNumber, status.HTTP_400_BAD_REQUEST),
     (InvalidAmount, status.HTTP_400_BAD_REQUEST),
     (InvalidPaymentMethod, status.HTTP_400_BAD_REQUEST),
     (TenantNotFound, status.HTTP_404_NOT_FOUND),
     (InvoiceNotFound, status.HTTP_404_NOT_FOUND),
     (InvoiceAlreadyPaid, status.HTTP_409_CONFLICT),
     (GatewayAuthError, status.HTTP_502_BAD_GATEWAY),
     (GatewayRejected, status.HTTP_502_BAD_GATEWAY),
     (GatewayNotConfigured, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(exc: PaymentError) -> HTTPException:
     for error_type, status_code in _STATUS_BY_ERROR:
          if isinstance(exc, error_type):
               return HTTPException(status_code=status_code, detail=str(exc))
     return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
