from .exceptions import (
     PaymentError,
     InvalidPhoneNumber,
     InvalidAmount,
     InvalidPaymentMethod,
     TenantNotFound,
     InvoiceNotFound,
     InvoiceAlreadyPaid,
     GatewayNotConfigured,
     GatewayAuthError,
     GatewayRejected,
     CallbackParseError,
)
from .phone import normalize_phone_number
from .mpesa_client import MpesaClient, MpesaConfig, MpesaCredentialManager, AuthenticationError
from .payment_service import PaymentService, InitiationResult
from .callback_service import CallbackOutcome, apply_stk_callback, handle_stk_callback, parse_stk_callback
from .settlement_service import settle_invoice
from .reconciliation_service import ReconciliationReport, reconcile_stale_payments

__all__ = [
     "PaymentError",
     "InvalidPhoneNumber",
     "InvalidAmount",
     "InvalidPaymentMethod",
     "TenantNotFound",
     "InvoiceNotFound",
     "InvoiceAlreadyPaid",
     "GatewayNotConfigured",
     "GatewayAuthError",
     "GatewayRejected",
     "CallbackParseError",
     "normalize_phone_number",
     "MpesaClient",
     "MpesaConfig",
     "MpesaCredentialManager",
     "AuthenticationError",
     "PaymentService",
     "InitiationResult",
     "CallbackOutcome",
     "apply_stk_callback",
     "handle_stk_callback",
     "parse_stk_callback",
     "settle_invoice",
     "ReconciliationReport",
     "reconcile_stale_payments",
]
