# services/exceptions.py
"""
Errors raised by the payment services.

Routers translate these into HTTP responses; the callback path never lets
them escape to the payment rail.
"""


class PaymentError(Exception):
     """Base class for payment flow errors."""


class InvalidPhoneNumber(PaymentError):
     def __init__(self, phone_number: str):
          self.phone_number = phone_number
          super().__init__("Invalid phone number. Use format 254XXXXXXXXX or 07XXXXXXXX")


class InvalidAmount(PaymentError):
     pass


class InvalidPaymentMethod(PaymentError):
     pass


class TenantNotFound(PaymentError):
     def __init__(self, tenant_id: int):
          self.tenant_id = tenant_id
          super().__init__(f"Tenant with ID {tenant_id} not found")


class InvoiceNotFound(PaymentError):
     def __init__(self, invoice_id: int):
          self.invoice_id = invoice_id
          super().__init__(f"Invoice with ID {invoice_id} not found for this tenant")


class InvoiceAlreadyPaid(PaymentError):
     def __init__(self, invoice_id: int):
          self.invoice_id = invoice_id
          super().__init__(f"Invoice {invoice_id} is already paid")


class GatewayNotConfigured(PaymentError):
     pass


class GatewayAuthError(PaymentError):
     """The rail refused our credentials or could not be reached for a token."""


class GatewayRejected(PaymentError):
     """The rail answered the push request with a non-accepted response."""

     def __init__(self, message: str, response: dict = None):
          self.response = response or {}
          super().__init__(message)


class CallbackParseError(PaymentError):
     pass
