"""
Pydantic schemas for the M-Pesa STK push endpoints and the rail's callback body.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Inbound callback (Body.stkCallback)
# ---------------------------------------------------------------------------

class CallbackMetadataItem(BaseModel):
     name: str = Field(..., alias="Name")
     value: Any = Field(None, alias="Value")

     model_config = ConfigDict(populate_by_name=True)


class CallbackMetadata(BaseModel):
     items: List[CallbackMetadataItem] = Field(default_factory=list, alias="Item")

     model_config = ConfigDict(populate_by_name=True)


class StkCallback(BaseModel):
     """Result of an STK push as reported by the rail. ResultCode 0 is success."""
     merchant_request_id: Optional[str] = Field(None, alias="MerchantRequestID")
     checkout_request_id: str = Field(..., min_length=1, alias="CheckoutRequestID")
     result_code: int = Field(..., alias="ResultCode")
     result_desc: str = Field("", alias="ResultDesc")
     callback_metadata: Optional[CallbackMetadata] = Field(None, alias="CallbackMetadata")

     model_config = ConfigDict(populate_by_name=True)

     @property
     def succeeded(self) -> bool:
          return self.result_code == 0

     @property
     def metadata(self) -> Dict[str, Any]:
          """CallbackMetadata items keyed by Name; absent on failure callbacks."""
          if self.callback_metadata is None:
               return {}
          return {item.name: item.value for item in self.callback_metadata.items}

     @property
     def receipt_number(self) -> Optional[str]:
          value = self.metadata.get("MpesaReceiptNumber")
          return str(value) if value is not None else None

     @property
     def transaction_date(self) -> Optional[str]:
          value = self.metadata.get("TransactionDate")
          return str(value) if value is not None else None

     @property
     def phone_number(self) -> Optional[str]:
          value = self.metadata.get("PhoneNumber")
          return str(value) if value is not None else None

     @property
     def amount(self) -> Optional[Decimal]:
          value = self.metadata.get("Amount")
          return Decimal(str(value)) if value is not None else None


class StkCallbackBody(BaseModel):
     stk_callback: StkCallback = Field(..., alias="stkCallback")

     model_config = ConfigDict(populate_by_name=True)


class StkCallbackEnvelope(BaseModel):
     body: StkCallbackBody = Field(..., alias="Body")

     model_config = ConfigDict(populate_by_name=True)


class CallbackAcknowledgement(BaseModel):
     """Fixed answer the rail expects for every callback delivery."""
     ResultCode: int = 0
     ResultDesc: str = "Accepted"


# ---------------------------------------------------------------------------
# STK push initiation API
# ---------------------------------------------------------------------------

class StkPushRequest(BaseModel):
     """Request body for POST /api/mpesa/stk-push."""
     tenant_id: int = Field(..., gt=0, description="Tenant being billed")
     amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Amount in KES")
     phone_number: Optional[str] = Field(
          None,
          description="Payer phone; defaults to the tenant's contact number",
     )
     invoice_id: Optional[int] = Field(None, gt=0, description="Invoice settled by this payment")
     account_reference: Optional[str] = Field(
          None,
          max_length=64,
          description="Reference shown on the payer's phone; defaults to the tenant name",
     )

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "tenant_id": 1,
                    "amount": 1500.00,
                    "phone_number": "0712345678",
                    "invoice_id": 1,
               }
          }
     )


class StkPushResponse(BaseModel):
     """Response for POST /api/mpesa/stk-push."""
     success: bool = True
     message: str
     payment_id: str
     checkout_request_id: str
     merchant_request_id: Optional[str] = None

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "success": True,
                    "message": "STK push sent. Check your phone and enter your M-Pesa PIN.",
                    "payment_id": "6f1c2a0e-8d8b-4d53-9a55-0b0c7e0f6b11",
                    "checkout_request_id": "ws_CO_191220191020363925",
                    "merchant_request_id": "29115-34620561-1",
               }
          }
     )


class ReconciliationResponse(BaseModel):
     checked: int
     completed: int
     failed: int
     expired: int
     pending: int
     errors: int
