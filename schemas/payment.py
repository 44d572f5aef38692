"""
Pydantic schemas for the payments API (manual recording and read-only listing).
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentMethodEnum(str, Enum):
     MPESA = "MPESA"
     BANK_TRANSFER = "BANK_TRANSFER"
     CARD = "CARD"
     CASH = "CASH"
     CHECK = "CHECK"


class PaymentStatusEnum(str, Enum):
     PROCESSING = "PROCESSING"
     COMPLETED = "COMPLETED"
     FAILED = "FAILED"


class PaymentCreate(BaseModel):
     """Request body for POST /api/payments (manual entry, non-gateway methods)."""
     tenant_id: int = Field(..., gt=0, description="Tenant ID (must exist)")
     invoice_id: Optional[int] = Field(None, gt=0, description="Invoice this payment settles")
     amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Amount paid")
     payment_method: PaymentMethodEnum = Field(..., description="Any method except MPESA")
     status: PaymentStatusEnum = Field(default=PaymentStatusEnum.COMPLETED)
     payment_date: Optional[datetime] = None
     notes: Optional[str] = Field(None, max_length=2000)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "tenant_id": 1,
                    "invoice_id": 1,
                    "amount": 1500.00,
                    "payment_method": "BANK_TRANSFER",
                    "status": "COMPLETED",
                    "notes": "Deposit slip 4471",
               }
          }
     )


class PaymentResponse(BaseModel):
     """Schema for payment response."""
     id: str
     user_id: Optional[int] = None
     tenant_id: int
     invoice_id: Optional[int] = None
     amount: Decimal
     payment_method: PaymentMethodEnum
     status: PaymentStatusEnum
     checkout_request_id: Optional[str] = None
     mpesa_receipt_number: Optional[str] = None
     notes: Optional[str] = None
     payment_date: Optional[datetime] = None
     created_at: Optional[datetime] = None
     updated_at: Optional[datetime] = None

     model_config = ConfigDict(from_attributes=True)


class PaymentListResponse(BaseModel):
     """Schema for paginated payment list response."""
     payments: List[PaymentResponse]
     total: int
     page: int = 1
     page_size: int = 50
