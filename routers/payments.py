# routers/payments.py
"""
Payments API.

Payments are read-only here except for manual recording of non-gateway
payments (bank transfer, card, cash, check). M-Pesa payments are created by
/api/mpesa/stk-push and finalized by the rail's callback.

Role-based access:
- Tenant: only own payments
- Admin / Manager / Owner: all payments
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from database import get_session
from models import Payment, PaymentMethod, PaymentStatus, Tenant
from schemas.payment import (
     PaymentCreate,
     PaymentListResponse,
     PaymentMethodEnum,
     PaymentResponse,
     PaymentStatusEnum,
)
from services.exceptions import PaymentError
from services.payment_service import PaymentService
from utils.auth import verify_token
from .errors import to_http_exception

router = APIRouter(prefix="/api/payments", tags=["payments"])


def _get_tenant_id_for_user(db: Session, user_id: int) -> Optional[int]:
     """Get tenant_id for a user (role=tenant). Returns None if user is not a tenant."""
     tenant = db.query(Tenant).filter(Tenant.user_id == user_id).first()
     return tenant.tenant_id if tenant else None


def _can_access_payment(db: Session, token: dict, payment: Payment) -> bool:
     if token.get("role") != "tenant":
          return True
     return payment.tenant_id == _get_tenant_id_for_user(db, token.get("id"))


@router.post(
     "",
     response_model=PaymentResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Record a manual payment"
)
def record_payment(
     body: PaymentCreate,
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token)
):
     """
     Record a payment received outside the gateway.

     - **payment_method**: BANK_TRANSFER, CARD, CASH or CHECK
     - **status**: defaults to COMPLETED; a COMPLETED payment linked to an
       invoice marks the invoice PAID
     """
     if token.get("role") == "tenant":
          raise HTTPException(
               status_code=status.HTTP_403_FORBIDDEN,
               detail="Tenants cannot record payments manually"
          )
     try:
          payment = PaymentService.record_manual_payment(
               db,
               tenant_id=body.tenant_id,
               amount=body.amount,
               payment_method=PaymentMethod(body.payment_method.value),
               status=PaymentStatus(body.status.value),
               invoice_id=body.invoice_id,
               payment_date=body.payment_date,
               notes=body.notes,
               user_id=token.get("id"),
          )
     except PaymentError as exc:
          raise to_http_exception(exc)

     db.refresh(payment)
     return PaymentResponse.model_validate(payment)


@router.get(
     "",
     response_model=PaymentListResponse,
     summary="List payments with filters"
)
def list_payments(
     tenant_id: Optional[int] = Query(None, description="Filter by tenant ID"),
     invoice_id: Optional[int] = Query(None, description="Filter by invoice ID"),
     payment_status: Optional[PaymentStatusEnum] = Query(None, alias="status", description="Filter by status"),
     payment_method: Optional[PaymentMethodEnum] = Query(None, description="Filter by method"),
     page: int = Query(1, ge=1, description="Page number"),
     page_size: int = Query(50, ge=1, le=100, description="Items per page"),
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token)
):
     query = db.query(Payment)

     if token.get("role") == "tenant":
          own_tenant_id = _get_tenant_id_for_user(db, token.get("id"))
          if own_tenant_id is None or (tenant_id is not None and tenant_id != own_tenant_id):
               return PaymentListResponse(payments=[], total=0, page=page, page_size=page_size)
          tenant_id = own_tenant_id

     if tenant_id:
          query = query.filter(Payment.tenant_id == tenant_id)
     if invoice_id:
          query = query.filter(Payment.invoice_id == invoice_id)
     if payment_status:
          query = query.filter(Payment.status == PaymentStatus(payment_status.value))
     if payment_method:
          query = query.filter(Payment.payment_method == PaymentMethod(payment_method.value))

     total = query.count()
     offset = (page - 1) * page_size
     payments = query.order_by(Payment.payment_date.desc()).offset(offset).limit(page_size).all()

     return PaymentListResponse(
          payments=[PaymentResponse.model_validate(p) for p in payments],
          total=total,
          page=page,
          page_size=page_size
     )


@router.get(
     "/{payment_id}",
     response_model=PaymentResponse,
     summary="Get a payment"
)
def get_payment(
     payment_id: str,
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token)
):
     payment = db.query(Payment).filter(Payment.id == payment_id).first()
     if not payment or not _can_access_payment(db, token, payment):
          raise HTTPException(
               status_code=status.HTTP_404_NOT_FOUND,
               detail=f"Payment with ID {payment_id} not found"
          )
     return PaymentResponse.model_validate(payment)
