# routers/mpesa.py
"""
M-Pesa STK push API.

POST /api/mpesa/stk-push: prompt the payer's phone; records a PROCESSING payment
     when the rail accepts.
POST /api/mpesa/callback: the rail's asynchronous result. Always acknowledged
     with {"ResultCode": 0, "ResultDesc": "Accepted"}, whatever happened
     internally, so the rail does not keep redelivering.
POST /api/mpesa/reconcile: resolve payments stuck in PROCESSING (admin/manager).
"""
import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from database import get_session
from schemas.mpesa import (
     CallbackAcknowledgement,
     ReconciliationResponse,
     StkPushRequest,
     StkPushResponse,
)
from services.callback_service import handle_stk_callback
from services.exceptions import GatewayNotConfigured, PaymentError
from services.mpesa_client import MpesaClient, MpesaConfig
from services.payment_service import PaymentService
from services.reconciliation_service import reconcile_stale_payments
from utils.auth import require_staff, verify_token
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mpesa", tags=["mpesa"])


@lru_cache(maxsize=1)
def _build_client() -> MpesaClient:
     # One client per process so the access token cache is shared
     return MpesaClient(MpesaConfig.from_env())


def get_mpesa_client() -> MpesaClient:
     client = _build_client()
     if not client.config.is_complete:
          raise to_http_exception(GatewayNotConfigured("M-Pesa credentials not configured"))
     return client


def get_payment_service(client: MpesaClient = Depends(get_mpesa_client)) -> PaymentService:
     return PaymentService(client)


@router.post(
     "/stk-push",
     response_model=StkPushResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Initiate an M-Pesa STK push"
)
def initiate_stk_push(
     body: StkPushRequest,
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token),
     service: PaymentService = Depends(get_payment_service),
):
     """
     Send a payment prompt to the payer's phone.

     The call returns as soon as the rail accepts or rejects the request; the
     payment stays PROCESSING until the callback reports the outcome.
     """
     try:
          result = service.initiate_stk_push(
               db,
               tenant_id=body.tenant_id,
               amount=body.amount,
               phone_number=body.phone_number,
               invoice_id=body.invoice_id,
               account_reference=body.account_reference,
               user_id=token.get("id"),
          )
     except PaymentError as exc:
          raise to_http_exception(exc)

     return StkPushResponse(
          message=result.message,
          payment_id=result.payment.id,
          checkout_request_id=result.checkout_request_id,
          merchant_request_id=result.merchant_request_id,
     )


@router.post(
     "/callback",
     response_model=CallbackAcknowledgement,
     summary="M-Pesa STK push result webhook"
)
async def mpesa_callback(request: Request, db: Session = Depends(get_session)):
     try:
          payload = await request.json()
     except ValueError:
          logger.warning("M-Pesa callback body is not valid JSON")
          payload = None

     await run_in_threadpool(handle_stk_callback, db, payload)
     return CallbackAcknowledgement()


@router.post(
     "/reconcile",
     response_model=ReconciliationResponse,
     summary="Resolve stale PROCESSING payments"
)
def reconcile_payments(
     db: Session = Depends(get_session),
     token: dict = Depends(require_staff),
     client: MpesaClient = Depends(get_mpesa_client),
):
     report = reconcile_stale_payments(db, client)
     return ReconciliationResponse(**report.to_dict())
