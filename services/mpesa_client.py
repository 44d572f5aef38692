# services/mpesa_client.py
"""
M-Pesa (Safaricom Daraja) client.

Two collaborators:
- MpesaCredentialManager: client-credential exchange for a short-lived bearer
  token, cached in memory until shortly before it expires.
- MpesaClient: signed STK push (Lipa na M-Pesa Online) and STK status query.

Neither touches the database; PaymentService decides what an answer means for
the ledger.
"""
import base64
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

BASE_URLS = {
     "sandbox": "https://sandbox.safaricom.co.ke",
     "production": "https://api.safaricom.co.ke",
}

AUTH_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"

ACCEPTED_RESPONSE_CODE = "0"
TRANSACTION_TYPE = "CustomerPayBillOnline"
DEFAULT_ACCOUNT_REFERENCE = "RentPayment"
DEFAULT_TRANSACTION_DESC = "Rent Payment"

# Seconds shaved off the advertised token lifetime
TOKEN_EXPIRY_MARGIN = 60


class AuthenticationError(Exception):
     """Token exchange failed: bad credentials, HTTP error or rail unreachable."""


class MpesaRequestError(Exception):
     """The rail could not be reached or answered with something unparseable."""


@dataclass
class MpesaConfig:
     consumer_key: str
     consumer_secret: str
     shortcode: str
     passkey: str
     callback_url: str
     environment: str = "sandbox"
     timeout: float = 30

     @property
     def base_url(self) -> str:
          return BASE_URLS[self.environment]

     @property
     def is_complete(self) -> bool:
          return all([self.consumer_key, self.consumer_secret, self.shortcode, self.passkey, self.callback_url])

     @classmethod
     def from_env(cls) -> "MpesaConfig":
          environment = os.getenv("MPESA_ENVIRONMENT", "sandbox").lower()
          if environment not in BASE_URLS:
               raise ValueError(f"MPESA_ENVIRONMENT must be 'sandbox' or 'production', got '{environment}'")
          return cls(
               consumer_key=os.getenv("MPESA_CONSUMER_KEY", ""),
               consumer_secret=os.getenv("MPESA_CONSUMER_SECRET", ""),
               shortcode=os.getenv("MPESA_SHORTCODE", ""),
               passkey=os.getenv("MPESA_PASSKEY", ""),
               callback_url=os.getenv("MPESA_CALLBACK_URL", ""),
               environment=environment,
               timeout=float(os.getenv("MPESA_TIMEOUT", "30")),
          )


@dataclass
class StkPushResponse:
     """Synchronous answer to an STK push request."""
     response_code: Optional[str]
     description: str
     checkout_request_id: Optional[str] = None
     merchant_request_id: Optional[str] = None
     raw: Dict[str, Any] = field(default_factory=dict)

     @property
     def accepted(self) -> bool:
          return self.response_code == ACCEPTED_RESPONSE_CODE and bool(self.checkout_request_id)


@dataclass
class StkQueryResponse:
     """Answer to an STK status query. result_code is None while the rail has no verdict."""
     result_code: Optional[int]
     result_desc: str
     raw: Dict[str, Any] = field(default_factory=dict)

     @property
     def is_final(self) -> bool:
          return self.result_code is not None


def generate_timestamp(now: Optional[datetime] = None) -> str:
     """YYYYMMDDHHMMSS"""
     return (now or datetime.now()).strftime("%Y%m%d%H%M%S")


def generate_password(shortcode: str, passkey: str, timestamp: str) -> str:
     """Password = Base64(BusinessShortCode + Passkey + Timestamp)"""
     return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode("utf-8")).decode("utf-8")


def whole_shillings(amount) -> int:
     """Round half up to whole KES; the rail rejects anything below 1."""
     value = Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
     if value < 1:
          raise ValueError(f"Amount must be at least 1 KES, got {amount}")
     return int(value)


class MpesaCredentialManager:
     """
     Produces a valid bearer token for the Daraja API.

     Tokens live only in this object's memory; a new process starts without one.
     """

     def __init__(
          self,
          config: MpesaConfig,
          session: Optional[requests.Session] = None,
          clock: Callable[[], float] = time.monotonic,
     ):
          self.config = config
          self._session = session or requests.Session()
          self._clock = clock
          self._lock = threading.Lock()
          self._access_token: Optional[str] = None
          self._expires_at: float = 0.0

     def get_access_token(self) -> str:
          """
          Return a cached token, or exchange the consumer key/secret for a new one.

          Raises:
               AuthenticationError: rail rejected the credentials or was unreachable
          """
          with self._lock:
               if self._access_token and self._clock() < self._expires_at:
                    return self._access_token

               url = f"{self.config.base_url}{AUTH_PATH}"
               try:
                    response = self._session.get(
                         url,
                         params={"grant_type": "client_credentials"},
                         auth=(self.config.consumer_key, self.config.consumer_secret),
                         timeout=self.config.timeout,
                    )
               except requests.RequestException as exc:
                    raise AuthenticationError(f"M-Pesa token endpoint unreachable: {exc}") from exc

               if not response.ok:
                    logger.error("M-Pesa token request failed with HTTP %s", response.status_code)
                    raise AuthenticationError(f"M-Pesa token request failed with HTTP {response.status_code}")

               try:
                    data = response.json()
               except ValueError as exc:
                    raise AuthenticationError("M-Pesa token response was not JSON") from exc

               token = data.get("access_token")
               if not token:
                    raise AuthenticationError("M-Pesa token response carried no access_token")

               expires_in = int(data.get("expires_in", 3600))
               self._access_token = token
               self._expires_at = self._clock() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
               logger.debug("M-Pesa access token refreshed (expires in %ss)", expires_in)
               return token

     def invalidate(self) -> None:
          with self._lock:
               self._access_token = None
               self._expires_at = 0.0


class MpesaClient:
     """STK push requester. The credential manager is injected so tests can swap it."""

     def __init__(
          self,
          config: MpesaConfig,
          credentials: Optional[MpesaCredentialManager] = None,
          session: Optional[requests.Session] = None,
     ):
          self.config = config
          self._session = session or requests.Session()
          self.credentials = credentials or MpesaCredentialManager(config, session=self._session)

     def build_stk_push_payload(
          self,
          amount,
          phone_number: str,
          account_reference: Optional[str] = None,
          transaction_desc: Optional[str] = None,
          timestamp: Optional[str] = None,
     ) -> Dict[str, Any]:
          timestamp = timestamp or generate_timestamp()
          return {
               "BusinessShortCode": self.config.shortcode,
               "Password": generate_password(self.config.shortcode, self.config.passkey, timestamp),
               "Timestamp": timestamp,
               "TransactionType": TRANSACTION_TYPE,
               "Amount": whole_shillings(amount),
               "PartyA": phone_number,
               "PartyB": self.config.shortcode,
               "PhoneNumber": phone_number,
               "CallBackURL": self.config.callback_url,
               # Daraja truncates these on the handset prompt
               "AccountReference": (account_reference or DEFAULT_ACCOUNT_REFERENCE)[:12],
               "TransactionDesc": (transaction_desc or DEFAULT_TRANSACTION_DESC)[:13],
          }

     def stk_push(
          self,
          amount,
          phone_number: str,
          account_reference: Optional[str] = None,
          transaction_desc: Optional[str] = None,
     ) -> StkPushResponse:
          """
          Ask the rail to prompt phone_number for amount.

          phone_number must already be normalized. A rejection is returned, not
          raised; check StkPushResponse.accepted.

          Raises:
               AuthenticationError: no token could be obtained
               MpesaRequestError: network failure or non-JSON answer
          """
          payload = self.build_stk_push_payload(amount, phone_number, account_reference, transaction_desc)
          data = self._post(STK_PUSH_PATH, payload)
          response_code = data.get("ResponseCode")
          return StkPushResponse(
               response_code=str(response_code) if response_code is not None else None,
               description=(
                    data.get("errorMessage")
                    or data.get("ResponseDescription")
                    or "Failed to initiate M-Pesa payment"
               ),
               checkout_request_id=data.get("CheckoutRequestID"),
               merchant_request_id=data.get("MerchantRequestID"),
               raw=data,
          )

     def query_stk_status(self, checkout_request_id: str) -> StkQueryResponse:
          """
          Ask the rail for the outcome of an earlier STK push.

          While the payer has not acted the rail answers with an error code
          (e.g. "500.001.1001"); that is reported as result_code None.
          """
          timestamp = generate_timestamp()
          payload = {
               "BusinessShortCode": self.config.shortcode,
               "Password": generate_password(self.config.shortcode, self.config.passkey, timestamp),
               "Timestamp": timestamp,
               "CheckoutRequestID": checkout_request_id,
          }
          data = self._post(STK_QUERY_PATH, payload)
          result_code = data.get("ResultCode")
          try:
               parsed = int(result_code) if result_code is not None else None
          except (TypeError, ValueError):
               parsed = None
          return StkQueryResponse(
               result_code=parsed,
               result_desc=data.get("ResultDesc") or data.get("errorMessage") or "",
               raw=data,
          )

     def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
          token = self.credentials.get_access_token()
          try:
               response = self._session.post(
                    f"{self.config.base_url}{path}",
                    json=payload,
                    headers={
                         "Authorization": f"Bearer {token}",
                         "Content-Type": "application/json",
                    },
                    timeout=self.config.timeout,
               )
          except requests.RequestException as exc:
               raise MpesaRequestError(f"M-Pesa unreachable: {exc}") from exc

          if response.status_code == 401:
               # Token revoked or expired early
               self.credentials.invalidate()
               raise AuthenticationError("M-Pesa rejected the access token")

          try:
               data = response.json()
          except ValueError as exc:
               raise MpesaRequestError(
                    f"M-Pesa returned a non-JSON response (HTTP {response.status_code})"
               ) from exc

          logger.debug("M-Pesa %s answered HTTP %s", path, response.status_code)
          return data
