# services/phone.py
"""Phone number normalization for the M-Pesa rail (Kenyan MSISDN, 2547XXXXXXXX)."""
import re

from .exceptions import InvalidPhoneNumber

COUNTRY_CODE = "254"
TRUNK_PREFIX = "0"

_STRIP = re.compile(r"[ \t\-+]")
# ASCII digits only; str.isdigit() also admits other scripts' digits
_MSISDN = re.compile(r"254[0-9]{9}")


def normalize_phone_number(phone_number: str) -> str:
     """
     Rewrite a user-supplied phone number into the rail's canonical form.

     - spaces, tabs, dashes and plus signs are removed
     - a leading trunk "0" is replaced with the country code
     - a number already starting with the country code is kept
     - anything else, or a result that is not 254 plus nine ASCII digits, is rejected

     Raises:
          InvalidPhoneNumber
     """
     if not phone_number:
          raise InvalidPhoneNumber(phone_number or "")

     cleaned = _STRIP.sub("", phone_number)

     if cleaned.startswith(TRUNK_PREFIX):
          cleaned = COUNTRY_CODE + cleaned[len(TRUNK_PREFIX):]
     elif not cleaned.startswith(COUNTRY_CODE):
          raise InvalidPhoneNumber(phone_number)

     if not _MSISDN.fullmatch(cleaned):
          raise InvalidPhoneNumber(phone_number)

     return cleaned
