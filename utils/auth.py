# utils/auth.py
"""
Bearer token dependencies shared by the API routers.

Tokens are issued by the authentication service; this module only verifies
them (HS256, JWT_SECRET) and exposes the decoded claims.
"""
import os
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from dotenv import load_dotenv

load_dotenv()

ALGORITHM = "HS256"


def _secret_key() -> Optional[str]:
     return os.getenv("JWT_SECRET")


def create_access_token(claims: dict) -> str:
     """Encode claims the same way the authentication service does (used by tooling and tests)."""
     return jwt.encode(claims, _secret_key(), algorithm=ALGORITHM)


def verify_token(request: Request) -> dict:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
     token = auth.split(" ")[1]
     try:
          payload = jwt.decode(token, _secret_key(), algorithms=[ALGORITHM])
     except JWTError:
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")
     return payload


def require_staff(token: dict = Depends(verify_token)) -> dict:
     """Allow only admin / manager roles."""
     if token.get("role") not in ("admin", "manager"):
          raise HTTPException(
               status_code=status.HTTP_403_FORBIDDEN,
               detail="Admin or manager role required"
          )
     return token
