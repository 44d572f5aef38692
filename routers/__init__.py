from .payments import router as payments_router
from .mpesa import router as mpesa_router

__all__ = ["payments_router", "mpesa_router"]
