"""
NaiyakSetu API routers.
"""
from .auth import router as auth_router
from .complaints import router as complaints_router
from .internal import router as internal_router

__all__ = ["auth_router", "complaints_router", "internal_router"]
