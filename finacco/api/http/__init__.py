from finacco.api.http.health import router as health_router
from finacco.api.http.auth import router as auth_router
from finacco.api.http.account import router as account_router
from finacco.api.http.documents import router as documents_router
from finacco.api.http.admin import router as admin_router
from finacco.api.http.tax_assistant import router as tax_assistant_router
from finacco.api.http.api_keys import router as api_keys_router

__all__ = [
    "health_router",
    "auth_router",
    "account_router",
    "documents_router",
    "admin_router",
    "tax_assistant_router",
    "api_keys_router",
]
