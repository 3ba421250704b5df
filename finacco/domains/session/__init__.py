from finacco.domains.session.storage import SessionStorage
from finacco.domains.session.provider import AuthProvider, LocalAuthProvider
from finacco.domains.session.manager import SessionManager
from finacco.domains.session.guard import AuthGuard, GuardResult, GuardState, sign_in_redirect

__all__ = [
    "SessionStorage",
    "AuthProvider", "LocalAuthProvider",
    "SessionManager",
    "AuthGuard", "GuardResult", "GuardState", "sign_in_redirect",
]
