from finacco.db.models.user import User, RefreshToken
from finacco.db.models.profile import Profile
from finacco.db.models.template import DocumentCategory, DocumentTemplate
from finacco.db.models.chat import ChatHistory
from finacco.db.models.api_key import ApiKey

__all__ = [
    "User",
    "RefreshToken",
    "Profile",
    "DocumentCategory",
    "DocumentTemplate",
    "ChatHistory",
    "ApiKey",
]
