from finacco.db.repositories.user_repository import UserRepository, RefreshTokenRepository
from finacco.db.repositories.profile_repository import ProfileRepository
from finacco.db.repositories.template_repository import CategoryRepository, TemplateRepository
from finacco.db.repositories.chat_repository import ChatHistoryRepository
from finacco.db.repositories.api_key_repository import ApiKeyRepository

__all__ = [
    "UserRepository",
    "RefreshTokenRepository",
    "ProfileRepository",
    "CategoryRepository",
    "TemplateRepository",
    "ChatHistoryRepository",
    "ApiKeyRepository",
]
