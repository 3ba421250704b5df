from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./finacco.db"
    database_echo: bool = False

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7
    email_token_expire_hours: int = 24

    site_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Session manager / auth guard
    session_refresh_interval_seconds: float = 30 * 60
    session_check_retries: int = 3
    session_retry_base_delay: float = 1.0
    auth_guard_interval_seconds: float = 5 * 60

    # Generation service
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.0-flash"
    llm_timeout_seconds: float = 15.0
    llm_max_attempts: int = 3
    llm_retry_base_delay: float = 1.0
    api_key_prefix: str = "AIza"
    api_key_min_length: int = 30

    rate_limit_max_requests: int = 3
    rate_limit_window_seconds: float = 60.0

    pdf_page_size: str = "A4"
    pdf_margin_mm: int = 15

    oauth_google_client_id: str = ""
    oauth_google_client_secret: str = ""
    oauth_google_authorize_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    oauth_google_token_url: str = "https://oauth2.googleapis.com/token"
    oauth_google_userinfo_url: str = "https://www.googleapis.com/oauth2/v3/userinfo"

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = "Finacco Solutions <no-reply@finaccosolutions.com>"

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
