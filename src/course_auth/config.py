"""Course Auth — configuration loaded from environment."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./course_auth.db"

    # ── Signed links ──────────────────────────────────────
    # Rotating this value invalidates every outstanding course-access link.
    token_secret: SecretStr = SecretStr("")
    frontend_url: str = "http://localhost:3000"

    # ── SMTP (empty host = log codes instead of sending) ──
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "no-reply@elearning.local"

    # ── App ───────────────────────────────────────────────
    app_name: str = "E-learning Platform"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
