from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # ── Database ──────────────────────────────────────────────
    database_hostname: str = "localhost"
    database_port: str = "5432"
    database_password: str = ""
    database_name: str = "pmajay"
    database_username: str = "postgres"
    # Full SQLAlchemy URL; wins over the composed Postgres URL when set
    sqlalchemy_database_uri: Optional[str] = None

    # ── JWT ───────────────────────────────────────────────────
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # ── Password / OTP hashing ────────────────────────────────
    bcrypt_rounds: int = 12

    # ── SMTP ──────────────────────────────────────────────────
    mail_username: str
    mail_password: str
    mail_from: str
    mail_server: str = "smtp.gmail.com"
    mail_port: int = 587
    mail_suppress_send: bool = False

    # ── OTP ───────────────────────────────────────────────────
    otp_expiry_minutes: int = 10
    otp_invalidate_on_resend: bool = False
    # Write issued codes to the server log (development fallback when mail is down)
    log_otp_codes: bool = False

    # ── Notifications / session ───────────────────────────────
    notification_recent_limit: int = 10
    session_store_path: str = ".pmajay_session.json"

    # ── App ───────────────────────────────────────────────────
    cors_origins: str = "http://localhost:5173"
    log_level: str = "INFO"

    @property
    def cors_origins_list(self) -> list[str]:
        """Split comma-separated origins into a list, stripping whitespace."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def database_url(self) -> str:
        if self.sqlalchemy_database_uri:
            return self.sqlalchemy_database_uri
        return (
            f"postgresql://{self.database_username}:{self.database_password}"
            f"@{self.database_hostname}:{self.database_port}/{self.database_name}"
        )

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings loader: reads .env once.
    Use this everywhere instead of instantiating Settings() directly.
    """
    return Settings()


settings = get_settings()
