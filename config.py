import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    app_env: str = "development"
    database_url: str = "sqlite:///./task_manager.db"

    # Security config
    secret_key: str = "change-this"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    bcrypt_rounds: int = 12
    reset_token_expire_minutes: int = 30
    expose_reset_token: bool = True

    # Resend
    resend_api_key: str = ""
    from_email: str = ""

    frontend_url: str = "http://localhost:3000"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def email_enabled(self) -> bool:
        return bool(self.resend_api_key and self.from_email)

    def check(self) -> None:
        if self.is_production and self.secret_key == "change-this":
            raise RuntimeError("SECRET_KEY must be set in production")


def load_settings() -> Settings:
    """Read settings from the environment (and a local .env file, if any)."""
    load_dotenv()

    app_env = os.getenv("APP_ENV", "development")
    frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")
    origins = os.getenv("CORS_ORIGINS", "")
    cors_origins = [o.strip() for o in origins.split(",") if o.strip()] or [frontend_url]

    return Settings(
        app_env=app_env,
        database_url=os.getenv("DATABASE_URL", "sqlite:///./task_manager.db"),
        secret_key=os.getenv("SECRET_KEY", "change-this"),
        algorithm=os.getenv("ALGORITHM", "HS256"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
        reset_token_expire_minutes=int(os.getenv("RESET_TOKEN_EXPIRE_MINUTES", "30")),
        expose_reset_token=_env_bool("EXPOSE_RESET_TOKEN", app_env != "production"),
        resend_api_key=os.getenv("RESEND_API_KEY", ""),
        from_email=os.getenv("FROM_EMAIL", ""),
        frontend_url=frontend_url,
        cors_origins=cors_origins,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
