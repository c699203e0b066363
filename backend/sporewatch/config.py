import os
from pydantic import BaseModel


def _database_url() -> str:
    url = os.getenv("DATABASE_URL", "sqlite:///./sporewatch.db")
    # Heroku/Supabase style URLs
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Settings(BaseModel):
    app_env: str = os.getenv("APP_ENV", "development")
    db_url: str = _database_url()
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # auth
    session_cookie: str = "session"
    session_ttl_hours: int = int(os.getenv("SESSION_TTL_HOURS", "24"))
    login_max_attempts: int = int(os.getenv("LOGIN_MAX_ATTEMPTS", "10"))
    login_window_minutes: int = int(os.getenv("LOGIN_WINDOW_MINUTES", "15"))
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # seed_dev
    seed_admin_email: str = os.getenv("SEED_ADMIN_EMAIL", "admin@spore.local")
    seed_admin_password: str = os.getenv("SEED_ADMIN_PASSWORD", "admin123")

    @property
    def cookie_secure(self) -> bool:
        return self.app_env.lower() == "production"


settings = Settings()
