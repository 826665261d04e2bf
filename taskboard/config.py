from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional
import os

from dotenv import load_dotenv

# Load environment variables from repo root and the working directory (if present).
REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(REPO_ROOT / ".env")
load_dotenv(Path.cwd() / ".env")

REQUIRED_VARS = ("JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET")


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    """Application settings, normally built from the environment."""

    jwt_access_secret: str
    jwt_refresh_secret: str
    env: str = "development"
    host: str = "0.0.0.0"
    port: int = 5000
    database_url: str = "sqlite:///./taskboard.db"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"
    log_file: Optional[str] = None
    bcrypt_rounds: int = 10
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    auth_rate_limit_max: int = 5
    auth_rate_limit_window_seconds: int = 15 * 60

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def is_development(self) -> bool:
        return self.env == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}\n"
                "Please check your .env file."
            )

        return cls(
            jwt_access_secret=os.environ["JWT_ACCESS_SECRET"],
            jwt_refresh_secret=os.environ["JWT_REFRESH_SECRET"],
            env=os.getenv("APP_ENV", "development"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 5000),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./taskboard.db"),
            cors_origins=_env_list("CLIENT_URL", "http://localhost:3000"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE") or None,
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 10),
            access_token_expire_minutes=_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 15),
            refresh_token_expire_days=_env_int("REFRESH_TOKEN_EXPIRE_DAYS", 7),
            auth_rate_limit_max=_env_int("AUTH_RATE_LIMIT_MAX", 5),
            auth_rate_limit_window_seconds=_env_int("AUTH_RATE_LIMIT_WINDOW_SECONDS", 15 * 60),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for the running process, read once."""
    return Settings.from_env()
