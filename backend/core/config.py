import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()  # loads backend/.env (local). In deployment, env vars are already set.

def _parse_frontend_origins(value: str) -> list[str]:
    origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    return origins or ["http://localhost:3000"]

def _default_log_level() -> str:
    env = os.getenv("APP_ENV", "development").strip().lower()
    return "DEBUG" if env == "development" else "INFO"

@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "")
    jwt_secret: str = os.getenv("JWT_SECRET", "")
    jwt_alg: str = os.getenv("JWT_ALG", "HS256")
    jwt_expire_hours: int = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
    frontend_origins: list[str] = field(
        default_factory=lambda: _parse_frontend_origins(
            os.getenv("FRONTEND_ORIGINS", os.getenv("FRONTEND_ORIGIN", "http://localhost:3000"))
        )
    )
    app_env: str = os.getenv("APP_ENV", "development").strip().lower()
    log_level: str = os.getenv("LOG_LEVEL", "") or _default_log_level()
    log_file: str = os.getenv("LOG_FILE", "").strip()

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

settings = Settings()

if not settings.database_url:
    raise RuntimeError("DATABASE_URL is missing. Set it in backend/.env or the environment.")
