from typing import List, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Fest Portal"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./fest_portal.db"

    # Authentication & Security
    JWT_SECRET_KEY: str = "<your-jwt-secret-key>"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12
    STUDENT_EMAIL_DOMAIN: str = "ekc.edu.in"
    COOKIE_DOMAIN: Optional[str] = None

    # Front-end routes used by the access gate
    DEFAULT_LANDING_ROUTE: str = "/dashboard"

    # Activity audit trail
    AUDIT_QUEUE_SIZE: int = 1000
    AUDIT_LOGIN_CACHE_SIZE: int = 10000
    AUDIT_IP_LOOKUP_ENABLED: bool = False
    AUDIT_IP_LOOKUP_URL: str = "https://api.ipify.org?format=json"
    AUDIT_IP_LOOKUP_TIMEOUT: float = 1.5

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
