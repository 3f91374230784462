import logging
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "default-secret-key-change-in-production"


class Settings(BaseSettings):
    """Read from the environment, then from ``.env``; field names are the variable names."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    token_ttl_hours: int = Field(24, gt=0)
    database_url: str = "sqlite:///./shop.db"
    port: int = 8080
    log_level: str = "INFO"
    cors_origins: Annotated[List[str], NoDecode] = ["*"]
    bcrypt_rounds: int = Field(12, ge=4, le=31)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, value):
        # CORS_ORIGINS is a comma separated list
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls()
        if settings.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("JWT_SECRET is not set, using the development key")
        return settings
