from pathlib import Path
from typing import Annotated, List

from pydantic_settings import BaseSettings, NoDecode
from pydantic import ConfigDict, field_validator
import json


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./primelist.db"

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Image storage: "database" keeps bytes in property_images,
    # "filesystem" writes them under UPLOAD_ROOT and stores a reference
    IMAGE_STORAGE_BACKEND: str = "database"
    UPLOAD_ROOT: Path = Path("uploads")
    LEGACY_URL_PREFIX: str = "/uploads"

    # Upload limits
    MAX_IMAGE_SIZE_BYTES: int = 5 * 1024 * 1024
    ALLOWED_IMAGE_TYPES: Annotated[List[str], NoDecode] = ["jpeg", "jpg", "png", "gif", "webp"]
    MAX_PROPERTY_IMAGES: int = 20
    MAX_STAGED_IMAGES: int = 10

    LOG_LEVEL: str = "INFO"

    @field_validator("ALLOWED_IMAGE_TYPES", mode="before")
    @classmethod
    def parse_allowed_types(cls, v):
        """Accept a JSON list or a comma-separated string."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
            except json.JSONDecodeError:
                parsed = [part for part in v.split(",")]
            if not isinstance(parsed, list):
                raise ValueError(f"Invalid ALLOWED_IMAGE_TYPES: {v}")
            v = parsed
        return [str(item).strip().lower() for item in v if str(item).strip()]

    @field_validator("IMAGE_STORAGE_BACKEND")
    @classmethod
    def check_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("database", "filesystem"):
            raise ValueError(f"Unknown IMAGE_STORAGE_BACKEND: {v}")
        return v

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
