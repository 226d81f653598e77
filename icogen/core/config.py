from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    project_name: str = "icogen"
    api_prefix: str = "/api/v1"
    output_dir: Path = Path("/tmp/icogen/icons")
    max_upload_size_bytes: int = 10 * 1024 * 1024
    allowed_image_extensions: tuple[str, ...] = (".png", ".jpg", ".jpeg", ".webp")
    allowed_image_formats: tuple[str, ...] = ("PNG", "JPEG", "WEBP")
    icon_ttl_seconds: int = 60 * 60
    default_resample: str = "LANCZOS"
    request_id_header: str = "X-Request-ID"

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="ICOGEN_", extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
