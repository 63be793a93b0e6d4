"""
Configuration for the document export service.
Values come from environment variables prefixed with EXPORT_ (or a .env file).
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Export pipeline settings loaded from environment variables."""

    # Page layout (points)
    PAGE_SIZE: str = "A4"
    PAGE_MARGIN: float = 40.0
    LINE_HEIGHT: float = 14.0
    FOOTER_TEXT: str = ""  # appended after "Page N of Total"

    # Unresolved placeholder highlight
    HIGHLIGHT_COLOR: str = "#FFEB3B"

    # Rasterization (canvas PDF and image export)
    RASTER_WIDTH: int = 800  # CSS pixels
    RASTER_SCALE: int = 2  # device pixel ratio
    RASTER_MAX_HEIGHT: int = 40000  # device pixels
    RASTER_ASSET_TIMEOUT: float = 5.0  # seconds to wait for fonts

    # Optional TrueType fonts for rasterization
    FONT_PATH: Optional[str] = None
    BOLD_FONT_PATH: Optional[str] = None

    # Print window
    PRINT_DELAY_MS: int = 500

    # Request limits
    MAX_CONTENT_SIZE: int = 5 * 1024 * 1024  # 5 MB of HTML

    # Server
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    model_config = SettingsConfigDict(
        env_prefix="EXPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
