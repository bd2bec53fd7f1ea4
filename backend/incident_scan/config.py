from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # AI Extraction
    anthropic_api_key: str = Field(
        default="",
        description="Anthropic API key (checked when an extraction is requested)",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-6",
        description="Claude model ID for extraction",
    )
    extraction_max_tokens: int = Field(default=4096, description="Max output tokens per extraction")
    extraction_timeout_seconds: float = Field(
        default=90.0,
        description="Hard timeout for a single extraction round-trip",
    )
    field_spec_version: str = Field(
        default="v2",
        description="Field specification used for new extractions",
    )

    # Image normalization
    image_max_edge: int = Field(default=2048, description="Longest edge after resizing, in pixels")
    image_jpeg_quality: int = Field(default=70, description="JPEG quality for re-encoded images")
    max_images_per_request: int = Field(default=5, description="Images accepted per extraction")
    max_image_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted decoded upload, in bytes",
    )
    pdf_render_zoom: float = Field(default=2.0, description="Zoom factor when rasterizing PDF scans")

    # Extraction endpoint rate limit (fixed window, per caller)
    rate_limit_requests: int = Field(default=10, description="Extractions allowed per window")
    rate_limit_window_seconds: int = Field(default=60, description="Rate limit window length")
    rate_limit_trust_client_id: bool = Field(
        default=False,
        description="Key the limit on the X-Client-Id header (only behind a proxy that sets it)",
    )

    # Relational store
    database_url: str = Field(
        default="sqlite+aiosqlite:///./incident_scan.db",
        description="SQLAlchemy async database URL",
    )

    # CORS: front-end origins
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins allowed to call the API",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
