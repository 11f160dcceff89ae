"""
Configuration for the Notebox HTTP gateway.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP gateway configuration loaded from environment."""

    host: str = Field(default="0.0.0.0", description="Gateway bind host")
    port: int = Field(default=8080, description="Gateway bind port")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    model_config = {"env_prefix": "NOTEBOX_HTTP_"}
