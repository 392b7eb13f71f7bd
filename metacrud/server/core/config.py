"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class CORSConfig(BaseModel):
    """CORS configuration."""

    origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS", description="Allowed CORS origins (use * for all)")
    allow_credentials: bool = Field(
        default=True, alias="CORS_ALLOW_CREDENTIALS", description="Allow credentials in CORS requests"
    )
    allow_methods: list[str] = Field(
        default=["*"], alias="CORS_ALLOW_METHODS", description="Allowed HTTP methods (use * for all)"
    )
    allow_headers: list[str] = Field(
        default=["*"], alias="CORS_ALLOW_HEADERS", description="Allowed HTTP headers (use * for all)"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # metacrud Server Configuration
    # =====================================================================
    server_host: str = Field(
        default="0.0.0.0",
        description="metacrud server host address to bind to",
        alias="METACRUD_SERVER_HOST",
    )
    server_port: int = Field(
        default=8000,
        description="metacrud server port number",
        alias="METACRUD_SERVER_PORT",
    )
    api_prefix: str = Field(
        default="",
        description="Path prefix under which the entity routes are mounted",
        alias="METACRUD_API_PREFIX",
    )

    # =====================================================================
    # Logging Configuration
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="metacrud logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="METACRUD_LOG_LEVEL",
    )
    log_format: str = Field(
        default="detailed",
        description="Log line format (simple, detailed, json)",
        alias="METACRUD_LOG_FORMAT",
    )
    log_file_dir: str = Field(
        default="logs",
        description="Directory of the log file",
        alias="METACRUD_LOG_FILE_DIR",
    )
    enable_file_logging: bool = Field(
        default=False,
        description="Also write logs to <log_file_dir>/metacrud.log",
        alias="METACRUD_ENABLE_FILE_LOGGING",
    )

    # =====================================================================
    # Database and Schema Configuration
    # =====================================================================
    database_url: str = Field(
        default="sqlite:///./metacrud.db",
        description="SQLAlchemy connection URL of the entity database",
        alias="DATABASE_URL",
    )
    schema_source: Literal["file", "database"] = Field(
        default="file",
        description="Where the API schema is read from",
        alias="METACRUD_SCHEMA_SOURCE",
    )
    schema_file: Optional[str] = Field(
        default=None,
        description="Path of the JSON schema document when the source is 'file'",
        alias="METACRUD_SCHEMA_FILE",
    )

    # =====================================================================
    # Behaviour
    # =====================================================================
    print_links: bool = Field(
        default=False,
        description="Append the 'links' map to serialized entities",
        alias="PRINT_LINKS",
    )
    api_tokens: Dict[str, int] = Field(
        default_factory=dict,
        description="JSON object mapping bearer tokens to session levels",
        alias="METACRUD_API_TOKENS",
    )

    # =====================================================================
    # CORS Configuration
    # =====================================================================
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(default=["*"], alias="CORS_ALLOW_METHODS")
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def cors(self) -> CORSConfig:
        """Get CORS configuration from environment variables."""
        return CORSConfig.model_validate(self.model_dump(by_alias=True))


settings = Settings()
