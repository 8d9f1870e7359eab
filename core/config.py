"""
Centralized configuration management.
All environment variables and settings are defined here.
"""
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="Budget Expense Reporter", alias="APP_NAME")
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Extraction
    default_template_version: int = Field(default=1, alias="DEFAULT_TEMPLATE_VERSION")
    max_upload_mb: int = Field(default=50, alias="MAX_UPLOAD_MB")

    # Downloads
    temp_storage_path: str = Field(default="files", alias="STORAGE_PATH")
    report_filename: str = Field(default="expense-report.pdf", alias="REPORT_FILENAME")
    progress_filename: str = Field(default="budget-progress.pdf", alias="PROGRESS_FILENAME")
    save_point_prefix: str = Field(default="budget-save-point", alias="SAVE_POINT_PREFIX")
    save_point_extension: str = Field(default=".btsp", alias="SAVE_POINT_EXTENSION")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("default_template_version")
    @classmethod
    def validate_template_version(cls, v):
        """Only the generic (1) and split-sheet (2) layouts exist."""
        if v not in (1, 2):
            raise ValueError("Template version must be 1 or 2")
        return v

    @field_validator("max_upload_mb")
    @classmethod
    def validate_upload_limit(cls, v):
        """Validate upload size limit."""
        if v < 1:
            raise ValueError("Upload limit must be at least 1 MB")
        if v > 500:
            raise ValueError("Upload limit should not exceed 500 MB")
        return v

    @field_validator("save_point_extension")
    @classmethod
    def validate_extension(cls, v):
        if not v.startswith("."):
            return f".{v}"
        return v

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        Path(self.temp_storage_path).mkdir(parents=True, exist_ok=True)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If a setting is invalid or the storage directory cannot be created
    """
    global _settings
    if _settings is None:
        try:
            settings = Settings()
            settings.ensure_directories()
        except PydanticValidationError as e:
            raise ConfigurationError(
                "Invalid configuration",
                details={"error": str(e), "fields": [".".join(map(str, err["loc"])) for err in e.errors()]}
            ) from e
        except OSError as e:
            raise ConfigurationError(
                "Unable to create the storage directory",
                details={"error": str(e)}
            ) from e
        _settings = settings
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
