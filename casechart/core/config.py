"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CASECHART_",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Case Chart Core"
    debug: bool = False
    log_level: str = "INFO"

    # Diagnosis linkage
    reject_duplicate_diagnoses: bool = True
    materialize_default_rows: bool = True

    # Regional assessments
    legacy_key_fallback: bool = True  # Read bare pre-namespacing keys
    strict_grades: bool = True

    # Audit
    audit_enabled: bool = True

    @property
    def effective_log_level(self) -> str:
        """Get the log level, forced to DEBUG when debug is on."""
        return "DEBUG" if self.debug else self.log_level.upper()


settings = Settings()
