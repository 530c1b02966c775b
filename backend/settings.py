"""
Application settings - auth, CORS and spreadsheet sync
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_DIR = Path(__file__).parent


class AppSettings(BaseSettings):
    """Application configuration - reads from environment variables or .env."""

    # JWT
    secret_key: str = "your-secret-key-change-in-production"
    access_token_expire_days: int = 30
    min_password_length: int = 6

    # CORS
    cors_origins: str = "*"

    # Google Sheets sync
    google_sheet_id: str = ""
    google_application_credentials: str = str(BACKEND_DIR / "google-credentials.json")
    sheets_enabled: bool = True
    sheets_timeout_seconds: float = 15.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def google_credentials_path(self) -> Path:
        path = Path(self.google_application_credentials).expanduser()
        return path if path.is_absolute() else BACKEND_DIR / path


app_settings = AppSettings()
