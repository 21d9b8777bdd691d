# Filename: clouddrive/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from pathlib import Path
from typing import Literal, Optional

GIB = 1024 * 1024 * 1024


class Settings(BaseSettings):
    # Core
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    app_name: str = "CloudDrive"
    app_version: str = "0.1.0"

    secret_key: str = Field(..., description="JWT secret key - required")
    access_token_expire_minutes: int = 60 * 24 * 7
    jwt_algorithm: str = "HS256"

    database_url: str = Field(..., description="Database connection string")

    storage_path: Path = Path("./data")
    public_base_url: str = "http://localhost:3001"
    client_url: str = "http://localhost:5173"
    max_upload_size_mb: int = 100
    signed_url_expire_seconds: int = 3600

    # full-text search over files.search_vector (postgres only)
    use_fts: bool = False

    cors_allow_origins: str = "http://localhost:5173"
    cors_allow_credentials: bool = True
    cors_allow_methods: str = "*"
    cors_allow_headers: str = "*"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Billing
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_id_pro: Optional[str] = None
    stripe_price_id_business: Optional[str] = None

    free_storage_limit_bytes: int = 5 * GIB
    free_file_count_limit: int = 10_000
    pro_storage_limit_bytes: int = 200 * GIB
    pro_file_count_limit: int = 100_000
    pro_price_monthly: int = 9
    business_storage_limit_bytes: int = 2048 * GIB
    business_file_count_limit: int = 1_000_000
    business_price_monthly: int = 19

    # Google sign-in
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_uri: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="CLOUDDRIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def oauth_redirect_uri(self) -> str:
        return self.google_redirect_uri or f"{self.public_base_url}/api/auth/google/callback"


settings = Settings()
