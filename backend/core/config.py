# backend/core/config.py
# Service configuration - read once at startup, immutable afterwards

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Bridge settings

    Credentials are required: a missing variable fails the startup,
    not the first request that needs it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Summit (accounting)
    summit_company_id: str
    summit_api_key: str
    summit_base_url: str = "https://app.sumit.co.il"

    # Pelecard (payment gateway)
    pelecard_terminal: str
    pelecard_user: str
    pelecard_password: str
    pelecard_base_url: str = "https://gateway20.pelecard.biz/PaymentGW"
    pelecard_min_payments: int = 1
    pelecard_max_payments: int = 12

    # Callback / redirect targets
    public_base_url: str = "http://localhost:8080"
    result_page_url: str = "https://www.example.org/registration/result"
    sf_return_url: str = "https://www.example.org/registration/receipt"

    # Documents
    document_item_description: str = "השגחה בטיפול פוריות"
    document_currency: str = "ILS"

    # Runtime
    scratch_dir: Path = Path("data/registrations")
    http_timeout_seconds: float = 5.0
    log_level: str = "INFO"
    log_json: bool = True
    port: int = 8080


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings"""
    return Settings()
