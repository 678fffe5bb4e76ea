"""Application configuration."""

from pydantic_settings import BaseSettings
from typing import Dict, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://crm:crm123@db:5432/crm"

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Credits
    INITIAL_CREDITS: int = 100  # Granted on signup

    # Enrichment (credits per requested field)
    ENRICHMENT_COSTS: Dict[str, int] = {
        "email": 2,
        "phone": 3,
        "social": 1,
        "company": 4,
    }
    # Comma-separated list combines sources, e.g. "pattern,other"
    ENRICHMENT_PROVIDER: str = "pattern"
    ENRICHMENT_PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Email finder / verifier
    EMAIL_VERIFY_COST: int = 1
    EMAIL_FIND_COST: int = 1
    EMAIL_VERIFY_MAX_ATTEMPTS: int = 10
    EMAIL_FIND_MAX_ATTEMPTS: int = 5
    POLL_INTERVAL_MS: int = 2000

    # External APIs
    ICYPEAS_API_KEY: Optional[str] = None
    ICYPEAS_BASE_URL: str = "https://app.icypeas.com/api"
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # CRM integrations
    CRM_IMPORT_COST: int = 10
    CRM_EXPORT_COST: int = 5
    HUBSPOT_ACCESS_TOKEN: Optional[str] = None
    SALESFORCE_INSTANCE_URL: Optional[str] = None
    SALESFORCE_ACCESS_TOKEN: Optional[str] = None
    SALESFORCE_API_VERSION: str = "v59.0"

    # AI message writer
    MESSAGE_GENERATION_COST: int = 3
    MESSAGE_GENERATION_TIMEOUT_SECONDS: float = 60.0
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-1.5-pro"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
