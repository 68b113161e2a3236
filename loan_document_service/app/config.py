# Application Configuration using Pydantic BaseSettings
from pydantic_settings import BaseSettings
from typing import Optional

class AppSettings(BaseSettings):
    # Persistence
    MONGO_DETAILS: str = "mongodb://mongo:27017"
    DB_NAME: str = "loan_document_db"
    PERSISTENCE_BACKEND: str = "mongo" # "mongo" or "memory"

    # Demo / runtime behaviour
    DEMO_MODE: bool = False
    DEMO_OTP: str = "123456"

    # OTP
    OTP_LENGTH: int = 6
    OTP_TTL_SECONDS: int = 300
    OTP_MAX_ATTEMPTS: int = 3

    # Consent batches
    CONSENT_TTL_HOURS: int = 24
    ESTIMATED_COMPLETION_MINUTES: int = 10
    GENERATION_START_DELAY_SECONDS: float = 5.0
    BANK_LATENCY_SECONDS: float = 0.5
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 600 # 0 disables the periodic sweep

    # Documents
    DOCUMENT_TTL_DAYS: int = 30
    DOCUMENT_MAX_DOWNLOADS: int = 10
    SHARE_TOKEN_TTL_HOURS: int = 24
    SHARE_TOKEN_MAX_ACCESS: int = 5
    DOCUMENT_STORAGE_PATH: str = "/uploads/documents"
    DOCUMENT_DOWNLOAD_BASE_URL: str = "/api/v1/documents"

    # Consent directory (PAN / CIBIL consent lookups)
    CONSENT_SERVICE_URL: Optional[str] = None # e.g., http://pan-service:8080/api/v1
    DEFAULT_HTTP_TIMEOUT: float = 5.0

    # Kafka (notification delivery)
    KAFKA_BOOTSTRAP_SERVERS: Optional[str] = None
    NOTIFICATION_KAFKA_TOPIC: str = "loan_document_notifications"

    # Observability
    LOG_LEVEL: str = "INFO"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_METRICS_ENDPOINT: Optional[str] = None
    SERVICE_NAME_API: str = "loan-document-api"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

# Instantiate settings to be imported by other modules
settings = AppSettings()

import logging
logger = logging.getLogger(__name__)
# Avoid logging sensitive details (DEMO_OTP, connection strings).
logger.info("Application settings module initialized.")
