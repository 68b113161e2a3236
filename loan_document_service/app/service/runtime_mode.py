# Runtime mode: the explicit demo/live switches and timing knobs handed to business logic
from pydantic import BaseModel, ConfigDict

from loan_document_service.app.config import AppSettings


class RuntimeMode(BaseModel):
    """
    Immutable bundle of the behaviour switches that differ between demo and live runs.

    Built once at startup from settings and passed to the OTP verifier, the batch
    command handlers and the document generation worker, so none of them read
    ambient configuration.
    """
    model_config = ConfigDict(frozen=True)

    demo_mode: bool = False
    demo_otp: str = "123456"

    otp_length: int = 6
    otp_ttl_seconds: int = 300
    otp_max_attempts: int = 3

    consent_ttl_hours: int = 24
    estimated_completion_minutes: int = 10
    generation_start_delay_seconds: float = 5.0
    bank_latency_seconds: float = 0.5

    document_ttl_days: int = 30
    document_max_downloads: int = 10
    share_token_ttl_hours: int = 24
    share_token_max_access: int = 5
    document_storage_path: str = "/uploads/documents"
    download_base_url: str = "/api/v1/documents"

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RuntimeMode":
        return cls(
            demo_mode=settings.DEMO_MODE,
            demo_otp=settings.DEMO_OTP,
            otp_length=settings.OTP_LENGTH,
            otp_ttl_seconds=settings.OTP_TTL_SECONDS,
            otp_max_attempts=settings.OTP_MAX_ATTEMPTS,
            consent_ttl_hours=settings.CONSENT_TTL_HOURS,
            estimated_completion_minutes=settings.ESTIMATED_COMPLETION_MINUTES,
            generation_start_delay_seconds=settings.GENERATION_START_DELAY_SECONDS,
            bank_latency_seconds=settings.BANK_LATENCY_SECONDS,
            document_ttl_days=settings.DOCUMENT_TTL_DAYS,
            document_max_downloads=settings.DOCUMENT_MAX_DOWNLOADS,
            share_token_ttl_hours=settings.SHARE_TOKEN_TTL_HOURS,
            share_token_max_access=settings.SHARE_TOKEN_MAX_ACCESS,
            document_storage_path=settings.DOCUMENT_STORAGE_PATH,
            download_base_url=settings.DOCUMENT_DOWNLOAD_BASE_URL,
        )
