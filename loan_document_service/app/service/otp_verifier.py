# OTP generation and verification for consent batches
import datetime
import hmac
import logging
import secrets
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from loan_document_service.app.models import ConsentBatchDB, BatchStatus, StageName, StageStatus
from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.service.runtime_mode import RuntimeMode

logger = logging.getLogger(__name__)


class OtpFailureReason(str, Enum):
    EXPIRED = "EXPIRED"
    ATTEMPTS_EXCEEDED = "ATTEMPTS_EXCEEDED"
    INVALID_CODE = "INVALID_CODE"
    NOT_ISSUED = "NOT_ISSUED"

class OtpVerificationResult(BaseModel):
    success: bool
    reason: Optional[OtpFailureReason] = None
    attempts_remaining: int = 0
    demo_bypass: bool = False


class OtpVerifier:
    """
    Issues and checks the short-lived numeric code that authorizes a batch.

    Both operations mutate the batch in place; persisting it (on success and on
    failure, so attempt counts survive) is the caller's job.
    """

    def __init__(self, runtime_mode: RuntimeMode):
        self.runtime_mode = runtime_mode

    def _new_code(self) -> str:
        if self.runtime_mode.demo_mode:
            return self.runtime_mode.demo_otp
        return "".join(secrets.choice("0123456789") for _ in range(self.runtime_mode.otp_length))

    def generate(self, batch: ConsentBatchDB, now: Optional[datetime.datetime] = None) -> str:
        now = now or utcnow()
        code = self._new_code()
        batch.otp_code = code
        batch.otp_sent_at = now
        batch.otp_expires_at = now + datetime.timedelta(seconds=self.runtime_mode.otp_ttl_seconds)
        batch.otp_attempts = 0 # a fresh OTP cycle
        batch.status = BatchStatus.OTP_SENT
        batch.progress.current_stage = StageName.OTP_VERIFICATION
        batch.update_stage(StageName.CONSENT_PENDING, StageStatus.COMPLETED, now=now)
        batch.update_stage(StageName.OTP_VERIFICATION, StageStatus.IN_PROGRESS, now=now)
        logger.info(f"OTP issued for batch {batch.batch_id}, expires at {batch.otp_expires_at.isoformat()}.")
        return code

    def is_demo_code(self, submitted_code: str) -> bool:
        return self.runtime_mode.demo_mode and hmac.compare_digest(submitted_code, self.runtime_mode.demo_otp)

    def verify(
        self,
        batch: ConsentBatchDB,
        submitted_code: str,
        now: Optional[datetime.datetime] = None,
    ) -> OtpVerificationResult:
        now = now or utcnow()
        max_attempts = self.runtime_mode.otp_max_attempts

        if self.is_demo_code(submitted_code):
            self._mark_verified(batch, now)
            logger.info(f"Batch {batch.batch_id} verified with the demo OTP.")
            return OtpVerificationResult(
                success=True,
                attempts_remaining=max(0, max_attempts - batch.otp_attempts),
                demo_bypass=True,
            )

        if batch.otp_code is None or batch.otp_expires_at is None:
            return OtpVerificationResult(success=False, reason=OtpFailureReason.NOT_ISSUED)

        # Expiry is checked before any attempt is consumed.
        if batch.is_otp_expired(now):
            logger.info(f"Expired OTP submitted for batch {batch.batch_id}.")
            return OtpVerificationResult(
                success=False,
                reason=OtpFailureReason.EXPIRED,
                attempts_remaining=max(0, max_attempts - batch.otp_attempts),
            )

        if batch.otp_attempts >= max_attempts:
            logger.warning(f"OTP attempts exhausted for batch {batch.batch_id}.")
            return OtpVerificationResult(success=False, reason=OtpFailureReason.ATTEMPTS_EXCEEDED)

        batch.otp_attempts += 1
        attempts_remaining = max(0, max_attempts - batch.otp_attempts)

        if not hmac.compare_digest(batch.otp_code, submitted_code):
            reason = OtpFailureReason.INVALID_CODE if attempts_remaining > 0 else OtpFailureReason.ATTEMPTS_EXCEEDED
            logger.info(f"Invalid OTP for batch {batch.batch_id} (attempt {batch.otp_attempts}/{max_attempts}).")
            return OtpVerificationResult(success=False, reason=reason, attempts_remaining=attempts_remaining)

        self._mark_verified(batch, now)
        logger.info(f"OTP verified for batch {batch.batch_id}.")
        return OtpVerificationResult(success=True, attempts_remaining=attempts_remaining)

    def _mark_verified(self, batch: ConsentBatchDB, now: datetime.datetime) -> None:
        batch.otp_verified_at = now
        batch.consent_granted_at = now
        batch.status = BatchStatus.VERIFIED
        batch.progress.current_stage = StageName.PROCESSING_STARTED
        batch.update_stage(StageName.CONSENT_PENDING, StageStatus.COMPLETED, now=now)
        batch.update_stage(StageName.OTP_VERIFICATION, StageStatus.COMPLETED, now=now)
