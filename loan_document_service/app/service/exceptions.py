"""
Custom exceptions for the Loan Document service.
"""
from typing import Optional


class BaseLoanDocumentError(Exception):
    """Base class for exceptions in this module."""
    error_code: str = "INTERNAL_ERROR"

class BatchNotFoundError(BaseLoanDocumentError):
    """Raised when a consent batch is not found."""
    error_code = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch consent request '{batch_id}' not found.")

class UserNotFoundError(BaseLoanDocumentError):
    """Raised when the consent directory has no record for a PAN."""
    error_code = "USER_NOT_FOUND"

    def __init__(self, pan_number: str):
        self.pan_number = pan_number
        super().__init__("User not found. Please complete PAN verification first.")

class ConsentExpiredError(BaseLoanDocumentError):
    """Raised when the upstream CIBIL consent for a PAN is missing or expired."""
    error_code = "CONSENT_EXPIRED"

    def __init__(self, pan_number: str):
        self.pan_number = pan_number
        super().__init__("CIBIL consent has expired. Please renew consent.")

class InvalidBatchStateError(BaseLoanDocumentError):
    """Raised when an operation is attempted on a batch in an invalid state."""
    error_code = "INVALID_STATE"

    def __init__(self, batch_id: str, current_state: str, attempted_action: str):
        self.batch_id = batch_id
        self.current_state = current_state
        self.attempted_action = attempted_action
        super().__init__(f"Cannot {attempted_action} for batch '{batch_id}' in state '{current_state}'.")

class OtpVerificationError(BaseLoanDocumentError):
    """Raised when an OTP submission is rejected. `reason` is one of the OtpFailureReason values."""

    MESSAGES = {
        "EXPIRED": "OTP has expired",
        "ATTEMPTS_EXCEEDED": "Maximum OTP attempts exceeded",
        "INVALID_CODE": "Invalid OTP",
        "NOT_ISSUED": "No OTP has been issued for this batch",
    }

    def __init__(self, batch_id: str, reason: str, attempts_remaining: Optional[int] = None):
        self.batch_id = batch_id
        self.reason = reason
        self.error_code = reason
        self.attempts_remaining = attempts_remaining
        super().__init__(self.MESSAGES.get(reason, "OTP verification failed"))

class DocumentNotFoundError(BaseLoanDocumentError):
    """Raised when a generated document is not found."""
    error_code = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document '{document_id}' not found.")

class DocumentUnavailableError(BaseLoanDocumentError):
    """Raised when a document exists but may not be downloaded (expired, limit reached, not ready)."""

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        self.error_code = reason
        super().__init__(f"Document '{document_id}' is not available for download ({reason}).")

class ShareTokenInvalidError(BaseLoanDocumentError):
    """Raised when a share token is unknown, inactive, expired or exhausted."""
    error_code = "SHARE_TOKEN_INVALID"

    def __init__(self):
        super().__init__("Share link is invalid or has expired.")

class ConsentDirectoryError(BaseLoanDocumentError):
    """Raised when the consent directory cannot be queried."""
    error_code = "CONSENT_DIRECTORY_UNAVAILABLE"

class ConfigurationError(BaseLoanDocumentError):
    """Raised when a configuration issue is detected."""
    error_code = "CONFIGURATION_ERROR"

class KafkaProducerError(BaseLoanDocumentError):
    """Raised when there's an issue with Kafka message production."""
    error_code = "KAFKA_PRODUCER_ERROR"
