# Maps service exceptions onto HTTP errors carrying the {success, error_code, message} envelope
from typing import Any, Dict

from fastapi import HTTPException

from loan_document_service.app.service.exceptions import (
    BaseLoanDocumentError,
    BatchNotFoundError,
    UserNotFoundError,
    ConsentExpiredError,
    InvalidBatchStateError,
    OtpVerificationError,
    DocumentNotFoundError,
    DocumentUnavailableError,
    ShareTokenInvalidError,
    ConsentDirectoryError,
)

STATUS_CODES = {
    BatchNotFoundError: 404,
    UserNotFoundError: 404,
    DocumentNotFoundError: 404,
    ConsentExpiredError: 401,
    InvalidBatchStateError: 400,
    OtpVerificationError: 400,
    ShareTokenInvalidError: 403,
    ConsentDirectoryError: 503,
}


def error_body(error_code: str, message: str, **extra: Any) -> Dict[str, Any]:
    body = {"success": False, "error_code": error_code, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def to_http_exception(exc: BaseLoanDocumentError) -> HTTPException:
    if isinstance(exc, DocumentUnavailableError):
        status_code = 410 if exc.reason == "DOCUMENT_EXPIRED" else 403
    else:
        status_code = STATUS_CODES.get(type(exc), 500)

    extra = {}
    if isinstance(exc, OtpVerificationError):
        extra["attempts_remaining"] = exc.attempts_remaining
    return HTTPException(status_code=status_code, detail=error_body(exc.error_code, str(exc), **extra))
