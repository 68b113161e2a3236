# Command Handler Implementation for consent batches
import logging
from typing import Dict, List, Optional, Tuple

from opentelemetry import trace

from .models import CreateBatchCommand, SendOtpCommand, VerifyOtpCommand
from loan_document_service.app.dependencies.services import ServiceContainer
from loan_document_service.app.models import ConsentBatchDB, BatchStatus, BatchSummary, NotificationType
from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.observability import batches_created_counter, otp_verifications_counter
from loan_document_service.app.service.exceptions import (
    BatchNotFoundError, UserNotFoundError, ConsentExpiredError, InvalidBatchStateError, OtpVerificationError,
)
from loan_document_service.app.service.identifiers import generate_reference

logger = logging.getLogger(__name__)

DEFAULT_CONSENT_TEXT = (
    "I authorize the retrieval of loan documents for the selected accounts from the respective banks."
)


async def _load_batch(services: ServiceContainer, batch_id: str) -> ConsentBatchDB:
    batch = await services.batch_repository.get_by_batch_id(batch_id)
    if batch is None:
        trace.get_current_span().set_attribute("error.message", f"Batch {batch_id} not found")
        raise BatchNotFoundError(batch_id=batch_id)
    return batch


async def handle_create_batch(services: ServiceContainer, command: CreateBatchCommand) -> ConsentBatchDB:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "CreateBatchCommand")
    current_span.set_attribute("command.id", command.command_id)
    current_span.add_event("CreateBatchCommandHandlerStarted")

    pan_number = command.pan_number.upper()
    now = utcnow()
    logger.info(f"Handling CreateBatchCommand {command.command_id}: {len(command.selected_loans)} loans.")

    user = await services.consent_directory.find_user(pan_number)
    if user is None:
        raise UserNotFoundError(pan_number=pan_number)
    if not user.is_cibil_consent_valid(now):
        raise ConsentExpiredError(pan_number=pan_number)

    batch = ConsentBatchDB.open(
        batch_id=generate_reference("BATCH", now),
        pan_number=pan_number,
        selected_loans=command.selected_loans,
        consent_ttl_hours=services.runtime_mode.consent_ttl_hours,
        now=now,
        consent_text=command.consent_text or DEFAULT_CONSENT_TEXT,
        phone_number=command.phone_number or user.phone_number,
        email_address=command.email_address or user.email,
        request_metadata=command.request_metadata,
    )
    await services.batch_repository.insert(batch)

    batches_created_counter.add(1, {"request.type": str(batch.request_type)})
    current_span.set_attribute("batch.id", batch.batch_id)
    current_span.add_event("CreateBatchCommandHandlerFinished", {
        "batch.id": batch.batch_id,
        "batch.documents.requested": batch.total_documents_requested,
    })
    logger.info(f"Consent batch {batch.batch_id} created with {batch.total_documents_requested} documents requested.")
    return batch


async def _issue_otp(services: ServiceContainer, batch: ConsentBatchDB) -> str:
    code = services.otp_verifier.generate(batch)
    notification = batch.add_notification(
        NotificationType.SMS,
        f"Your OTP for loan document consent is {code}. It is valid for "
        f"{services.runtime_mode.otp_ttl_seconds // 60} minutes.",
    )
    notification.status = await services.notification_dispatcher.dispatch(batch, notification)
    await services.batch_repository.save(batch)
    trace.get_current_span().add_event("OtpIssued", {"notification.status": str(notification.status)})
    return code


async def handle_send_otp(services: ServiceContainer, command: SendOtpCommand) -> Tuple[ConsentBatchDB, str]:
    """
    Issues an OTP for a `pending` batch. Returns the batch and the code; the API
    only reveals the code in demo mode.
    """
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "SendOtpCommand")
    current_span.set_attribute("batch.id", command.batch_id)

    batch = await _load_batch(services, command.batch_id)
    if batch.status != BatchStatus.PENDING.value:
        raise InvalidBatchStateError(batch.batch_id, batch.status, "send OTP")

    return batch, await _issue_otp(services, batch)


async def handle_resend_otp(services: ServiceContainer, command: SendOtpCommand) -> Tuple[ConsentBatchDB, str]:
    """
    Starts a fresh OTP cycle for a batch already in `otp_sent`: new code, new expiry,
    attempts back to zero. This is the only way out of an exhausted or expired code.
    """
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "ResendOtpCommand")
    current_span.set_attribute("batch.id", command.batch_id)

    batch = await _load_batch(services, command.batch_id)
    if batch.status != BatchStatus.OTP_SENT.value:
        raise InvalidBatchStateError(batch.batch_id, batch.status, "resend OTP")
    if batch.is_consent_expired():
        raise ConsentExpiredError(batch.pan_number)

    logger.info(f"Resending OTP for batch {batch.batch_id} after {batch.otp_attempts} attempts.")
    return batch, await _issue_otp(services, batch)


async def handle_verify_otp(services: ServiceContainer, command: VerifyOtpCommand) -> ConsentBatchDB:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "VerifyOtpCommand")
    current_span.set_attribute("batch.id", command.batch_id)

    batch = await _load_batch(services, command.batch_id)
    demo_bypass = services.otp_verifier.is_demo_code(command.otp_code)
    allowed_states = {BatchStatus.OTP_SENT.value}
    if demo_bypass:
        allowed_states.add(BatchStatus.PENDING.value)
    if batch.status not in allowed_states or services.generation_queue.in_flight(batch.batch_id):
        raise InvalidBatchStateError(batch.batch_id, batch.status, "verify OTP")

    result = services.otp_verifier.verify(batch, command.otp_code)
    if not result.success:
        await services.batch_repository.save(batch) # attempt counts must survive
        otp_verifications_counter.add(1, {"result": result.reason.value})
        current_span.add_event("OtpRejected", {"reason": result.reason.value})
        raise OtpVerificationError(batch.batch_id, result.reason.value, result.attempts_remaining)

    otp_verifications_counter.add(1, {"result": "SUCCESS", "demo_bypass": str(result.demo_bypass).lower()})
    batch.mark_processing(services.runtime_mode.estimated_completion_minutes)
    await services.batch_repository.save(batch)

    services.generation_queue.enqueue(batch.batch_id)
    current_span.add_event("DocumentGenerationEnqueued", {"batch.id": batch.batch_id})
    logger.info(f"Batch {batch.batch_id} verified; processing started.")
    return batch


async def handle_get_batch_status(services: ServiceContainer, batch_id: str) -> ConsentBatchDB:
    return await _load_batch(services, batch_id)


async def handle_get_batch_history(
    services: ServiceContainer,
    pan_number: str,
    status: Optional[str] = None,
) -> List[BatchSummary]:
    now = utcnow()
    batches = await services.batch_repository.list_by_pan(pan_number.upper(), status=status)
    return [batch.get_summary(now) for batch in batches]


async def handle_expiry_sweep(services: ServiceContainer) -> Dict[str, int]:
    """Removes abandoned batches and expired ready/downloaded documents."""
    now = utcnow()
    removed = {
        "batches": await services.batch_repository.delete_expired(now),
        "documents": await services.document_repository.delete_expired(now),
    }
    logger.info(f"Expiry sweep finished: {removed['batches']} batches, {removed['documents']} documents removed.")
    return removed
