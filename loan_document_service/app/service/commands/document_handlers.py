# Handlers for generated documents: listing, access tracking, share links and deletion
import logging
from typing import List, Optional

from opentelemetry import trace

from .models import RecordDocumentAccessCommand, CreateShareTokenCommand
from loan_document_service.app.dependencies.services import ServiceContainer
from loan_document_service.app.models import DocumentDB, DocumentSummary, FileDescriptor, AccessType, ShareToken
from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.service.exceptions import (
    BatchNotFoundError, DocumentNotFoundError, DocumentUnavailableError, ShareTokenInvalidError,
)

logger = logging.getLogger(__name__)


async def _load_document(services: ServiceContainer, document_id: str) -> DocumentDB:
    document = await services.document_repository.get_by_document_id(document_id)
    if document is None:
        raise DocumentNotFoundError(document_id=document_id)
    return document


async def handle_list_batch_documents(services: ServiceContainer, batch_id: str) -> List[DocumentSummary]:
    if await services.batch_repository.get_by_batch_id(batch_id) is None:
        raise BatchNotFoundError(batch_id=batch_id)
    now = utcnow()
    documents = await services.document_repository.list_by_request_id(batch_id)
    return [document.get_summary(now) for document in documents]


async def handle_list_pan_documents(
    services: ServiceContainer,
    pan_number: str,
    status: Optional[str] = None,
) -> List[DocumentSummary]:
    now = utcnow()
    documents = await services.document_repository.list_by_pan(pan_number.upper(), status=status)
    return [document.get_summary(now) for document in documents]


async def handle_get_document(services: ServiceContainer, command: RecordDocumentAccessCommand) -> DocumentSummary:
    document = await _load_document(services, command.document_id)
    document.record_access(AccessType.VIEW, command.ip_address, command.user_agent, command.session_id)
    await services.document_repository.save(document)
    return document.get_summary()


async def handle_download_document(services: ServiceContainer, command: RecordDocumentAccessCommand) -> FileDescriptor:
    """
    Records a DOWNLOAD and returns where the file lives. Serving the bytes is left
    to the file storage in front of this service.
    """
    current_span = trace.get_current_span()
    current_span.set_attribute("document.id", command.document_id)

    document = await _load_document(services, command.document_id)
    block_reason = document.download_block_reason()
    if block_reason is not None:
        current_span.add_event("DownloadRefused", {"reason": block_reason})
        raise DocumentUnavailableError(document.document_id, block_reason)

    document.record_access(AccessType.DOWNLOAD, command.ip_address, command.user_agent, command.session_id)
    await services.document_repository.save(document)
    logger.info(f"Document {document.document_id} downloaded ({document.download_count}/{document.max_downloads}).")
    return document.file_descriptor()


async def handle_share_document(services: ServiceContainer, command: CreateShareTokenCommand) -> ShareToken:
    document = await _load_document(services, command.document_id)
    if document.is_expired():
        raise DocumentUnavailableError(document.document_id, "DOCUMENT_EXPIRED")

    share_token = document.generate_share_token(
        expires_in_hours=command.expires_in_hours or services.runtime_mode.share_token_ttl_hours,
        max_access=command.max_access or services.runtime_mode.share_token_max_access,
    )
    document.record_access(AccessType.SHARE)
    await services.document_repository.save(document)
    logger.info(f"Share link created for document {document.document_id}, expires {share_token.expires_at.isoformat()}.")
    return share_token


async def handle_access_shared_document(services: ServiceContainer, token: str) -> FileDescriptor:
    document = await services.document_repository.get_by_share_token(token)
    if document is None:
        raise ShareTokenInvalidError()
    if document.is_expired():
        raise DocumentUnavailableError(document.document_id, "DOCUMENT_EXPIRED")
    if not document.validate_share_token(token):
        raise ShareTokenInvalidError()

    document.record_access(AccessType.VIEW)
    await services.document_repository.save(document)
    return document.file_descriptor()


async def handle_delete_document(services: ServiceContainer, command: RecordDocumentAccessCommand) -> None:
    document = await _load_document(services, command.document_id)
    # The access log is stored with the document, so this entry only reaches the logs.
    entry = document.record_access(AccessType.DELETE, command.ip_address, command.user_agent, command.session_id)
    await services.document_repository.delete(document.document_id)
    logger.info(f"Document {document.document_id} deleted at {entry.accessed_at.isoformat()} (ip: {entry.ip_address}).")
