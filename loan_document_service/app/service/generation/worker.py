# Background generation of the documents requested by a verified consent batch
import asyncio
import datetime
import hashlib
import logging
import random
import time
from typing import Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from loan_document_service.app.models import (
    ConsentBatchDB, SelectedLoan, DocumentDB, DocumentStatus, BatchStatus, BankStatus, NotificationType,
)
from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.models.document_db import SourceSystem
from loan_document_service.app.observability import (
    tracer, documents_generated_counter, batches_finished_counter, batch_generation_duration_histogram,
)
from loan_document_service.app.service.identifiers import epoch_millis, generate_reference
from loan_document_service.app.service.interfaces.notification_dispatcher import AbstractNotificationDispatcher
from loan_document_service.app.service.interfaces.persistence import AbstractBatchRepository, AbstractDocumentRepository
from loan_document_service.app.service.runtime_mode import RuntimeMode

logger = logging.getLogger(__name__)

COMPLETION_MESSAGE = "Your documents are ready for download!"
FAILURE_MESSAGE = "We could not generate your documents. Please try again later."
INTERRUPTED_ERROR = "Generation interrupted by shutdown"
MIN_SIMULATED_FILE_SIZE = 100 * 1024
MAX_SIMULATED_FILE_SIZE = 1024 * 1024


def group_loans_by_bank(selected_loans: List[SelectedLoan]) -> Dict[str, List[SelectedLoan]]:
    """Banks in order of first appearance; each bank keeps its loans in the order supplied."""
    grouped: Dict[str, List[SelectedLoan]] = {}
    for loan in selected_loans:
        grouped.setdefault(loan.bank_name, []).append(loan)
    return grouped


class DocumentGenerationWorker:
    """
    Produces one DocumentDB per (loan, requested document) of a `processing` batch.

    Banks are handled one at a time, grouped in order of first appearance: loans of a
    bank that reappears later in `selected_loans` are pulled forward to that bank's
    group, so documents are not created strictly in the supplied loan order. This keeps
    each bank ledger entry moving pending -> processing -> completed exactly once.

    The batch is saved after every document so that status polls observe progress.
    Any exception terminates the batch as `failed`; documents already stored and banks
    already completed are kept. Cancellation (application shutdown) fails the batch the
    same way before the cancellation propagates, so no batch is left in `processing`.
    """

    def __init__(
        self,
        batch_repository: AbstractBatchRepository,
        document_repository: AbstractDocumentRepository,
        notification_dispatcher: AbstractNotificationDispatcher,
        runtime_mode: RuntimeMode,
    ):
        self.batch_repository = batch_repository
        self.document_repository = document_repository
        self.notification_dispatcher = notification_dispatcher
        self.runtime_mode = runtime_mode

    async def run(self, batch_id: str) -> Optional[ConsentBatchDB]:
        try:
            return await self._generate(batch_id)
        except asyncio.CancelledError:
            await self._record_interruption(batch_id)
            raise

    async def _generate(self, batch_id: str) -> Optional[ConsentBatchDB]:
        if self.runtime_mode.generation_start_delay_seconds > 0:
            await asyncio.sleep(self.runtime_mode.generation_start_delay_seconds)

        batch = await self.batch_repository.get_by_batch_id(batch_id)
        if batch is None:
            logger.warning(f"Generation skipped: batch {batch_id} no longer exists.")
            return None
        if batch.status != BatchStatus.PROCESSING.value:
            logger.warning(f"Generation skipped: batch {batch_id} is '{batch.status}', not 'processing'.")
            return batch

        with tracer.start_as_current_span("generate_batch_documents", kind=SpanKind.INTERNAL) as gen_span:
            gen_span.set_attribute("batch.id", batch_id)
            gen_span.set_attribute("batch.documents.requested", batch.total_documents_requested)
            start_time = time.perf_counter()
            current_bank: Optional[str] = None
            try:
                batch.mark_generating()
                await self.batch_repository.save(batch)

                for bank_name, loans in group_loans_by_bank(batch.selected_loans).items():
                    current_bank = bank_name
                    await self._process_bank(batch, bank_name, loans)
                current_bank = None

                batch.mark_completed()
                await self._notify(batch, COMPLETION_MESSAGE)
                await self.batch_repository.save(batch)

                batches_finished_counter.add(1, {"status": BatchStatus.COMPLETED.value})
                gen_span.set_status(Status(StatusCode.OK))
                logger.info(f"Batch {batch_id} completed: {batch.documents_generated} documents generated.")
            except Exception as e:
                logger.error(f"Document generation failed for batch {batch_id} (bank: {current_bank}): {e}", exc_info=True)
                gen_span.record_exception(e)
                gen_span.set_status(Status(StatusCode.ERROR, description=f"Generation Error: {type(e).__name__}"))
                await self._fail(batch, str(e), current_bank)
            finally:
                batch_generation_duration_histogram.record(
                    time.perf_counter() - start_time, attributes={"status": str(batch.status)}
                )
        return batch

    async def _process_bank(self, batch: ConsentBatchDB, bank_name: str, loans: List[SelectedLoan]) -> None:
        documents_requested = sum(len(loan.requested_documents) for loan in loans)
        batch.update_bank_status(bank_name, BankStatus.PROCESSING, documents_requested=documents_requested)
        await self.batch_repository.save(batch)
        logger.info(f"Batch {batch.batch_id}: fetching {documents_requested} documents from {bank_name}.")

        generated = 0
        for loan in loans:
            for requested in loan.requested_documents:
                if self.runtime_mode.bank_latency_seconds > 0:
                    await asyncio.sleep(self.runtime_mode.bank_latency_seconds)
                document = self.build_document(batch, loan, requested.document_type, requested.sub_type)
                await self.document_repository.insert(document)
                generated += 1
                batch.record_document_generated()
                batch.bank_processing_status[bank_name].documents_generated = generated
                await self.batch_repository.save(batch)
                documents_generated_counter.add(1, {"bank.name": bank_name, "document.type": document.document_type})

        batch.update_bank_status(bank_name, BankStatus.COMPLETED, documents_generated=generated)
        await self.batch_repository.save(batch)

    def build_document(
        self,
        batch: ConsentBatchDB,
        loan: SelectedLoan,
        document_type: str,
        sub_type: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> DocumentDB:
        now = now or utcnow()
        document_id = generate_reference("DOC", now)
        timestamp = epoch_millis(now)
        file_name = f"{loan.bank_name.replace(' ', '_')}_{document_type}_{timestamp}.pdf"
        # Stand-in for the bytes a bank would return
        content = f"{batch.batch_id}|{loan.loan_id}|{loan.account_id}|{document_type}|{timestamp}".encode("utf-8")
        return DocumentDB(
            document_id=document_id,
            request_id=batch.batch_id,
            pan_number=batch.pan_number,
            loan_id=loan.loan_id,
            account_id=loan.account_id,
            bank_name=loan.bank_name,
            document_type=document_type,
            document_sub_type=sub_type,
            status=DocumentStatus.READY,
            file_name=file_name,
            file_path=f"{self.runtime_mode.document_storage_path.rstrip('/')}/{document_id}.pdf",
            file_size=random.randint(MIN_SIMULATED_FILE_SIZE, MAX_SIMULATED_FILE_SIZE),
            mime_type="application/pdf",
            download_url=f"{self.runtime_mode.download_base_url.rstrip('/')}/{document_id}/download",
            checksum=hashlib.sha256(content).hexdigest(),
            generated_at=now,
            expires_at=now + datetime.timedelta(days=self.runtime_mode.document_ttl_days),
            max_downloads=self.runtime_mode.document_max_downloads,
            source_system=SourceSystem.BANK_API,
            created_at=now,
            updated_at=now,
        )

    async def _record_interruption(self, batch_id: str) -> None:
        # Reload: every completed step was saved, and the in-flight bank is the one still `processing`.
        batch = await self.batch_repository.get_by_batch_id(batch_id)
        if batch is None or batch.status != BatchStatus.PROCESSING.value:
            return
        current_bank = next(
            (entry.bank_name for entry in batch.bank_status_list() if entry.status == BankStatus.PROCESSING.value),
            None,
        )
        logger.warning(f"Generation for batch {batch_id} cancelled (bank: {current_bank}); marking it failed.")
        await self._fail(batch, INTERRUPTED_ERROR, current_bank)

    async def _fail(self, batch: ConsentBatchDB, error_message: str, bank_name: Optional[str]) -> None:
        batch.mark_generation_failed(error_message, bank_name=bank_name)
        batches_finished_counter.add(1, {"status": BatchStatus.FAILED.value})
        try:
            await self._notify(batch, FAILURE_MESSAGE)
            await self.batch_repository.save(batch)
        except Exception as e:
            logger.error(f"Could not persist failure state of batch {batch.batch_id}: {e}", exc_info=True)

    async def _notify(self, batch: ConsentBatchDB, message: str) -> None:
        notification = batch.add_notification(NotificationType.SMS, message)
        notification.status = await self.notification_dispatcher.dispatch(batch, notification)
        trace.get_current_span().add_event("BatchNotificationDispatched", {"notification.status": str(notification.status)})
