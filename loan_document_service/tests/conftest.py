# Shared fixtures for the loan document service tests
import datetime
from typing import List, Optional

import pytest

from loan_document_service.app.dependencies.services import ServiceContainer
from loan_document_service.app.models import ConsentBatchDB, SelectedLoan, RequestedDocument
from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.service.generation.queue import GenerationQueue
from loan_document_service.app.service.generation.worker import DocumentGenerationWorker
from loan_document_service.app.service.interfaces.consent_directory import AbstractConsentDirectory
from loan_document_service.app.service.interfaces.notification_dispatcher import AbstractNotificationDispatcher
from loan_document_service.app.service.otp_verifier import OtpVerifier
from loan_document_service.app.service.runtime_mode import RuntimeMode
from loan_document_service.infrastructure.consent_service_client import DemoConsentDirectory
from loan_document_service.infrastructure.memory.in_memory_store import InMemoryBatchRepository, InMemoryDocumentRepository
from loan_document_service.infrastructure.notification_dispatcher import LoggingNotificationDispatcher

SAMPLE_PAN = "ABCDE1234F"


def sample_loans() -> List[SelectedLoan]:
    """Two loans at two banks: Bank A with two document types, Bank B with one."""
    return [
        SelectedLoan(
            loan_id="LN-A-1",
            account_id="ACC-A-1",
            bank_name="Bank A",
            loan_type="home_loan",
            outstanding_amount=2500000.0,
            requested_documents=[
                RequestedDocument(document_type="statement_of_account", sub_type="last_6_months"),
                RequestedDocument(document_type="repayment_schedule"),
            ],
        ),
        SelectedLoan(
            loan_id="LN-B-1",
            account_id="ACC-B-1",
            bank_name="Bank B",
            loan_type="personal_loan",
            outstanding_amount=150000.0,
            requested_documents=[RequestedDocument(document_type="sanction_letter", priority="HIGH")],
        ),
    ]


def open_batch(
    batch_id: str = "BATCH_1_deadbeef",
    selected_loans: Optional[List[SelectedLoan]] = None,
    now: Optional[datetime.datetime] = None,
) -> ConsentBatchDB:
    return ConsentBatchDB.open(
        batch_id=batch_id,
        pan_number=SAMPLE_PAN,
        selected_loans=selected_loans if selected_loans is not None else sample_loans(),
        consent_ttl_hours=24,
        now=now or utcnow(),
    )


@pytest.fixture
def runtime_mode() -> RuntimeMode:
    return RuntimeMode(demo_mode=False, generation_start_delay_seconds=0, bank_latency_seconds=0)

@pytest.fixture
def demo_runtime_mode() -> RuntimeMode:
    return RuntimeMode(demo_mode=True, demo_otp="123456", generation_start_delay_seconds=0, bank_latency_seconds=0)


def build_test_services(
    runtime_mode: RuntimeMode,
    consent_directory: Optional[AbstractConsentDirectory] = None,
    notification_dispatcher: Optional[AbstractNotificationDispatcher] = None,
) -> ServiceContainer:
    batch_repository = InMemoryBatchRepository()
    document_repository = InMemoryDocumentRepository()
    dispatcher = notification_dispatcher or LoggingNotificationDispatcher()
    worker = DocumentGenerationWorker(batch_repository, document_repository, dispatcher, runtime_mode)
    return ServiceContainer(
        runtime_mode=runtime_mode,
        batch_repository=batch_repository,
        document_repository=document_repository,
        consent_directory=consent_directory or DemoConsentDirectory(),
        notification_dispatcher=dispatcher,
        otp_verifier=OtpVerifier(runtime_mode),
        worker=worker,
        generation_queue=GenerationQueue(worker),
    )

@pytest.fixture
def services(runtime_mode) -> ServiceContainer:
    return build_test_services(runtime_mode)

@pytest.fixture
def demo_services(demo_runtime_mode) -> ServiceContainer:
    return build_test_services(demo_runtime_mode)

@pytest.fixture
def loans() -> List[SelectedLoan]:
    return sample_loans()

@pytest.fixture
def make_batch():
    return open_batch

@pytest.fixture
def make_services():
    return build_test_services
