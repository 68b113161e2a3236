# Service container: the collaborators every handler needs, built once at startup
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from loan_document_service.app.config import AppSettings
from loan_document_service.app.service.exceptions import ConfigurationError
from loan_document_service.app.service.generation.queue import GenerationQueue
from loan_document_service.app.service.generation.worker import DocumentGenerationWorker
from loan_document_service.app.service.interfaces.consent_directory import AbstractConsentDirectory
from loan_document_service.app.service.interfaces.notification_dispatcher import AbstractNotificationDispatcher
from loan_document_service.app.service.interfaces.persistence import AbstractBatchRepository, AbstractDocumentRepository
from loan_document_service.app.service.otp_verifier import OtpVerifier
from loan_document_service.app.service.runtime_mode import RuntimeMode
from loan_document_service.infrastructure.consent_service_client import ConsentServiceClient, DemoConsentDirectory
from loan_document_service.infrastructure.database.consent_batch_store import MongoBatchRepository
from loan_document_service.infrastructure.database.document_store import MongoDocumentRepository
from loan_document_service.infrastructure.kafka.producer import KafkaProducerService
from loan_document_service.infrastructure.memory.in_memory_store import InMemoryBatchRepository, InMemoryDocumentRepository
from loan_document_service.infrastructure.notification_dispatcher import KafkaNotificationDispatcher, LoggingNotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    runtime_mode: RuntimeMode
    batch_repository: AbstractBatchRepository
    document_repository: AbstractDocumentRepository
    consent_directory: AbstractConsentDirectory
    notification_dispatcher: AbstractNotificationDispatcher
    otp_verifier: OtpVerifier
    worker: DocumentGenerationWorker
    generation_queue: GenerationQueue


def build_service_container(
    settings: AppSettings,
    http_client: Optional[httpx.AsyncClient] = None,
    db: Optional[AsyncIOMotorDatabase] = None,
    kafka_producer: Optional[KafkaProducerService] = None,
) -> ServiceContainer:
    runtime_mode = RuntimeMode.from_settings(settings)

    backend = settings.PERSISTENCE_BACKEND.lower()
    if backend == "mongo":
        if db is None:
            raise ConfigurationError("PERSISTENCE_BACKEND is 'mongo' but no database handle was provided.")
        batch_repository = MongoBatchRepository(db)
        document_repository = MongoDocumentRepository(db)
    elif backend == "memory":
        batch_repository = InMemoryBatchRepository()
        document_repository = InMemoryDocumentRepository()
    else:
        raise ConfigurationError(f"Unknown PERSISTENCE_BACKEND '{settings.PERSISTENCE_BACKEND}'.")

    if settings.CONSENT_SERVICE_URL:
        if http_client is None:
            raise ConfigurationError("CONSENT_SERVICE_URL is set but no HTTP client was provided.")
        consent_directory = ConsentServiceClient(http_client, settings.CONSENT_SERVICE_URL)
    else:
        logger.warning("CONSENT_SERVICE_URL not set. Every PAN is treated as having valid CIBIL consent.")
        consent_directory = DemoConsentDirectory()

    if kafka_producer is not None:
        notification_dispatcher = KafkaNotificationDispatcher(kafka_producer, settings.NOTIFICATION_KAFKA_TOPIC)
    else:
        notification_dispatcher = LoggingNotificationDispatcher()

    worker = DocumentGenerationWorker(batch_repository, document_repository, notification_dispatcher, runtime_mode)
    logger.info(
        f"Service container built: persistence={backend}, demo_mode={runtime_mode.demo_mode}, "
        f"notifications={type(notification_dispatcher).__name__}."
    )
    return ServiceContainer(
        runtime_mode=runtime_mode,
        batch_repository=batch_repository,
        document_repository=document_repository,
        consent_directory=consent_directory,
        notification_dispatcher=notification_dispatcher,
        otp_verifier=OtpVerifier(runtime_mode),
        worker=worker,
        generation_queue=GenerationQueue(worker),
    )


async def get_services(request: Request) -> ServiceContainer:
    """
    FastAPI dependency provider for the ServiceContainer stored on `request.app.state.services`.
    """
    return request.app.state.services
