import pytest
from pydantic import ValidationError
from unittest.mock import MagicMock

from loan_document_service.app.config import AppSettings
from loan_document_service.app.dependencies.services import build_service_container
from loan_document_service.app.service.exceptions import ConfigurationError
from loan_document_service.infrastructure.consent_service_client import ConsentServiceClient, DemoConsentDirectory
from loan_document_service.infrastructure.database.consent_batch_store import MongoBatchRepository
from loan_document_service.infrastructure.memory.in_memory_store import InMemoryBatchRepository
from loan_document_service.infrastructure.notification_dispatcher import KafkaNotificationDispatcher, LoggingNotificationDispatcher


def _settings(**overrides) -> AppSettings:
    defaults = dict(PERSISTENCE_BACKEND="memory", CONSENT_SERVICE_URL=None, KAFKA_BOOTSTRAP_SERVERS=None)
    defaults.update(overrides)
    return AppSettings(**defaults)


def test_memory_backend_with_demo_collaborators():
    services = build_service_container(_settings(DEMO_MODE=True, OTP_MAX_ATTEMPTS=5))

    assert isinstance(services.batch_repository, InMemoryBatchRepository)
    assert isinstance(services.consent_directory, DemoConsentDirectory)
    assert isinstance(services.notification_dispatcher, LoggingNotificationDispatcher)
    assert services.runtime_mode.demo_mode is True
    assert services.runtime_mode.otp_max_attempts == 5
    assert services.otp_verifier.runtime_mode is services.runtime_mode
    assert services.generation_queue.worker is services.worker
    assert services.worker.batch_repository is services.batch_repository


def test_mongo_backend_requires_database_handle():
    with pytest.raises(ConfigurationError):
        build_service_container(_settings(PERSISTENCE_BACKEND="mongo"))

    services = build_service_container(_settings(PERSISTENCE_BACKEND="mongo"), db=MagicMock())
    assert isinstance(services.batch_repository, MongoBatchRepository)


def test_unknown_backend_is_rejected():
    with pytest.raises(ConfigurationError):
        build_service_container(_settings(PERSISTENCE_BACKEND="sqlite"))


def test_external_collaborators_when_configured():
    services = build_service_container(
        _settings(CONSENT_SERVICE_URL="http://pan-service/api/v1", NOTIFICATION_KAFKA_TOPIC="notify"),
        http_client=MagicMock(),
        kafka_producer=MagicMock(),
    )
    assert isinstance(services.consent_directory, ConsentServiceClient)
    assert isinstance(services.notification_dispatcher, KafkaNotificationDispatcher)
    assert services.notification_dispatcher.topic == "notify"


def test_runtime_mode_is_immutable():
    services = build_service_container(_settings())
    with pytest.raises(ValidationError):
        services.runtime_mode.demo_mode = True
