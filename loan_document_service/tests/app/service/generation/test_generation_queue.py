# Unit Tests for the generation queue
import asyncio
import pytest
from unittest.mock import MagicMock

from loan_document_service.app.models import StageStatus
from loan_document_service.app.service.generation.queue import GenerationQueue
from loan_document_service.app.service.generation.worker import INTERRUPTED_ERROR
from loan_document_service.app.service.runtime_mode import RuntimeMode


class GatedWorker:
    """Blocks every run until the test opens the gate."""

    def __init__(self):
        self.gate = asyncio.Event()
        self.runs = []

    async def run(self, batch_id):
        self.runs.append(batch_id)
        await self.gate.wait()


@pytest.mark.asyncio
async def test_at_most_one_in_flight_task_per_batch():
    worker = GatedWorker()
    queue = GenerationQueue(worker)

    assert queue.enqueue("BATCH_1") is True
    assert queue.enqueue("BATCH_1") is False
    assert queue.enqueue("BATCH_2") is True
    assert queue.in_flight("BATCH_1")

    worker.gate.set()
    await queue.drain()

    assert sorted(worker.runs) == ["BATCH_1", "BATCH_2"]
    assert not queue.in_flight("BATCH_1")


@pytest.mark.asyncio
async def test_batch_can_be_enqueued_again_after_completion():
    worker = GatedWorker()
    worker.gate.set()
    queue = GenerationQueue(worker)

    queue.enqueue("BATCH_1")
    await queue.drain()

    assert queue.enqueue("BATCH_1") is True
    await queue.drain()
    assert worker.runs == ["BATCH_1", "BATCH_1"]


@pytest.mark.asyncio
async def test_worker_errors_do_not_escape_the_queue():
    worker = MagicMock()

    async def explode(batch_id):
        raise RuntimeError("unexpected")
    worker.run = explode
    queue = GenerationQueue(worker)

    queue.enqueue("BATCH_1")
    await queue.drain()

    assert not queue.in_flight("BATCH_1")


@pytest.mark.asyncio
async def test_shutdown_cancels_stragglers():
    worker = GatedWorker() # gate never opens
    queue = GenerationQueue(worker)
    queue.enqueue("BATCH_1")
    await asyncio.sleep(0)

    await queue.shutdown(timeout=0.05)

    assert not queue.in_flight("BATCH_1")


@pytest.mark.asyncio
async def test_shutdown_fails_batches_whose_generation_is_cancelled(make_services, make_batch):
    services = make_services(RuntimeMode(generation_start_delay_seconds=0, bank_latency_seconds=0.2))
    batch = make_batch()
    batch.update_stage("CONSENT_PENDING", StageStatus.COMPLETED)
    batch.update_stage("OTP_VERIFICATION", StageStatus.COMPLETED)
    batch.mark_processing(estimated_completion_minutes=10)
    await services.batch_repository.insert(batch)

    services.generation_queue.enqueue(batch.batch_id)
    await asyncio.sleep(0.05)
    await services.generation_queue.shutdown(timeout=0.05)

    stored = await services.batch_repository.get_by_batch_id(batch.batch_id)
    assert stored.status == "failed"
    assert stored.documents_generated == 0
    assert stored.documents_failed == 3
    assert stored.errors[0].error_code == "GENERATION_FAILED"
    assert stored.errors[0].error_message == INTERRUPTED_ERROR
    assert stored.errors[0].bank_name == "Bank A"
    assert stored.bank_processing_status["Bank A"].status == "failed"
    assert stored.progress.stages["GENERATING_DOCUMENTS"].status == "failed"
    assert not services.generation_queue.in_flight(batch.batch_id)
