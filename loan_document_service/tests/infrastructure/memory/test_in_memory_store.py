import datetime
import pytest

from loan_document_service.app.models import BatchStatus
from loan_document_service.infrastructure.memory.in_memory_store import InMemoryBatchRepository


@pytest.mark.asyncio
async def test_stored_copies_are_isolated_from_callers(make_batch):
    repository = InMemoryBatchRepository()
    batch = make_batch()
    await repository.insert(batch)

    batch.status = BatchStatus.FAILED # mutate caller's copy without saving
    loaded = await repository.get_by_batch_id(batch.batch_id)
    assert loaded.status == BatchStatus.PENDING

    loaded.otp_attempts = 2
    assert (await repository.get_by_batch_id(batch.batch_id)).otp_attempts == 0

    await repository.save(loaded)
    assert (await repository.get_by_batch_id(batch.batch_id)).otp_attempts == 2


@pytest.mark.asyncio
async def test_duplicate_insert_is_rejected(make_batch):
    repository = InMemoryBatchRepository()
    await repository.insert(make_batch())
    with pytest.raises(ValueError):
        await repository.insert(make_batch())


@pytest.mark.asyncio
async def test_delete_expired_matches_mongo_rule(make_batch):
    repository = InMemoryBatchRepository()
    now = datetime.datetime.now(datetime.timezone.utc)
    verified_but_old = make_batch(batch_id="BATCH_VERIFIED", now=now - datetime.timedelta(days=2))
    verified_but_old.status = BatchStatus.PROCESSING
    pending_old = make_batch(batch_id="BATCH_PENDING", now=now - datetime.timedelta(days=2))
    await repository.insert(verified_but_old)
    await repository.insert(pending_old)

    assert await repository.delete_expired(now) == 1
    assert await repository.get_by_batch_id("BATCH_PENDING") is None
    assert await repository.get_by_batch_id("BATCH_VERIFIED") is not None
    assert await repository.ping() is True
