import datetime
import pytest
from unittest.mock import AsyncMock, MagicMock

from loan_document_service.app.models import DocumentDB
from loan_document_service.infrastructure.database.document_store import MongoDocumentRepository, DOCUMENTS_COLLECTION

NOW = datetime.datetime(2024, 6, 1, 10, 0, tzinfo=datetime.timezone.utc)


def _document() -> DocumentDB:
    return DocumentDB(
        document_id="DOC_1", request_id="BATCH_1", pan_number="ABCDE1234F", loan_id="LN-1",
        account_id="ACC-1", bank_name="Bank A", document_type="noc", status="ready",
        expires_at=NOW + datetime.timedelta(days=30), created_at=NOW, updated_at=NOW,
    )

@pytest.fixture
def mock_collection():
    collection = MagicMock()
    collection.insert_one = AsyncMock()
    collection.replace_one = AsyncMock()
    collection.find_one = AsyncMock()
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=4))
    return collection

@pytest.fixture
def repository(mock_collection):
    db = MagicMock()
    db.__getitem__.return_value = mock_collection
    repo = MongoDocumentRepository(db)
    assert repo.db[DOCUMENTS_COLLECTION] is mock_collection
    return repo


@pytest.mark.asyncio
async def test_insert_and_save(repository, mock_collection):
    document = _document()

    await repository.insert(document)
    await repository.save(document)

    assert mock_collection.insert_one.call_args[0][0]["document_id"] == "DOC_1"
    assert mock_collection.replace_one.call_args[0][0] == {"document_id": "DOC_1"}


@pytest.mark.asyncio
async def test_lookups(repository, mock_collection):
    mock_collection.find_one.return_value = _document().model_dump()

    assert (await repository.get_by_document_id("DOC_1")).document_id == "DOC_1"
    assert (await repository.get_by_share_token("tok")).document_id == "DOC_1"
    mock_collection.find_one.assert_any_await({"share_tokens.token": "tok"})

    mock_collection.find_one.return_value = None
    assert await repository.get_by_document_id("DOC_missing") is None


@pytest.mark.asyncio
async def test_list_by_request_id_sorted_by_bank_and_type(repository, mock_collection):
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[_document().model_dump()])
    mock_collection.find.return_value = cursor

    documents = await repository.list_by_request_id("BATCH_1")

    assert [d.document_id for d in documents] == ["DOC_1"]
    mock_collection.find.assert_called_once_with({"request_id": "BATCH_1"})
    cursor.sort.assert_called_once_with([("bank_name", 1), ("document_type", 1)])


@pytest.mark.asyncio
async def test_delete_and_delete_expired(repository, mock_collection):
    assert await repository.delete("DOC_1") is True
    mock_collection.delete_one.assert_awaited_once_with({"document_id": "DOC_1"})

    assert await repository.delete_expired(NOW) == 4
    mock_collection.delete_many.assert_awaited_once_with({
        "expires_at": {"$lt": NOW},
        "status": {"$in": ["ready", "downloaded"]},
    })
