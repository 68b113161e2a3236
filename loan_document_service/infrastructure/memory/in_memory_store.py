# In-memory persistence backend (demo runs and tests)
import logging
import datetime
from typing import Dict, List, Optional

from loan_document_service.app.models import ConsentBatchDB, DocumentDB, BatchStatus
from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.models.document_db import SWEEPABLE_DOCUMENT_STATUSES
from loan_document_service.app.service.interfaces.persistence import AbstractBatchRepository, AbstractDocumentRepository

logger = logging.getLogger(__name__)


class InMemoryBatchRepository(AbstractBatchRepository):
    """Keeps deep copies so callers never share mutable state with the store, as with a real database."""

    def __init__(self):
        self._batches: Dict[str, ConsentBatchDB] = {}

    async def insert(self, batch: ConsentBatchDB) -> ConsentBatchDB:
        if batch.batch_id in self._batches:
            raise ValueError(f"Duplicate batch_id {batch.batch_id}")
        self._batches[batch.batch_id] = batch.model_copy(deep=True)
        logger.info(f"Inserted consent batch {batch.batch_id} (in-memory).")
        return batch

    async def save(self, batch: ConsentBatchDB) -> ConsentBatchDB:
        batch.updated_at = utcnow()
        self._batches[batch.batch_id] = batch.model_copy(deep=True)
        return batch

    async def get_by_batch_id(self, batch_id: str) -> Optional[ConsentBatchDB]:
        stored = self._batches.get(batch_id)
        return stored.model_copy(deep=True) if stored else None

    async def list_by_pan(self, pan_number: str, status: Optional[str] = None) -> List[ConsentBatchDB]:
        matches = [
            b for b in self._batches.values()
            if b.pan_number == pan_number.upper() and (status is None or b.status == status)
        ]
        matches.sort(key=lambda b: b.created_at, reverse=True)
        return [b.model_copy(deep=True) for b in matches]

    async def delete_expired(self, now: datetime.datetime) -> int:
        expired = [
            batch_id for batch_id, b in self._batches.items()
            if (b.status == BatchStatus.OTP_SENT and b.is_otp_expired(now))
            or (b.status in (BatchStatus.PENDING, BatchStatus.OTP_SENT) and b.is_consent_expired(now))
        ]
        for batch_id in expired:
            del self._batches[batch_id]
        if expired:
            logger.info(f"Expiry sweep removed {len(expired)} consent batches (in-memory).")
        return len(expired)


class InMemoryDocumentRepository(AbstractDocumentRepository):
    def __init__(self):
        self._documents: Dict[str, DocumentDB] = {}

    async def insert(self, document: DocumentDB) -> DocumentDB:
        if document.document_id in self._documents:
            raise ValueError(f"Duplicate document_id {document.document_id}")
        self._documents[document.document_id] = document.model_copy(deep=True)
        return document

    async def save(self, document: DocumentDB) -> DocumentDB:
        document.updated_at = utcnow()
        self._documents[document.document_id] = document.model_copy(deep=True)
        return document

    async def get_by_document_id(self, document_id: str) -> Optional[DocumentDB]:
        stored = self._documents.get(document_id)
        return stored.model_copy(deep=True) if stored else None

    async def get_by_share_token(self, token: str) -> Optional[DocumentDB]:
        for document in self._documents.values():
            if any(st.token == token for st in document.share_tokens):
                return document.model_copy(deep=True)
        return None

    async def list_by_request_id(self, request_id: str) -> List[DocumentDB]:
        matches = [d for d in self._documents.values() if d.request_id == request_id]
        matches.sort(key=lambda d: (d.bank_name, d.document_type))
        return [d.model_copy(deep=True) for d in matches]

    async def list_by_pan(self, pan_number: str, status: Optional[str] = None) -> List[DocumentDB]:
        matches = [
            d for d in self._documents.values()
            if d.pan_number == pan_number.upper() and (status is None or d.status == status)
        ]
        matches.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in matches]

    async def delete(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

    async def delete_expired(self, now: datetime.datetime) -> int:
        expired = [
            document_id for document_id, d in self._documents.items()
            if d.expires_at < now and d.status in SWEEPABLE_DOCUMENT_STATUSES
        ]
        for document_id in expired:
            del self._documents[document_id]
        return len(expired)
