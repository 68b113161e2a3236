from abc import ABC, abstractmethod
import datetime
from typing import List, Optional

from loan_document_service.app.models import ConsentBatchDB, DocumentDB


class AbstractBatchRepository(ABC):
    @abstractmethod
    async def insert(self, batch: ConsentBatchDB) -> ConsentBatchDB:
        """Persists a new batch."""
        pass

    @abstractmethod
    async def save(self, batch: ConsentBatchDB) -> ConsentBatchDB:
        """
        Writes the full batch state back, keyed by batch_id. Last writer wins.
        """
        pass

    @abstractmethod
    async def get_by_batch_id(self, batch_id: str) -> Optional[ConsentBatchDB]:
        pass

    @abstractmethod
    async def list_by_pan(self, pan_number: str, status: Optional[str] = None) -> List[ConsentBatchDB]:
        """Batches for a PAN, newest first."""
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime.datetime) -> int:
        """
        Deletes batches whose OTP expired while `otp_sent`, or whose consent expired
        while `pending`/`otp_sent`. Returns the number deleted.
        """
        pass

    async def ping(self) -> bool:
        return True


class AbstractDocumentRepository(ABC):
    @abstractmethod
    async def insert(self, document: DocumentDB) -> DocumentDB:
        pass

    @abstractmethod
    async def save(self, document: DocumentDB) -> DocumentDB:
        pass

    @abstractmethod
    async def get_by_document_id(self, document_id: str) -> Optional[DocumentDB]:
        pass

    @abstractmethod
    async def get_by_share_token(self, token: str) -> Optional[DocumentDB]:
        pass

    @abstractmethod
    async def list_by_request_id(self, request_id: str) -> List[DocumentDB]:
        """Documents of one request, sorted by bank name then document type."""
        pass

    @abstractmethod
    async def list_by_pan(self, pan_number: str, status: Optional[str] = None) -> List[DocumentDB]:
        """Documents for a PAN, newest first."""
        pass

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime.datetime) -> int:
        """Deletes ready/downloaded documents past expires_at. Returns the number deleted."""
        pass
