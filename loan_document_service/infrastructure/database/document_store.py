# Operations for the generated documents collection
import logging
import datetime
from typing import List, Optional, Dict, Any
from motor.motor_asyncio import AsyncIOMotorDatabase

from loan_document_service.app.models import DocumentDB
from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.models.document_db import SWEEPABLE_DOCUMENT_STATUSES
from loan_document_service.app.service.interfaces.persistence import AbstractDocumentRepository

logger = logging.getLogger(__name__)
DOCUMENTS_COLLECTION = "documents"


class MongoDocumentRepository(AbstractDocumentRepository):
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    @property
    def collection(self):
        return self.db[DOCUMENTS_COLLECTION]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index("document_id", unique=True)
        await self.collection.create_index("request_id")
        await self.collection.create_index([("pan_number", 1), ("document_type", 1)])
        await self.collection.create_index("share_tokens.token")
        await self.collection.create_index("expires_at")
        logger.info(f"Indexes ensured on '{DOCUMENTS_COLLECTION}'.")

    async def insert(self, document: DocumentDB) -> DocumentDB:
        await self.collection.insert_one(document.model_dump())
        logger.info(f"Stored document {document.document_id} ({document.document_type}) for request {document.request_id}.")
        return document

    async def save(self, document: DocumentDB) -> DocumentDB:
        document.updated_at = utcnow()
        await self.collection.replace_one({"document_id": document.document_id}, document.model_dump(), upsert=True)
        return document

    async def get_by_document_id(self, document_id: str) -> Optional[DocumentDB]:
        doc = await self.collection.find_one({"document_id": document_id})
        return DocumentDB(**doc) if doc else None

    async def get_by_share_token(self, token: str) -> Optional[DocumentDB]:
        doc = await self.collection.find_one({"share_tokens.token": token})
        return DocumentDB(**doc) if doc else None

    async def list_by_request_id(self, request_id: str) -> List[DocumentDB]:
        cursor = self.collection.find({"request_id": request_id}).sort([("bank_name", 1), ("document_type", 1)])
        docs = await cursor.to_list(length=None)
        return [DocumentDB(**doc) for doc in docs]

    async def list_by_pan(self, pan_number: str, status: Optional[str] = None) -> List[DocumentDB]:
        query_filter: Dict[str, Any] = {"pan_number": pan_number.upper()}
        if status:
            query_filter["status"] = status
        cursor = self.collection.find(query_filter).sort("created_at", -1)
        docs = await cursor.to_list(length=None)
        return [DocumentDB(**doc) for doc in docs]

    async def delete(self, document_id: str) -> bool:
        result = await self.collection.delete_one({"document_id": document_id})
        return result.deleted_count > 0

    async def delete_expired(self, now: datetime.datetime) -> int:
        result = await self.collection.delete_many({
            "expires_at": {"$lt": now},
            "status": {"$in": SWEEPABLE_DOCUMENT_STATUSES},
        })
        if result.deleted_count:
            logger.info(f"Expiry sweep removed {result.deleted_count} documents.")
        return result.deleted_count
