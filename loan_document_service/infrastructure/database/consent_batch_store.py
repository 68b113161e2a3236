# Operations for the consent_batches collection
import logging
import datetime
from typing import List, Optional, Dict, Any
from motor.motor_asyncio import AsyncIOMotorDatabase

from loan_document_service.app.models import ConsentBatchDB, BatchStatus
from loan_document_service.app.models.consent_batch_db import utcnow
from loan_document_service.app.service.interfaces.persistence import AbstractBatchRepository

logger = logging.getLogger(__name__)
CONSENT_BATCHES_COLLECTION = "consent_batches"


def expired_batches_filter(now: datetime.datetime) -> Dict[str, Any]:
    return {
        "$or": [
            {"otp_expires_at": {"$lt": now}, "status": BatchStatus.OTP_SENT.value},
            {
                "consent_expires_at": {"$lt": now},
                "status": {"$in": [BatchStatus.PENDING.value, BatchStatus.OTP_SENT.value]},
            },
        ]
    }


class MongoBatchRepository(AbstractBatchRepository):
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    @property
    def collection(self):
        return self.db[CONSENT_BATCHES_COLLECTION]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index("batch_id", unique=True)
        await self.collection.create_index([("pan_number", 1), ("status", 1)])
        await self.collection.create_index([("status", 1), ("created_at", -1)])
        await self.collection.create_index("otp_expires_at")
        await self.collection.create_index("consent_expires_at")
        logger.info(f"Indexes ensured on '{CONSENT_BATCHES_COLLECTION}'.")

    async def insert(self, batch: ConsentBatchDB) -> ConsentBatchDB:
        await self.collection.insert_one(batch.model_dump())
        logger.info(f"Inserted consent batch {batch.batch_id} for PAN {batch.pan_number}.")
        return batch

    async def save(self, batch: ConsentBatchDB) -> ConsentBatchDB:
        batch.updated_at = utcnow()
        result = await self.collection.replace_one({"batch_id": batch.batch_id}, batch.model_dump(), upsert=True)
        logger.debug(f"Saved consent batch {batch.batch_id} (matched={result.matched_count}).")
        return batch

    async def get_by_batch_id(self, batch_id: str) -> Optional[ConsentBatchDB]:
        doc = await self.collection.find_one({"batch_id": batch_id})
        if doc:
            return ConsentBatchDB(**doc)
        return None

    async def list_by_pan(self, pan_number: str, status: Optional[str] = None) -> List[ConsentBatchDB]:
        query_filter: Dict[str, Any] = {"pan_number": pan_number.upper()}
        if status:
            query_filter["status"] = status
        cursor = self.collection.find(query_filter).sort("created_at", -1)
        docs = await cursor.to_list(length=None)
        return [ConsentBatchDB(**doc) for doc in docs]

    async def delete_expired(self, now: datetime.datetime) -> int:
        result = await self.collection.delete_many(expired_batches_filter(now))
        if result.deleted_count:
            logger.info(f"Expiry sweep removed {result.deleted_count} consent batches.")
        return result.deleted_count

    async def ping(self) -> bool:
        try:
            await self.db.command('ping')
            return True
        except Exception as e:
            logger.error(f"MongoDB ping failed: {e}")
            return False
