from loan_document_service.app.config import settings
import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional

logger = logging.getLogger(__name__)

# Global client and db variables, managed by connect/close functions
client: Optional[AsyncIOMotorClient] = None
db: Optional[AsyncIOMotorDatabase] = None

async def connect_to_mongo() -> AsyncIOMotorDatabase:
    global client, db
    if client is not None and db is not None:
        logger.info("MongoDB connection already established.")
        return db

    try:
        logger.info("Attempting to connect to MongoDB...")
        # tz_aware so stored datetimes compare against timezone-aware "now" values
        client = AsyncIOMotorClient(settings.MONGO_DETAILS, tz_aware=True)
        await client.admin.command('ping')
        db = client[settings.DB_NAME]
        logger.info(f"Successfully connected to MongoDB and database '{settings.DB_NAME}' is set.")
        return db
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}", exc_info=True)
        client = None
        db = None
        raise ConnectionError(f"Failed to connect to MongoDB: {e}")

def close_mongo_connection():
    global client, db
    if client:
        client.close()
        client = None
        db = None
        logger.info("MongoDB connection closed.")
