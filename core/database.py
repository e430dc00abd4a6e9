# backend/core/database.py

import io
import logging
from typing import Optional, Any

from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorGridFSBucket
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

from core.config import MONGO_DB_URL, MONGO_DB_NAME, MONGO_SERVER_SELECTION_TIMEOUT_MS
from core.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

client: Optional[AsyncIOMotorClient] = None
database: Optional[Any] = None # Motor database type
fs: Optional[AsyncIOMotorGridFSBucket] = None

async def startup_db_client():
    global client, database, fs
    try:
        client = AsyncIOMotorClient(MONGO_DB_URL, serverSelectionTimeoutMS=MONGO_SERVER_SELECTION_TIMEOUT_MS)
        await client.admin.command('ping')
        database = client[MONGO_DB_NAME]
        fs = AsyncIOMotorGridFSBucket(database, bucket_name="qr_images")
        await ensure_indexes(database)
        logger.info("Connected to MongoDB database %s", MONGO_DB_NAME)
    except ServerSelectionTimeoutError as err:
        logger.error("MongoDB connection error: %s", err)
        client = None
        database = None
        fs = None
        raise

async def shutdown_db_client():
    global client
    if client:
        client.close()
        logger.info("Disconnected from MongoDB.")

async def ensure_indexes(db) -> None:
    """Creates the indexes the QR subsystem relies on (idempotent)."""
    # code_id uniqueness is what makes generate-then-retry safe
    await db["qrcodes"].create_index([("code_id", ASCENDING)], unique=True, name="code_id_unique")
    await db["qrcodes"].create_index([("assigned_to", ASCENDING)], name="assigned_to")
    await db["qrcodes"].create_index([("category_id", ASCENDING)], name="category_id")
    await db["scans"].create_index([("code_id", ASCENDING), ("timestamp", DESCENDING)], name="code_id_timestamp")
    await db["scans"].create_index([("timestamp", DESCENDING)], name="timestamp")
    await db["users"].create_index([("email", ASCENDING)], unique=True, name="email_unique")
    await db["categories"].create_index([("name", ASCENDING)], unique=True, name="name_unique")

def get_database():
    if database is None:
        raise StorageUnavailableError("Database client not initialized. Call startup_db_client() first.")
    return database

def get_gridfs_bucket():
    if fs is None:
        raise StorageUnavailableError("GridFS bucket not initialized. Call startup_db_client() first.")
    return fs

async def ping_database() -> bool:
    if client is None:
        return False
    try:
        await client.admin.command('ping')
        return True
    except PyMongoError as err:
        logger.warning("MongoDB ping failed: %s", err)
        return False

async def store_image_in_gridfs(image_data: bytes, filename: str, content_type: str) -> str:
    """Stores image data in GridFS and returns the file ID."""
    bucket = get_gridfs_bucket()
    file_id = await bucket.upload_from_stream(
        filename,
        io.BytesIO(image_data),
        metadata={"contentType": content_type}
    )
    return str(file_id)

async def get_image_from_gridfs(file_id: str) -> Optional[bytes]:
    """Retrieves image data from GridFS given a file ID, or None if it is gone."""
    bucket = get_gridfs_bucket()
    try:
        grid_out = await bucket.open_download_stream(ObjectId(file_id))
    except (InvalidId, NoFile) as e:
        logger.warning("Image %s not available in GridFS: %s", file_id, e)
        return None
    return await grid_out.read()
