# async mongodb client for the backend api
# uses motor for non-blocking operations, tenacity for transient-failure retry

import logging
from contextlib import asynccontextmanager
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from moodflow.config import settings

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError)


def _log_retry(retry_state):
    logger.warning(
        f"Transient store failure in {retry_state.fn.__name__}, "
        f"attempt {retry_state.attempt_number}: {retry_state.outcome.exception()}"
    )


# retry decorator for the store boundary (connect + idempotent reads).
# writes are never retried here; a duplicated write is worse than a failed one.
store_retry = retry(
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    stop=stop_after_attempt(settings.STORE_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=settings.STORE_RETRY_BACKOFF_SECONDS, max=5),
    before_sleep=_log_retry,
    reraise=True,
)


class Database:
    """async mongodb connection manager"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    @store_retry
    async def connect(self):
        """establish connection to mongodb"""
        if self.client is not None:
            return

        logger.info(f"Connecting to MongoDB database: {settings.MONGODB_DATABASE}")
        self.client = AsyncIOMotorClient(settings.MONGODB_URI)
        self.db = self.client[settings.MONGODB_DATABASE]

        # verify connection
        try:
            await self.client.admin.command("ping")
        except TRANSIENT_ERRORS:
            self.client = None
            self.db = None
            raise
        logger.info("MongoDB connection established")

    async def ensure_indexes(self):
        """uniqueness constraints the engine relies on for race handling"""
        await self.connections.create_index(
            [("patient_id", ASCENDING), ("professional_id", ASCENDING)],
            unique=True,
            name="uniq_connection",
        )
        await self.threads.create_index(
            [("patient_id", ASCENDING), ("professional_id", ASCENDING), ("specialty", ASCENDING)],
            unique=True,
            name="uniq_thread_triple",
        )
        await self.entries.create_index([("patient_id", ASCENDING), ("timestamp", DESCENDING)])
        await self.entries.create_index("entry_id", unique=True)
        await self.notes.create_index([("patient_id", ASCENDING), ("created_at", ASCENDING)])
        await self.notifications.create_index([("recipient_id", ASCENDING), ("read_at", ASCENDING)])
        await self.audit_logs.create_index([("target_id", ASCENDING), ("timestamp", DESCENDING)])
        logger.info("MongoDB indexes ensured")

    @asynccontextmanager
    async def transaction(self):
        """yield a session inside a transaction, or None when transactions are off"""
        if not settings.MONGODB_TRANSACTIONS or self.client is None:
            yield None
            return
        async with await self.client.start_session() as session:
            async with session.start_transaction():
                yield session

    async def close(self):
        """close mongodb connection"""
        if self.client:
            self.client.close()
            self.client = None
            self.db = None
            logger.info("MongoDB connection closed")

    # collection accessors

    @property
    def users(self):
        return self.db["users"]

    @property
    def entries(self):
        return self.db["entries"]

    @property
    def connections(self):
        return self.db["connections"]

    @property
    def threads(self):
        return self.db["threads"]

    @property
    def notes(self):
        return self.db["notes"]

    @property
    def notifications(self):
        return self.db["notifications"]

    @property
    def audit_logs(self):
        return self.db["audit_logs"]


# singleton instance
db = Database()


async def get_db() -> Database:
    """dependency injection for database access"""
    return db
