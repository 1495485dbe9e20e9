"""
MongoDB Database Client Module

Async MongoDB connection management for the user files service using Motor.
It implements:
- Connection pooling with configurable pool size
- Health checks using the MongoDB ping command
- Accessor for the collection holding per-user metadata records
- Startup/shutdown lifecycle management for FastAPI integration
- Retry logic with exponential backoff for connection reliability
"""

import asyncio
import logging

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from user_files.config import Settings


logger = logging.getLogger(__name__)

# Per-user records live in one collection, keyed by account href
CUSTOM_DATA_COLLECTION = "custom_data"

CONNECT_MAX_RETRIES = 3
CONNECT_INITIAL_DELAY_SECONDS = 1.0


class DatabaseUnavailableError(RuntimeError):
    """Raised when the metadata collection is requested without a live connection."""


class DatabaseClient:
    """
    Async MongoDB client wrapper with connection pooling and lifecycle management.

    Attributes:
        _mongodb_uri: MongoDB connection URI
        _db_name: Database name to connect to
        _min_pool_size: Minimum number of connections in pool
        _max_pool_size: Maximum number of connections in pool
        _client: Motor async MongoDB client instance
        _database: Motor async database instance

    Example usage:
        ```python
        db_client = DatabaseClient(settings)
        await db_client.connect()

        records = db_client.get_custom_data_collection()
        await records.find_one({"_id": user_href})

        await db_client.close()
        ```
    """

    def __init__(self, settings: Settings) -> None:
        self._mongodb_uri = settings.mongodb_uri
        self._db_name = settings.mongodb_db_name
        self._min_pool_size = settings.mongodb_min_pool_size
        self._max_pool_size = settings.mongodb_max_pool_size
        self._client: AsyncIOMotorClient | None = None
        self._database: AsyncIOMotorDatabase | None = None

        logger.info(
            "DatabaseClient initialized",
            extra={
                "database": self._db_name,
                "min_pool_size": self._min_pool_size,
                "max_pool_size": self._max_pool_size,
            },
        )

    @property
    def is_connected(self) -> bool:
        return self._database is not None

    async def connect(self) -> bool:
        """
        Establish the MongoDB connection with retry logic and exponential backoff.

        Makes up to three attempts, waiting 1s then 2s between them. Each attempt
        creates the Motor client and verifies it with a ping.

        Returns:
            bool: True if connection successful, False after all retries fail.
        """
        retry_delay = CONNECT_INITIAL_DELAY_SECONDS

        for attempt in range(1, CONNECT_MAX_RETRIES + 1):
            try:
                logger.info(
                    f"Attempting MongoDB connection (attempt {attempt}/{CONNECT_MAX_RETRIES}) "
                    f"to {self._db_name}..."
                )

                self._client = AsyncIOMotorClient(
                    self._mongodb_uri,
                    minPoolSize=self._min_pool_size,
                    maxPoolSize=self._max_pool_size,
                    serverSelectionTimeoutMS=5000,
                    tz_aware=True,
                )
                self._database = self._client[self._db_name]

                await self._client.admin.command("ping")

                logger.info(f"Successfully connected to MongoDB database: {self._db_name}")
                return True

            except (ServerSelectionTimeoutError, ConnectionFailure):
                logger.exception(
                    f"MongoDB connection failure (attempt {attempt}/{CONNECT_MAX_RETRIES})"
                )
            except PyMongoError:
                logger.exception(
                    f"Unexpected MongoDB error while connecting "
                    f"(attempt {attempt}/{CONNECT_MAX_RETRIES})"
                )

            self._database = None
            if attempt < CONNECT_MAX_RETRIES:
                logger.warning(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2

        logger.error(
            f"Failed to connect to MongoDB after {CONNECT_MAX_RETRIES} attempts. "
            "Check connection URI and server availability."
        )
        return False

    async def close(self) -> None:
        """Close the MongoDB connection. Safe to call when not connected."""
        if self._client is None:
            logger.warning("MongoDB close called but no active connection exists")
            return

        self._client.close()
        self._client = None
        self._database = None
        logger.info(f"MongoDB connection closed for database: {self._db_name}")

    async def ping(self) -> bool:
        """
        Health check using MongoDB admin ping command.

        Returns:
            bool: True if ping successful, False on failure.
        """
        if self._client is None:
            logger.warning("MongoDB ping failed: No active connection")
            return False

        try:
            await self._client.admin.command("ping")
        except PyMongoError:
            logger.exception("MongoDB ping failed")
            return False
        return True

    def get_database(self) -> AsyncIOMotorDatabase:
        """
        Get the database instance for direct operations.

        Raises:
            DatabaseUnavailableError: If not connected to MongoDB.
        """
        if self._database is None:
            raise DatabaseUnavailableError(
                "MongoDB database not available. Call connect() first or check connection status."
            )
        return self._database

    def get_custom_data_collection(self) -> AsyncIOMotorCollection:
        """
        Get the collection holding per-user metadata records.

        Each document is keyed by the user's account href and carries the
        user's file entries.

        Returns:
            AsyncIOMotorCollection: Motor collection for metadata records.

        Raises:
            DatabaseUnavailableError: If not connected to MongoDB.
        """
        return self.get_database()[CUSTOM_DATA_COLLECTION]


__all__ = ["CUSTOM_DATA_COLLECTION", "DatabaseClient", "DatabaseUnavailableError"]
