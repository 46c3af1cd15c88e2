"""Match store access backed by MongoDB."""
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from .errors import PersistenceFailure


class MatchStatus(str, Enum):
    """Lifecycle status of a match record."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    DRAW = "draw"
    VOID = "void"


class MatchStore(Protocol):
    """Query/update surface the engine needs from match persistence."""

    def is_connected(self) -> bool: ...

    async def find(self, query: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    async def update_one(self, filter: Dict[str, Any], patch: Dict[str, Any]) -> None: ...


class MongoMatchStore:
    """Match collection accessed through the Motor async driver."""

    def __init__(self, url: str, database: str, collection: str = "matches",
                 server_selection_timeout_ms: int = 5000):
        """Initialize the store without connecting.

        Args:
            url: MongoDB connection string
            database: Database name
            collection: Collection holding match documents
            server_selection_timeout_ms: How long the driver waits for a server
        """
        self.url = url
        self.database = database
        self.collection_name = collection
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self._client: Optional[AsyncIOMotorClient] = None
        self._connected = False

    async def connect(self) -> bool:
        """Open the client and verify the server answers a ping."""
        if self._client is None:
            self._client = AsyncIOMotorClient(
                self.url,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            )
        try:
            await self._client.admin.command("ping")
            self._connected = True
            logger.info(f"Connected to match store {sanitize_mongodb_url(self.url)}/{self.database}")
        except PyMongoError as e:
            self._connected = False
            logger.warning(f"Match store unavailable at {sanitize_mongodb_url(self.url)}: {e}")
        return self._connected

    def close(self) -> None:
        """Close the client."""
        if self._client is not None:
            self._client.close()
            self._client = None
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    @property
    def collection(self) -> AsyncIOMotorCollection:
        if self._client is None:
            raise PersistenceFailure("Match store not connected. Call connect() first.")
        return self._client[self.database][self.collection_name]

    async def find(self, query: Dict[str, Any], limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return all match documents matching a query."""
        try:
            cursor = self.collection.find(query)
            return await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise PersistenceFailure(f"Match query failed: {e}") from e

    async def update_one(self, filter: Dict[str, Any], patch: Dict[str, Any]) -> None:
        """Set the given fields on the first match matching the filter."""
        try:
            await self.collection.update_one(filter, {"$set": patch})
        except PyMongoError as e:
            raise PersistenceFailure(f"Match update failed: {e}") from e


def sanitize_mongodb_url(url: str) -> str:
    """Hide the password in a MongoDB URL for safe logging."""
    if "@" not in url or "://" not in url:
        return url
    protocol, rest = url.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    if ":" in credentials:
        username = credentials.split(":", 1)[0]
        return f"{protocol}://{username}:***@{host}"
    return url
