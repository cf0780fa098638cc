# database.py - Motor connection pool shared by the API and the energy simulator

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from core.config import settings

logger = logging.getLogger(__name__)

USERS_COLL = "users"
PROPERTIES_COLL = "properties"
LEASES_COLL = "leases"
PAYMENTS_COLL = "payments"
ENERGY_COLL = "energy_readings"


@dataclass
class AsyncDatabaseConfig:
    mongo_uri: str
    database_name: str
    max_pool_size: int = 50
    min_pool_size: int = 5
    timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> "AsyncDatabaseConfig":
        return cls(mongo_uri=settings.MONGO_URI, database_name=settings.MONGO_DATABASE)

    def validate(self) -> None:
        if not self.mongo_uri:
            raise ValueError("MONGO_URI is empty")
        if not self.database_name:
            raise ValueError("MONGO_DATABASE is empty")
        if self.max_pool_size < self.min_pool_size:
            raise ValueError("max_pool_size must be >= min_pool_size")


class AsyncDatabaseManager:
    """
    Process-wide Motor client. ``initialize`` is called from the app lifespan;
    ``get_database`` falls back to a lazy connect for scripts and workers.
    """

    _instance: Optional["AsyncDatabaseManager"] = None

    def __new__(cls) -> "AsyncDatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._lock = asyncio.Lock()
            cls._instance._client = None
            cls._instance._database = None
            cls._instance._config = None
        return cls._instance

    @property
    def is_initialized(self) -> bool:
        return self._database is not None

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._database is None:
            raise RuntimeError("Database not initialized, call `await db_manager.initialize()` first")
        return self._database

    async def initialize(self, config: Optional[AsyncDatabaseConfig] = None) -> None:
        """
        Connect and verify the server is reachable.

        Raises:
            ConnectionFailure: server unreachable within the configured timeout
            ValueError: invalid configuration
        """
        async with self._lock:
            if self.is_initialized:
                return

            config = config or AsyncDatabaseConfig.from_env()
            config.validate()
            client = AsyncIOMotorClient(
                config.mongo_uri,
                maxPoolSize=config.max_pool_size,
                minPoolSize=config.min_pool_size,
                serverSelectionTimeoutMS=config.timeout_ms,
                connectTimeoutMS=config.timeout_ms,
                uuidRepresentation="standard",
                tz_aware=True,
            )
            try:
                await asyncio.wait_for(client.server_info(), timeout=config.timeout_ms / 1000)
            except (ConnectionFailure, ServerSelectionTimeoutError, asyncio.TimeoutError) as e:
                client.close()
                logger.error(f"MongoDB unreachable at startup: {e!r}")
                raise ConnectionFailure(f"Could not connect to MongoDB: {e}") from e

            self._client = client
            self._database = client[config.database_name]
            self._config = config
            logger.info(f"Connected to MongoDB database '{config.database_name}'")

    async def health_check(self) -> Dict[str, Any]:
        """Ping the server; used by ``GET /health`` and at startup"""
        report: Dict[str, Any] = {"timestamp": datetime.now(timezone.utc).isoformat()}
        if not self.is_initialized:
            report.update(status="unhealthy", error="Database not initialized")
            return report
        started = time.perf_counter()
        try:
            await asyncio.wait_for(self._client.admin.command("ping"), timeout=5.0)
        except (ConnectionFailure, asyncio.TimeoutError) as e:
            logger.error(f"Database health check failed: {e!r}")
            report.update(status="unhealthy", error=str(e) or "timeout")
            return report
        report.update(
            status="healthy",
            latency_ms=round((time.perf_counter() - started) * 1000, 2),
            database=self._config.database_name,
        )
        return report

    async def create_indexes(self, indexes_config: Dict[str, list]) -> None:
        for collection_name, indexes in indexes_config.items():
            collection = self.database[collection_name]
            for index_def in indexes:
                index_def = dict(index_def)
                keys = index_def.pop("keys")
                await collection.create_index(keys, **index_def)
                logger.info(f"Ensured index on {collection_name}: {keys}")

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                self._client.close()
            self._client = None
            self._database = None
            self._config = None
            logger.info("MongoDB connection closed")


db_manager = AsyncDatabaseManager()


def build_index_config(reading_ttl_seconds: int) -> Dict[str, list]:
    readings = [{"keys": [("property_id", ASCENDING), ("timestamp", DESCENDING)]}]
    if reading_ttl_seconds > 0:
        readings.append({
            "keys": [("timestamp", ASCENDING)],
            "expireAfterSeconds": reading_ttl_seconds,
            "name": "timestamp_ttl",
        })
    return {
        USERS_COLL: [{"keys": [("email", ASCENDING)], "unique": True}],
        PROPERTIES_COLL: [{"keys": [("status", ASCENDING)]}],
        LEASES_COLL: [
            # one active lease per property
            {
                "keys": [("property_id", ASCENDING)],
                "unique": True,
                "partialFilterExpression": {"status": "active"},
                "name": "property_active_lease",
            },
            {"keys": [("property_id", ASCENDING), ("tenant_id", ASCENDING)]},
        ],
        PAYMENTS_COLL: [{"keys": [("user_id", ASCENDING), ("timestamp", DESCENDING)]}],
        ENERGY_COLL: readings,
    }


async def get_database() -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    """FastAPI dependency yielding the shared Motor database"""
    if not db_manager.is_initialized:
        await db_manager.initialize()
    yield db_manager.database


async def startup_event(config: Optional[AsyncDatabaseConfig] = None) -> None:
    await db_manager.initialize(config=config)
    health = await db_manager.health_check()
    if health["status"] != "healthy":
        raise RuntimeError(f"Database unhealthy: {health}")
    await db_manager.create_indexes(build_index_config(settings.ENERGY_READING_TTL_SECONDS))


async def shutdown_event() -> None:
    await db_manager.close()
