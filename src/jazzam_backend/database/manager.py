"""
# System Database Manager

The shared **system database** holds cross-tenant data: company accounts, billing history and
audit logs. Tenant data never lives here; it lives in per-company databases served by
`TenantConnectionPool`.

```
┌──────────────────────────────────────────────────────────────┐
│   DatabaseManager (system DB)      TenantConnectionPool      │
│   ┌──────────────────────┐         ┌──────────────────────┐  │
│   │ jazzam               │         │ jazzam_company_<a>   │  │
│   │  companies           │         │ jazzam_company_<b>   │  │
│   │  billing_history     │         │ ...                  │  │
│   │  audit_logs          │         └──────────────────────┘  │
│   └──────────────────────┘                                   │
└──────────────────────────────────────────────────────────────┘
```

## Lifecycle

1. **Instantiation**: `DatabaseManager(settings)` does no I/O. The application factory builds one
   per app and stores it on `app.state`.
2. **Connection**: `await connect()` in the FastAPI lifespan, with exponential backoff.
3. **Operations**: `get_collection("companies")`.
4. **Shutdown**: `await disconnect()` after the tenant pool has been closed.

The manager is designed for **asyncio** and is not thread-safe.
"""

import asyncio
import time
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from jazzam_backend.config import settings as default_settings
from jazzam_backend.database.tenant_uri import mask_uri
from jazzam_backend.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")


class DatabaseManager:
    """
    Manages the connection to the shared system database.

    Attributes:
        client (`Optional[AsyncIOMotorClient]`): `None` until `connect()` succeeds.
        database (`Optional[AsyncIOMotorDatabase]`): The system database.
    """

    def __init__(self, settings: Any = None, client_class: Any = AsyncIOMotorClient):
        self.settings = settings or default_settings
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._client_class = client_class
        self._connection_retries = 3

    def _connection_string(self) -> str:
        settings = self.settings
        if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD:
            password = (
                settings.MONGODB_PASSWORD.get_secret_value()
                if hasattr(settings.MONGODB_PASSWORD, "get_secret_value")
                else settings.MONGODB_PASSWORD
            )
            db_logger.debug("Using authenticated connection to MongoDB")
            return (
                f"mongodb://{settings.MONGODB_USERNAME}:{password}@"
                f"{settings.MONGODB_URL.replace('mongodb://', '')}"
            )
        return settings.MONGODB_URL

    async def connect(self) -> None:
        """
        Connect to the system database, retrying with exponential backoff (1s, 2s).

        A client whose ping fails is closed before the next attempt, so at most one client is
        open at a time.

        Raises:
            ServerSelectionTimeoutError: If MongoDB is unreachable after all attempts.
            ConnectionFailure: If authentication fails on the last attempt.
        """
        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info(f"Connection attempt {attempt + 1}/{self._connection_retries} to MongoDB")
                db_logger.info(
                    f"MongoDB connection config - URL: {mask_uri(self.settings.MONGODB_URL)}, "
                    f"Database: {self.settings.MONGODB_DATABASE}, "
                    f"ServerTimeout: {self.settings.MONGODB_SERVER_SELECTION_TIMEOUT}ms, "
                    f"ConnTimeout: {self.settings.MONGODB_CONNECTION_TIMEOUT}ms"
                )

                self.client = self._client_class(
                    self._connection_string(),
                    serverSelectionTimeoutMS=self.settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=self.settings.MONGODB_CONNECTION_TIMEOUT,
                )
                self.database = self.client[self.settings.MONGODB_DATABASE]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                perf_logger.info(
                    f"MongoDB connection established successfully in {time.time() - start_time:.3f}s "
                    f"(ping: {ping_duration:.3f}s)"
                )
                db_logger.info(f"Successfully connected to MongoDB database: {self.settings.MONGODB_DATABASE}")
                return

            except (ServerSelectionTimeoutError, ConnectionFailure) as e:
                perf_logger.warning(f"Connection attempt {attempt + 1} failed after {time.time() - attempt_start:.3f}s")
                db_logger.warning(f"Failed to connect to MongoDB (attempt {attempt + 1}/{self._connection_retries}): {e}")
                self._release_client()
                if attempt == self._connection_retries - 1:
                    db_logger.error(f"All connection attempts failed after {time.time() - start_time:.3f}s")
                    raise

                backoff_time = 2**attempt
                db_logger.info(f"Waiting {backoff_time:.1f}s before retry (exponential backoff)")
                await asyncio.sleep(backoff_time)

    def _release_client(self) -> None:
        client, self.client, self.database = self.client, None, None
        if client is not None:
            client.close()

    async def disconnect(self) -> None:
        """Close the system database client. Safe to call when not connected."""
        start_time = time.time()
        if self.client is None:
            db_logger.warning("Disconnect called but no active MongoDB connection found")
            return
        self._release_client()
        perf_logger.info(f"MongoDB disconnection completed in {time.time() - start_time:.3f}s")
        db_logger.info("Successfully disconnected from MongoDB")

    async def health_check(self) -> bool:
        """Ping the system database. Returns `False` instead of raising."""
        try:
            if self.client is None:
                health_logger.warning("Health check failed: No database client available")
                return False
            ping_start = time.time()
            await self.client.admin.command("ping")
            perf_logger.debug(f"Database health check completed in {time.time() - ping_start:.3f}s")
            return True
        except (ServerSelectionTimeoutError, ConnectionFailure) as e:
            health_logger.error(f"Database health check failed: {e}")
            return False
        except (ConnectionError, TimeoutError) as e:
            health_logger.error(f"Connection error during health check: {e}")
            return False
        except Exception as e:
            health_logger.error(f"Unexpected error during health check: {e}")
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Return a system database collection.

        Raises:
            ConnectionError: If `connect()` has not succeeded.
        """
        if self.database is None:
            raise ConnectionError("Database not connected")
        return self.database[collection_name]
