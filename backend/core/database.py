"""
Database connection, indexes and storage deadlines
"""
import asyncio
import functools
import logging
from contextvars import ContextVar
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from .config import (
    MONGO_URL, DB_NAME, MONGO_MAX_POOL_SIZE,
    OPERATION_TIMEOUT_SECONDS, LONG_READ_TIMEOUT_SECONDS,
)
from .errors import StorageError

logger = logging.getLogger(__name__)

# Optimized MongoDB connection with connection pooling
client = AsyncIOMotorClient(
    MONGO_URL,
    maxPoolSize=MONGO_MAX_POOL_SIZE,
    minPoolSize=min(10, MONGO_MAX_POOL_SIZE),
    maxIdleTimeMS=30000,
    connectTimeoutMS=5000,
    serverSelectionTimeoutMS=5000,
    waitQueueTimeoutMS=10000,
    tz_aware=True,
)

db = client[DB_NAME]

# Absolute loop time by which the current logical operation must finish
_deadline: ContextVar[Optional[float]] = ContextVar("storage_deadline", default=None)


def storage_operation(timeout: float = OPERATION_TIMEOUT_SECONDS):
    """
    Run a coroutine under a storage deadline.

    The effective deadline is the earlier of `now + timeout` and any deadline
    already set by an enclosing operation, so nested calls never extend it.
    Driver errors and deadline expiry surface as StorageError; service errors
    raised inside pass through untouched.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            loop = asyncio.get_running_loop()
            now = loop.time()
            deadline = now + timeout
            outer = _deadline.get()
            if outer is not None:
                deadline = min(deadline, outer)
            remaining = deadline - now
            if remaining <= 0:
                raise StorageError(f"Deadline exceeded before {func.__name__}")

            token = _deadline.set(deadline)
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=remaining)
            except asyncio.TimeoutError:
                logger.error(f"Storage deadline exceeded in {func.__name__} after {remaining:.2f}s")
                raise StorageError(f"Storage operation timed out: {func.__name__}")
            except PyMongoError as e:
                logger.error(f"Storage error in {func.__name__}: {e}")
                raise StorageError(f"Storage error in {func.__name__}") from e
            finally:
                _deadline.reset(token)
        return wrapper
    return decorator


def clear_deadline():
    """Detach a background task from the deadline of the request that spawned it"""
    _deadline.set(None)


async def create_database_indexes(database):
    """Create necessary indexes for uniqueness rules and query patterns"""
    logger.info("Creating database indexes...")
    non_empty_email = {"email": {"$gt": ""}}

    # Weddings
    await database.weddings.create_index("id", unique=True)
    await database.weddings.create_index("slug", unique=True)
    await database.weddings.create_index([("user_id", 1), ("created_at", -1)])
    await database.weddings.create_index([("is_public", 1), ("status", 1), ("event.date", 1)])

    # Guests
    await database.guests.create_index("id", unique=True)
    await database.guests.create_index(
        [("wedding_id", 1), ("email", 1)],
        unique=True,
        partialFilterExpression=non_empty_email,
        name="guests_wedding_email_unique",
    )
    await database.guests.create_index([("wedding_id", 1), ("import_batch_id", 1)])
    await database.guests.create_index([("wedding_id", 1), ("created_at", -1)])

    # RSVPs
    await database.rsvps.create_index("id", unique=True)
    await database.rsvps.create_index(
        [("wedding_id", 1), ("email", 1)],
        unique=True,
        partialFilterExpression=non_empty_email,
        name="rsvps_wedding_email_unique",
    )
    await database.rsvps.create_index([("wedding_id", 1), ("submitted_at", -1)])
    await database.rsvps.create_index("guest_id")

    logger.info("Database indexes created successfully")
