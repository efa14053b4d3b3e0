"""
Atomic unit of work.

Groups every write of a token-mutating operation into one database
transaction that either commits fully or rolls back fully.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Hashable

from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import AppException, ConflictError, OperationTimeoutError
from backend.app.services.member_locks import lock_registry

logger = logging.getLogger("gym.db")


@asynccontextmanager
async def atomic(db: AsyncSession, *lock_keys: Hashable, operation: str = "unit_of_work"):
    """
    Run the enclosed block as one transaction, serialized on `lock_keys`.

    Usage:
        async with atomic(db, member_key(member.id), operation="check_in"):
            ...  # flush-only writes

    On success the session is committed. On any exception it is rolled back
    and the exception is re-raised, with storage timeouts mapped to
    OperationTimeoutError and stray integrity violations to ConflictError.
    """
    try:
        async with lock_registry.hold(*lock_keys, timeout=settings.operation_timeout_seconds):
            try:
                yield db
                await db.commit()
            except BaseException:
                await db.rollback()
                raise
    except AppException:
        raise
    except asyncio.TimeoutError as exc:
        logger.warning("Timed out waiting for %s on %s", operation, lock_keys)
        raise OperationTimeoutError(operation) from exc
    except PoolTimeoutError as exc:
        logger.warning("Connection pool timeout during %s", operation)
        raise OperationTimeoutError(operation) from exc
    except IntegrityError as exc:
        logger.info("Integrity violation during %s: %s", operation, exc.orig)
        raise ConflictError(f"Conflicting write during {operation}") from exc
    except OperationalError as exc:
        # asyncpg statement timeouts surface as OperationalError
        if "timeout" in str(exc.orig).lower():
            raise OperationTimeoutError(operation) from exc
        raise
