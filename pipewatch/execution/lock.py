"""Per-execution mutual exclusion on top of ExecutionStore.try_lock.

Polls at a fixed interval with a bounded attempt count. Exhausting the cap
raises LockTimeoutError so the event is left unacknowledged and redelivered,
instead of an invocation spinning until its host kills it.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from pipewatch.infra.errors import LockTimeoutError

if TYPE_CHECKING:
    from pipewatch.execution.store import Execution, ExecutionStore

logger = structlog.get_logger()


class ExecutionLock:
    def __init__(
        self,
        store: ExecutionStore,
        *,
        retry_interval_s: float = 0.5,
        max_attempts: int = 120,
    ) -> None:
        if retry_interval_s <= 0:
            raise ValueError(f"retry_interval_s must be > 0, got {retry_interval_s}")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._store = store
        self._retry_interval_s = retry_interval_s
        self._max_attempts = max_attempts

    async def acquire(self, project_name: str, execution_id: str) -> Execution:
        """Block until the execution's lock is won; return the locked record.

        Contention and a not-yet-created record both look like "not acquired"
        and are retried alike.
        """
        for attempt in range(1, self._max_attempts + 1):
            execution = await self._store.try_lock(project_name, execution_id)
            if execution is not None:
                logger.debug(
                    "execution_lock_acquired",
                    project_name=project_name,
                    execution_id=execution_id,
                    attempts=attempt,
                )
                return execution

            logger.debug(
                "execution_lock_contended",
                project_name=project_name,
                execution_id=execution_id,
                attempt=attempt,
            )
            if attempt < self._max_attempts:
                await asyncio.sleep(self._retry_interval_s)

        logger.warning(
            "execution_lock_timeout",
            project_name=project_name,
            execution_id=execution_id,
            attempts=self._max_attempts,
        )
        raise LockTimeoutError(
            f"Execution {project_name}/{execution_id} still locked after "
            f"{self._max_attempts} attempts"
        )
