from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import async_sessionmaker

from pipewatch.execution.models import ExecutionRecord
from pipewatch.notify.base import NotificationContent
from pipewatch.pipeline.topology import CommitMetadata, PipelineTopology
from pipewatch.sequencing.events import ActionGroup, SequencedEvent

logger = structlog.get_logger()


@dataclass
class Execution:
    """In-memory view of one execution record, mutated only while locked."""

    project_name: str
    execution_id: str
    pipeline_name: str = ""
    current_stage: str | None = None
    current_actions: ActionGroup = field(default_factory=ActionGroup)
    pending: list[SequencedEvent] = field(default_factory=list)
    applied: list[str] = field(default_factory=list)
    locked: bool = False
    thread_handle: int | None = None
    original_content: NotificationContent | None = None
    topology: PipelineTopology = field(default_factory=lambda: PipelineTopology(name=""))
    commit: CommitMetadata | None = None

    def has_applied(self, event: SequencedEvent) -> bool:
        return event.mark in self.applied

    def defer(self, event: SequencedEvent) -> None:
        """Add event to the backlog; a redelivered copy replaces the earlier one."""
        self.pending = [e for e in self.pending if e.mark != event.mark]
        self.pending.append(event)

    def mark_applied(
        self, event: SequencedEvent, stage: str | None, actions: ActionGroup
    ) -> None:
        """Advance progress and drop the event from the backlog in one step."""
        self.current_stage = stage
        self.current_actions = actions
        self.pending = [e for e in self.pending if e.mark != event.mark]
        if event.mark not in self.applied:
            self.applied.append(event.mark)


def _decode_backlog(row: ExecutionRecord) -> list[SequencedEvent]:
    """Decode stored backlog entries; malformed ones are logged and dropped."""
    pending: list[SequencedEvent] = []
    for entry in row.pending_messages or []:
        try:
            pending.append(SequencedEvent.from_dict(entry))
        except (KeyError, ValueError, TypeError):
            logger.error(
                "backlog_entry_malformed",
                project_name=row.project_name,
                execution_id=row.execution_id,
                entry=entry,
            )
    return pending


def _to_execution(row: ExecutionRecord) -> Execution:
    return Execution(
        project_name=row.project_name,
        execution_id=row.execution_id,
        pipeline_name=row.pipeline_name,
        current_stage=row.current_stage,
        current_actions=ActionGroup.from_dict(row.current_actions),
        pending=_decode_backlog(row),
        applied=list(row.applied_events or []),
        locked=row.locked,
        thread_handle=row.thread_handle,
        original_content=NotificationContent.from_dict(row.original_message),
        topology=PipelineTopology.from_dict(row.topology),
        commit=CommitMetadata.from_dict(row.commit),
    )


def _mutable_values(execution: Execution) -> dict[str, Any]:
    return {
        "current_stage": execution.current_stage,
        "current_actions": execution.current_actions.to_dict(),
        "pending_messages": [e.to_dict() for e in execution.pending],
        "applied_events": list(execution.applied),
        "thread_handle": execution.thread_handle,
        "original_message": (
            execution.original_content.to_dict() if execution.original_content else None
        ),
        "commit": execution.commit.to_dict() if execution.commit else None,
    }


class ExecutionStore:
    """Execution records in PostgreSQL with a conditional-update lock flag.

    Exclusive access is a single UPDATE ... WHERE locked = false; the row lock
    taken by that statement serializes concurrent claimants.
    """

    def __init__(self, db_session_factory: async_sessionmaker) -> None:
        self._db: async_sessionmaker = db_session_factory

    async def create(self, execution: Execution) -> bool:
        """Insert a new record already locked by the caller.

        Returns False when the record exists (redelivered start event).
        """
        async with self._db() as db_session:
            stmt = (
                pg_insert(ExecutionRecord)
                .values(
                    project_name=execution.project_name,
                    execution_id=execution.execution_id,
                    pipeline_name=execution.pipeline_name,
                    topology=execution.topology.to_dict(),
                    locked=True,
                    **_mutable_values(execution),
                )
                .on_conflict_do_nothing(index_elements=["project_name", "execution_id"])
                .returning(ExecutionRecord.execution_id)
            )
            result = await db_session.execute(stmt)
            created = result.scalar_one_or_none() is not None
            await db_session.commit()

        if created:
            execution.locked = True
            logger.info(
                "execution_created",
                project_name=execution.project_name,
                execution_id=execution.execution_id,
            )
        return created

    async def try_lock(self, project_name: str, execution_id: str) -> Execution | None:
        """Set the lock flag if it is clear and return the record snapshot.

        Returns None when another invocation holds the lock or the record does
        not exist yet.
        """
        async with self._db() as db_session:
            stmt = (
                update(ExecutionRecord)
                .where(
                    ExecutionRecord.project_name == project_name,
                    ExecutionRecord.execution_id == execution_id,
                    ExecutionRecord.locked.is_(False),
                )
                .values(locked=True)
                .returning(ExecutionRecord)
            )
            result = await db_session.execute(stmt)
            row = result.scalar_one_or_none()
            execution = _to_execution(row) if row is not None else None
            await db_session.commit()
            return execution

    async def put(self, execution: Execution) -> None:
        """Persist progress and clear the lock flag in the same write."""
        async with self._db() as db_session:
            await db_session.execute(
                update(ExecutionRecord)
                .where(
                    ExecutionRecord.project_name == execution.project_name,
                    ExecutionRecord.execution_id == execution.execution_id,
                )
                .values(locked=False, **_mutable_values(execution))
            )
            await db_session.commit()
        execution.locked = False

    async def release(self, project_name: str, execution_id: str) -> None:
        """Clear the lock flag without touching progress."""
        async with self._db() as db_session:
            await db_session.execute(
                update(ExecutionRecord)
                .where(
                    ExecutionRecord.project_name == project_name,
                    ExecutionRecord.execution_id == execution_id,
                )
                .values(locked=False)
            )
            await db_session.commit()
