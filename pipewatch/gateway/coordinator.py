"""Execution coordinator: source check → lock → guard → drain → notify → save + release.

One call handles one delivered event. Calls for the same execution may run
concurrently in different processes; the execution lock serializes them.
"""

from __future__ import annotations

from typing import Any, Literal

import structlog

from pipewatch.config.settings import WatchSettings
from pipewatch.execution.lock import ExecutionLock
from pipewatch.execution.store import Execution, ExecutionStore
from pipewatch.gateway.protocol import HandleResponse, PipelineEvent, parse_event
from pipewatch.infra.errors import RoutingError
from pipewatch.notify.base import Notifier
from pipewatch.notify.render import (
    project_and_env,
    render_commit_details,
    render_event,
    render_root,
    with_details,
)
from pipewatch.pipeline.topology import CommitMetadataProvider, TopologyProvider
from pipewatch.sequencing.events import ActionGroup, EventKind, SequencedEvent
from pipewatch.sequencing.guard import decide
from pipewatch.sequencing.reconciler import drain

logger = structlog.get_logger()


class ExecutionCoordinator:
    def __init__(
        self,
        *,
        store: ExecutionStore,
        lock: ExecutionLock,
        notifier: Notifier,
        topology_provider: TopologyProvider,
        commit_provider: CommitMetadataProvider,
        settings: WatchSettings,
    ) -> None:
        self._store = store
        self._lock = lock
        self._notifier = notifier
        self._topology = topology_provider
        self._commits = commit_provider
        self._settings = settings

    async def handle(self, payload: dict[str, Any]) -> HandleResponse:
        """Apply or defer one delivered event.

        Raises RoutingError for events from an unexpected source and
        EventParseError for malformed payloads. Collaborator errors propagate
        after the execution lock has been released.
        """
        source = payload.get("source")
        if source != self._settings.expected_source:
            raise RoutingError(f"Called from wrong source {source}")

        event = parse_event(payload)
        project, env = project_and_env(event.detail.pipeline, self._settings.project_pattern)
        with structlog.contextvars.bound_contextvars(
            project_name=project,
            execution_id=event.detail.execution_id,
            detail_type=event.detail_type,
            state=event.detail.state,
        ):
            if event.is_pipeline_start:
                return await self._handle_start(event, project, env)

            execution = await self._lock.acquire(project, event.detail.execution_id)
            try:
                return await self._handle_locked(execution, event)
            finally:
                # Persist whatever was narrated so far and release the lock, on every path.
                await self._store.put(execution)

    async def _handle_start(self, event: PipelineEvent, project: str, env: str) -> HandleResponse:
        topology = await self._topology.describe_pipeline(
            event.detail.pipeline, event.detail.version
        )
        root = render_root(
            pipeline_name=event.detail.pipeline,
            state=event.detail.state,
            project=project,
            env=env,
            region=self._settings.console_region,
        )
        start = event.sequenced(topology)
        execution = Execution(
            project_name=project,
            execution_id=event.detail.execution_id,
            pipeline_name=event.detail.pipeline,
            topology=topology,
            original_content=root,
        )

        if not await self._store.create(execution):
            # Redelivered start: only post if the first delivery never got that far.
            execution = await self._lock.acquire(project, event.detail.execution_id)
            if execution.thread_handle is not None:
                logger.info("event_duplicate", key=start.key)
                await self._store.release(project, event.detail.execution_id)
                return HandleResponse(status="duplicate", pending=len(execution.pending))
            execution.original_content = execution.original_content or root

        try:
            execution.thread_handle = await self._notifier.post(None, execution.original_content)
            if start.mark not in execution.applied:
                execution.applied.append(start.mark)
        finally:
            await self._store.put(execution)

        logger.info("execution_thread_posted", thread_handle=execution.thread_handle)
        return HandleResponse(status="created", applied=[start.key])

    async def _handle_locked(self, execution: Execution, event: PipelineEvent) -> HandleResponse:
        await self._resolve_commit(execution)

        incoming = event.sequenced(execution.topology)
        if execution.has_applied(incoming):
            logger.info("event_duplicate", key=incoming.key)
            # A redelivery after a failed notification finishes the drain that delivery started.
            drained = await self._drain(execution)
            return HandleResponse(
                status="duplicate",
                applied=[e.key for e in drained],
                pending=len(execution.pending),
            )

        applied: list[SequencedEvent] = []
        decision = decide(incoming, execution.current_stage, execution.current_actions)
        if not decision.can_apply:
            # The backlog may have been stuck on something that now clears the way.
            applied += await self._drain(execution)
            decision = decide(incoming, execution.current_stage, execution.current_actions)

        if decision.can_apply:
            await self._apply(execution, incoming, decision.stage, decision.actions)
            applied.append(incoming)
            status: Literal["applied", "deferred"] = "applied"
        else:
            execution.defer(incoming)
            status = "deferred"
            logger.info(
                "event_deferred",
                key=incoming.key,
                current_stage=execution.current_stage,
                pending=len(execution.pending),
            )

        applied += await self._drain(execution)
        return HandleResponse(
            status=status,
            applied=[e.key for e in applied],
            pending=len(execution.pending),
        )

    async def _drain(self, execution: Execution) -> list[SequencedEvent]:
        result = drain(execution.pending, execution.current_stage, execution.current_actions)
        for step in result.steps:
            await self._apply(execution, step.event, step.stage, step.actions)
        if result.steps:
            logger.info(
                "backlog_drained",
                applied=result.applied_keys,
                remaining=len(execution.pending),
            )
        return [step.event for step in result.steps]

    async def _apply(
        self,
        execution: Execution,
        event: SequencedEvent,
        stage: str | None,
        actions: ActionGroup,
    ) -> None:
        """Narrate one event, then commit its progress to the working record.

        Progress only advances once the notification went out, so a notifier
        failure leaves the record describing exactly what was narrated.
        """
        if _is_single_action_narration(event):
            logger.debug("notification_suppressed", key=event.key)
        else:
            await self._notifier.post(execution.thread_handle, render_event(event))
        execution.mark_applied(event, stage, actions)
        logger.info("event_applied", key=event.key, current_stage=stage, run_order=actions.run_order)

    async def _resolve_commit(self, execution: Execution) -> None:
        """Attach commit metadata to the root message, once per execution."""
        if execution.commit is not None:
            return
        revision = await self._topology.get_artifact_revision(
            execution.pipeline_name, execution.execution_id
        )
        commit = await self._commits.lookup(execution.topology, revision)
        if commit is None:
            return

        if execution.thread_handle is not None and execution.original_content is not None:
            details = render_commit_details(
                commit,
                pipeline_name=execution.pipeline_name,
                execution_id=execution.execution_id,
                region=self._settings.console_region,
            )
            await self._notifier.update(
                execution.thread_handle, with_details(execution.original_content, details)
            )
        execution.commit = commit
        logger.info("commit_metadata_resolved", commit_id=commit.short_id)


def _is_single_action_narration(event: SequencedEvent) -> bool:
    """Action events of a one-action stage repeat what the stage events already say."""
    return event.kind == EventKind.action and event.stage_action_count == 1
