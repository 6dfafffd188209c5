from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse

from pipewatch.config.settings import get_settings
from pipewatch.execution.database import create_db_engine, ensure_schema, make_session_factory
from pipewatch.execution.lock import ExecutionLock
from pipewatch.execution.store import ExecutionStore
from pipewatch.gateway.coordinator import ExecutionCoordinator
from pipewatch.gateway.protocol import ErrorResponse, HandleResponse
from pipewatch.infra.errors import (
    EventParseError,
    LockTimeoutError,
    PipeWatchError,
    RoutingError,
)
from pipewatch.infra.logging import setup_logging
from pipewatch.notify.telegram import TelegramNotifier
from pipewatch.pipeline.codepipeline import (
    ArtifactRevisionCommitProvider,
    CodePipelineTopologyProvider,
)

logger = structlog.get_logger()

# Any non-2xx makes the sender redeliver the event.
_STATUS_BY_ERROR: dict[type[PipeWatchError], int] = {
    RoutingError: 400,
    EventParseError: 400,
    LockTimeoutError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: build the coordinator and its collaborators on startup."""
    settings = get_settings()
    setup_logging(json_output=settings.log_json, log_level=settings.log_level)

    # Storage is mandatory; startup fails if DB/schema unavailable.
    engine = await create_db_engine(settings.database)
    await ensure_schema(engine, settings.database.schema_)
    store = ExecutionStore(make_session_factory(engine))
    logger.info("db_connected")

    notifier = TelegramNotifier(
        settings.telegram.bot_token,
        settings.telegram.chat_id,
        message_max_length=settings.telegram.message_max_length,
    )
    await notifier.check_ready()

    app.state.coordinator = ExecutionCoordinator(
        store=store,
        lock=ExecutionLock(
            store,
            retry_interval_s=settings.watch.lock_retry_interval_s,
            max_attempts=settings.watch.lock_max_attempts,
        ),
        notifier=notifier,
        topology_provider=CodePipelineTopologyProvider(region=settings.aws.region),
        commit_provider=ArtifactRevisionCommitProvider(),
        settings=settings.watch,
    )
    logger.info(
        "gateway_started",
        host=settings.gateway.host,
        port=settings.gateway.port,
        expected_source=settings.watch.expected_source,
    )

    yield

    await notifier.close()
    await engine.dispose()
    logger.info("db_engine_disposed")


app = FastAPI(title="pipewatch", version="0.1.0", lifespan=lifespan)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/events", response_model=HandleResponse)
async def receive_event(request: Request, payload: dict[str, Any] = Body(...)) -> Any:
    """Handle one CodePipeline state-change event."""
    coordinator: ExecutionCoordinator = request.app.state.coordinator
    try:
        outcome = await coordinator.handle(payload)
    except PipeWatchError as e:
        status_code = _STATUS_BY_ERROR.get(type(e), 500)
        logger.warning("event_rejected", code=e.code, error=str(e), status_code=status_code)
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(code=e.code, message=str(e)).model_dump(),
        )
    except Exception:
        logger.exception("unhandled_error")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                code="INTERNAL_ERROR", message="An internal error occurred"
            ).model_dump(),
        )

    return outcome
