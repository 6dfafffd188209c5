from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pipewatch.constants import DETAIL_TYPE_ACTION, DETAIL_TYPE_PIPELINE, DETAIL_TYPE_STAGE
from pipewatch.infra.errors import EventParseError
from pipewatch.pipeline.topology import PipelineTopology
from pipewatch.sequencing.events import EventKind, SequencedEvent

_KIND_BY_DETAIL_TYPE: dict[str, EventKind] = {
    DETAIL_TYPE_PIPELINE: EventKind.pipeline,
    DETAIL_TYPE_STAGE: EventKind.stage,
    DETAIL_TYPE_ACTION: EventKind.action,
}


class PipelineEventDetail(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pipeline: str
    execution_id: str = Field(alias="execution-id")
    stage: str | None = None
    action: str | None = None
    state: str
    version: int | None = None

    @field_validator("state")
    @classmethod
    def _normalize_state(cls, v: str) -> str:
        return v.strip().upper()


class PipelineEvent(BaseModel):
    """CodePipeline state-change event as delivered by EventBridge."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source: str
    detail_type: str = Field(alias="detail-type")
    time: datetime
    detail: PipelineEventDetail

    @field_validator("time")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo is not None else v.replace(tzinfo=UTC)

    @property
    def kind(self) -> EventKind:
        return _KIND_BY_DETAIL_TYPE.get(self.detail_type, EventKind.unknown)

    @property
    def is_pipeline_start(self) -> bool:
        return self.kind == EventKind.pipeline and self.detail.state == "STARTED"

    def sequenced(self, topology: PipelineTopology) -> SequencedEvent:
        """Position this event within the pipeline layout."""
        stage, action = self.detail.stage, self.detail.action
        stage_layout = topology.stage(stage)
        is_action = self.kind == EventKind.action
        return SequencedEvent(
            kind=self.kind.value,
            state=self.detail.state,
            timestamp=self.time,
            stage=stage,
            action=action if is_action else None,
            run_order=topology.run_order_rank(stage, action) if is_action else 1,
            group_size=topology.group_size(stage, action) if is_action else 0,
            stage_groups=len(stage_layout.run_orders()) if stage_layout else 0,
            stage_action_count=topology.action_count(stage),
        )


def parse_event(payload: dict[str, Any]) -> PipelineEvent:
    """Validate a raw event payload.

    Raises EventParseError(code="PARSE_ERROR") on schema mismatch.
    """
    try:
        return PipelineEvent.model_validate(payload)
    except ValidationError as e:
        raise EventParseError(f"Invalid CodePipeline event: {e}") from e


class HandleResponse(BaseModel):
    status: Literal["created", "duplicate", "applied", "deferred"]
    applied: list[str] = Field(default_factory=list)
    pending: int = 0


class ErrorResponse(BaseModel):
    code: str
    message: str
