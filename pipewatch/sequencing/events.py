"""Progress state and backlog entry types shared by the guard and reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

OPENING_STATES = frozenset({"STARTED", "RESUMED"})


class EventKind(StrEnum):
    pipeline = "pipeline"
    stage = "stage"
    action = "action"
    unknown = "unknown"


@dataclass(frozen=True)
class ActionGroup:
    """Actions of the current run-order group that started but have not resolved.

    no_started_action is set when a stage opens and cleared by the first
    action start; a stage cannot close while it is set.

    expected and resolved track group completion when the topology knows the
    group size; groups is the number of run-order groups in the current stage.
    Zero means unknown for all of these.
    """

    run_order: int = 1
    actions: frozenset[str] = field(default_factory=frozenset)
    no_started_action: bool = False
    expected: int = 0
    resolved: int = 0
    groups: int = 0

    @property
    def awaiting_members(self) -> bool:
        return bool(self.expected) and self.resolved < self.expected

    @property
    def stage_complete(self) -> bool:
        """All run-order groups of the stage have resolved, as far as is known."""
        if self.actions or self.awaiting_members:
            return False
        return not self.groups or self.run_order > self.groups

    def to_dict(self) -> dict[str, Any]:
        return {
            "runOrder": self.run_order,
            "actions": sorted(self.actions),
            "noStartedAction": self.no_started_action,
            "expected": self.expected,
            "resolved": self.resolved,
            "groups": self.groups,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ActionGroup:
        if not data:
            return cls()
        return cls(
            run_order=int(data.get("runOrder", 1)),
            actions=frozenset(data.get("actions") or ()),
            no_started_action=bool(data.get("noStartedAction", False)),
            expected=int(data.get("expected", 0)),
            resolved=int(data.get("resolved", 0)),
            groups=int(data.get("groups", 0)),
        )


@dataclass(frozen=True)
class SequencedEvent:
    """A lifecycle event positioned within its pipeline, as held in the backlog.

    run_order is the action's 1-based rank among its stage's run orders.
    group_size, stage_groups and stage_action_count come from the topology
    snapshot; 0 means the snapshot did not know the stage or action.
    """

    kind: str
    state: str
    timestamp: datetime
    stage: str | None = None
    action: str | None = None
    run_order: int = 1
    group_size: int = 0
    stage_groups: int = 0
    stage_action_count: int = 0

    @property
    def is_opening(self) -> bool:
        return self.state in OPENING_STATES

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.state}:{self.stage or ''}:{self.action or ''}:{self.run_order}"

    @property
    def mark(self) -> str:
        """Identity of one delivery-independent occurrence of this event."""
        return f"{self.key}@{self.timestamp.isoformat()}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "state": self.state,
            "timestamp": self.timestamp.isoformat(),
            "stage": self.stage,
            "action": self.action,
            "runOrder": self.run_order,
            "groupSize": self.group_size,
            "stageGroups": self.stage_groups,
            "stageActionCount": self.stage_action_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SequencedEvent:
        """Decode a backlog entry. Raises KeyError/ValueError/TypeError when malformed."""
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        return cls(
            kind=str(data["kind"]),
            state=str(data["state"]),
            timestamp=timestamp,
            stage=data.get("stage"),
            action=data.get("action"),
            run_order=int(data.get("runOrder", 1)),
            group_size=int(data.get("groupSize", 0)),
            stage_groups=int(data.get("stageGroups", 0)),
            stage_action_count=int(data.get("stageActionCount", 0)),
        )
