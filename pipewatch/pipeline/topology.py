"""Pipeline layout snapshot and the collaborator interfaces that supply it.

The snapshot is taken once, when an execution starts, at the pipeline version
that execution runs, and stored on the execution record. Action events do not
carry their run order, so every later event is positioned against this
snapshot.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ActionLayout:
    name: str
    run_order: int = 1


@dataclass(frozen=True)
class StageLayout:
    name: str
    actions: tuple[ActionLayout, ...] = ()

    def run_orders(self) -> list[int]:
        """Distinct run orders of this stage, ascending."""
        return sorted({a.run_order for a in self.actions})

    def find(self, action: str) -> ActionLayout | None:
        for a in self.actions:
            if a.name == action:
                return a
        return None


@dataclass(frozen=True)
class PipelineTopology:
    name: str
    stages: tuple[StageLayout, ...] = field(default_factory=tuple)

    def stage(self, name: str | None) -> StageLayout | None:
        for s in self.stages:
            if s.name == name:
                return s
        return None

    def action_count(self, stage: str | None) -> int:
        """Number of actions in a stage; 0 when the stage is unknown."""
        layout = self.stage(stage)
        return len(layout.actions) if layout else 0

    def run_order_rank(self, stage: str | None, action: str | None) -> int:
        """1-based rank of the action's run order among its stage's run orders.

        Gaps in the declared run orders (1, 3, 7) collapse to consecutive
        ranks (1, 2, 3). Unknown actions rank 1.
        """
        layout = self.stage(stage)
        if layout is None or action is None:
            return 1
        found = layout.find(action)
        if found is None:
            return 1
        return layout.run_orders().index(found.run_order) + 1

    def group_size(self, stage: str | None, action: str | None) -> int:
        """Number of actions sharing the action's run order; 0 when unknown."""
        layout = self.stage(stage)
        if layout is None or action is None:
            return 0
        found = layout.find(action)
        if found is None:
            return 0
        return sum(1 for a in layout.actions if a.run_order == found.run_order)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "stages": [
                {
                    "name": s.name,
                    "actions": [{"name": a.name, "runOrder": a.run_order} for a in s.actions],
                }
                for s in self.stages
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PipelineTopology:
        if not data:
            return cls(name="")
        return cls(
            name=data.get("name", ""),
            stages=tuple(
                StageLayout(
                    name=s["name"],
                    actions=tuple(
                        ActionLayout(name=a["name"], run_order=int(a.get("runOrder", 1)))
                        for a in s.get("actions", [])
                    ),
                )
                for s in data.get("stages", [])
            ),
        )


@dataclass(frozen=True)
class CommitMetadata:
    commit_id: str
    summary: str = ""
    url: str = ""

    @property
    def short_id(self) -> str:
        return self.commit_id[:8]

    def to_dict(self) -> dict[str, str]:
        return {"commit_id": self.commit_id, "summary": self.summary, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CommitMetadata | None:
        if not data or not data.get("commit_id"):
            return None
        return cls(
            commit_id=data["commit_id"],
            summary=data.get("summary", ""),
            url=data.get("url", ""),
        )


class TopologyProvider(ABC):
    """Supplies pipeline layout and per-execution source revisions."""

    @abstractmethod
    async def describe_pipeline(
        self, pipeline_name: str, version: int | None = None
    ) -> PipelineTopology:
        """Return the layout of a pipeline, pinned to version when given."""
        ...

    @abstractmethod
    async def get_artifact_revision(
        self, pipeline_name: str, execution_id: str
    ) -> dict[str, Any] | None:
        """Return the first source artifact revision of an execution, if any."""
        ...


class CommitMetadataProvider(ABC):
    @abstractmethod
    async def lookup(
        self, topology: PipelineTopology, revision: dict[str, Any] | None
    ) -> CommitMetadata | None:
        ...
