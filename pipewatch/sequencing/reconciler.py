"""Backlog replay for events that arrived before their preconditions held."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from pipewatch.sequencing.events import ActionGroup, SequencedEvent
from pipewatch.sequencing.guard import Decision, decide


@dataclass(frozen=True)
class AppliedStep:
    """One backlog event applied during a drain, with the progress after it."""

    event: SequencedEvent
    stage: str | None
    actions: ActionGroup


@dataclass(frozen=True)
class DrainResult:
    steps: tuple[AppliedStep, ...]
    stage: str | None
    actions: ActionGroup
    remaining: tuple[SequencedEvent, ...]

    @property
    def applied_keys(self) -> list[str]:
        return [step.event.key for step in self.steps]


def drain(
    pending: Iterable[SequencedEvent],
    current_stage: str | None,
    current_actions: ActionGroup | None,
) -> DrainResult:
    """Apply every backlog event the guard now permits, earliest first.

    The head of the timestamp-ordered backlog is tried first. When it is
    blocked, entries sharing its exact timestamp are tried in order, since
    CodePipeline stamps concurrent actions identically. Draining stops at the
    first timestamp group with nothing applicable; the rest is left as is.
    """
    # sorted() is stable, so equal timestamps keep their arrival order.
    backlog = sorted(pending, key=lambda e: e.timestamp)
    stage = current_stage
    actions = current_actions if current_actions is not None else ActionGroup()
    steps: list[AppliedStep] = []

    while backlog:
        found = _next_applicable(backlog, stage, actions)
        if found is None:
            break
        index, decision = found
        event = backlog.pop(index)
        stage, actions = decision.stage, decision.actions
        steps.append(AppliedStep(event=event, stage=stage, actions=actions))

    return DrainResult(
        steps=tuple(steps),
        stage=stage,
        actions=actions,
        remaining=tuple(backlog),
    )


def _next_applicable(
    backlog: list[SequencedEvent],
    stage: str | None,
    actions: ActionGroup,
) -> tuple[int, Decision] | None:
    head = backlog[0]
    for index, candidate in enumerate(backlog):
        if candidate.timestamp != head.timestamp:
            break
        decision = decide(candidate, stage, actions)
        if decision.can_apply:
            return index, decision
    return None
