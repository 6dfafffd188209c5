"""Apply-now-or-defer decision for a single lifecycle event.

Encodes the only transitions consistent with how CodePipeline runs an
execution: one stage at a time, actions of a run-order group together, groups
in ascending run order. Any event that would break that model is deferred
until its preconditions hold.

group_size and stage_groups from the topology snapshot tighten group and stage
completion when known; at 0 the guard relies on the in-flight set alone.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from pipewatch.sequencing.events import ActionGroup, EventKind, SequencedEvent


@dataclass(frozen=True)
class Decision:
    can_apply: bool
    stage: str | None
    actions: ActionGroup


def decide(
    event: SequencedEvent,
    current_stage: str | None,
    current_actions: ActionGroup | None,
) -> Decision:
    """Decide whether event applies to the given progress and compute the next progress.

    A deferred decision carries the current progress unchanged.
    """
    actions = current_actions if current_actions is not None else ActionGroup()
    deferred = Decision(False, current_stage, actions)

    if event.kind == EventKind.pipeline:
        if current_stage is not None:
            return deferred
        return Decision(True, None, ActionGroup(no_started_action=True))

    if event.kind == EventKind.stage:
        if event.is_opening:
            if current_stage is not None:
                return deferred
            return Decision(
                True,
                event.stage,
                ActionGroup(no_started_action=True, groups=event.stage_groups),
            )
        if (
            event.stage != current_stage
            or actions.actions
            or actions.no_started_action
        ):
            return deferred
        # A stage that succeeded ran every group; failures may skip later groups.
        if event.state == "SUCCEEDED" and not actions.stage_complete:
            return deferred
        return Decision(True, None, ActionGroup())

    if event.kind == EventKind.action:
        if event.is_opening:
            if event.stage != current_stage or event.run_order != actions.run_order:
                return deferred
            return Decision(
                True,
                current_stage,
                replace(
                    actions,
                    actions=actions.actions | {event.action},
                    no_started_action=False,
                    expected=actions.expected or event.group_size,
                ),
            )
        if event.action not in actions.actions:
            return deferred
        return Decision(True, current_stage, _resolve_action(actions, event))

    # Unrecognized events fail closed: only between stages.
    if current_stage is not None:
        return deferred
    return Decision(True, current_stage, actions)


def _resolve_action(actions: ActionGroup, event: SequencedEvent) -> ActionGroup:
    remaining = actions.actions - {event.action}
    resolved = replace(actions, actions=remaining, resolved=actions.resolved + 1)
    if remaining:
        return resolved
    # Siblings of a successful action may not have reported their start yet.
    if event.state == "SUCCEEDED" and resolved.awaiting_members:
        return resolved
    return ActionGroup(
        run_order=actions.run_order + 1,
        no_started_action=False,
        groups=actions.groups,
    )
