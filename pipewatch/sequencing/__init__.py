"""Event sequencing: the apply-or-defer guard and backlog reconciliation."""

from pipewatch.sequencing.events import ActionGroup, EventKind, SequencedEvent
from pipewatch.sequencing.guard import Decision, decide
from pipewatch.sequencing.reconciler import AppliedStep, DrainResult, drain

__all__ = [
    "ActionGroup",
    "AppliedStep",
    "Decision",
    "DrainResult",
    "EventKind",
    "SequencedEvent",
    "decide",
    "drain",
]
