"""Notification rendering: event narration text, commit details, Telegram HTML."""

from __future__ import annotations

import re
from html import escape

from pipewatch.notify.base import NotificationContent
from pipewatch.pipeline.topology import CommitMetadata
from pipewatch.sequencing.events import EventKind, SequencedEvent

# ── State → status marker ───────────────────────────────────────────────────

_STATE_MARKERS: dict[str, str] = {
    "STARTED": "🔵",
    "RESUMED": "🟢",
    "SUCCEEDED": "✅",
    "FAILED": "❌",
    "SUPERSEDED": "🟠",
    "CANCELED": "⚪",
}

_DEFAULT_MARKER = "▫️"


def state_marker(state: str) -> str:
    return _STATE_MARKERS.get(state, _DEFAULT_MARKER)


# ── Project / environment naming ────────────────────────────────────────────


def project_and_env(pipeline_name: str, project_pattern: str) -> tuple[str, str]:
    """Derive (project, env) from a pipeline name.

    The project is the pattern's first group, or the whole name when the
    pattern does not match. Pipelines with "staging" in their name are staging.
    """
    match = re.search(project_pattern, pipeline_name)
    project = match.group(1) if match and match.group(1) else pipeline_name
    env = "staging" if "staging" in pipeline_name else "production"
    return project, env


def console_link(pipeline_name: str, region: str) -> str:
    return (
        f"https://{region}.console.aws.amazon.com/codepipeline/home"
        f"?region={region}#/view/{pipeline_name}"
    )


# ── Content builders ────────────────────────────────────────────────────────


def render_root(
    *, pipeline_name: str, state: str, project: str, env: str, region: str
) -> NotificationContent:
    link = console_link(pipeline_name, region)
    return NotificationContent(
        title=escape(f"{project} ({env})"),
        text=f'Deployment just <b>{escape(state.lower())}</b> <a href="{escape(link)}">🔗</a>',
        state=state,
    )


def render_event(event: SequencedEvent) -> NotificationContent:
    state = escape(event.state.lower())
    if event.kind == EventKind.stage:
        text = f"Stage <b>{escape(event.stage or '')}</b> just <b>{state}</b>"
    elif event.kind == EventKind.action:
        text = f"Action <b>{escape(event.action or '')}</b> just <b>{state}</b>"
    else:
        text = f"Deployment just <b>{state}</b>"
    return NotificationContent(text=text, state=event.state)


def render_commit_details(
    commit: CommitMetadata, *, pipeline_name: str, execution_id: str, region: str
) -> str:
    history = f"{console_link(pipeline_name, region)}/history"
    commit_ref = f"<code>{escape(commit.short_id)}</code>"
    if commit.url:
        commit_ref = f'<a href="{escape(commit.url)}">{commit_ref}</a>'
    lines = [f"commit {commit_ref}"]
    if commit.summary:
        lines.append(f"<blockquote>{escape(commit.summary)}</blockquote>")
    lines.append(
        f'<i>execution-id: <a href="{escape(history)}">{escape(execution_id)}</a></i>'
    )
    return "\n".join(lines)


def with_details(content: NotificationContent, details: str) -> NotificationContent:
    return NotificationContent(
        text=content.text,
        state=content.state,
        title=content.title,
        details=(*content.details, details),
    )


# ── Telegram HTML ───────────────────────────────────────────────────────────


def format_for_telegram(content: NotificationContent, max_length: int = 4096) -> str:
    """Render content as Telegram HTML, cut to max_length characters."""
    parts: list[str] = []
    if content.title:
        parts.append(f"<b>{content.title}</b>")
    parts.append(f"{state_marker(content.state)} {content.text}")
    parts.extend(content.details)
    text = "\n".join(parts)
    if len(text) <= max_length:
        return text
    # Cutting inside markup would break HTML parsing; fall back to the bare line.
    fallback = f"{state_marker(content.state)} {content.text}"
    return fallback[:max_length]
