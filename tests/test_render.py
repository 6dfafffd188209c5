"""Tests for notification rendering: narration, root message, Telegram HTML."""

from __future__ import annotations

from datetime import UTC, datetime

from pipewatch.notify.base import NotificationContent
from pipewatch.notify.render import (
    console_link,
    format_for_telegram,
    project_and_env,
    render_commit_details,
    render_event,
    render_root,
    state_marker,
    with_details,
)
from pipewatch.pipeline.topology import CommitMetadata
from pipewatch.sequencing.events import SequencedEvent

_TS = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


# ── project / env ────────────────────────────────────────────────────────────


class TestProjectAndEnv:
    def test_pattern_group_is_project(self):
        assert project_and_env("codepipeline-shop", r"codepipeline-(.*)") == (
            "shop",
            "production",
        )

    def test_staging_in_name(self):
        project, env = project_and_env("codepipeline-shop-staging", r"codepipeline-(.*)")
        assert project == "shop-staging"
        assert env == "staging"

    def test_no_match_uses_whole_name(self):
        assert project_and_env("deploy-shop", r"codepipeline-(.*)")[0] == "deploy-shop"


# ── narration ────────────────────────────────────────────────────────────────


class TestRenderEvent:
    def test_stage(self):
        event = SequencedEvent(kind="stage", state="STARTED", timestamp=_TS, stage="Build")
        assert render_event(event) == NotificationContent(
            text="Stage <b>Build</b> just <b>started</b>", state="STARTED"
        )

    def test_action(self):
        event = SequencedEvent(
            kind="action", state="FAILED", timestamp=_TS, stage="Build", action="Compile"
        )
        assert render_event(event).text == "Action <b>Compile</b> just <b>failed</b>"

    def test_pipeline(self):
        event = SequencedEvent(kind="pipeline", state="SUCCEEDED", timestamp=_TS)
        assert render_event(event).text == "Deployment just <b>succeeded</b>"

    def test_names_escaped(self):
        event = SequencedEvent(kind="stage", state="STARTED", timestamp=_TS, stage="A<B>")
        assert "A&lt;B&gt;" in render_event(event).text


class TestRenderRoot:
    def test_title_and_console_link(self):
        root = render_root(
            pipeline_name="codepipeline-shop",
            state="STARTED",
            project="shop",
            env="production",
            region="eu-west-1",
        )
        assert root.title == "shop (production)"
        assert root.text.startswith("Deployment just <b>started</b>")
        assert "eu-west-1.console.aws.amazon.com" in root.text
        assert "#/view/codepipeline-shop" in root.text

    def test_console_link(self):
        assert console_link("p", "us-east-1") == (
            "https://us-east-1.console.aws.amazon.com/codepipeline/home"
            "?region=us-east-1#/view/p"
        )


class TestCommitDetails:
    def test_linked_commit_with_summary(self):
        commit = CommitMetadata(
            commit_id="0123456789abcdef",
            summary="Fix <totals>",
            url="https://github.com/acme/shop/commit/0123456789abcdef",
        )
        details = render_commit_details(
            commit, pipeline_name="codepipeline-shop", execution_id="exec-1", region="eu-west-1"
        )
        assert '<a href="https://github.com/acme/shop/commit/0123456789abcdef">' in details
        assert "<code>01234567</code>" in details
        assert "<blockquote>Fix &lt;totals&gt;</blockquote>" in details
        assert "exec-1" in details
        assert "/history" in details

    def test_bare_commit(self):
        details = render_commit_details(
            CommitMetadata(commit_id="abc"),
            pipeline_name="p",
            execution_id="e",
            region="eu-west-1",
        )
        assert details.startswith("commit <code>abc</code>")
        assert "blockquote" not in details

    def test_with_details_appends(self):
        root = NotificationContent(text="t", state="STARTED", title="shop (production)")
        updated = with_details(root, "commit <code>abc</code>")
        assert updated.details == ("commit <code>abc</code>",)
        assert updated.title == root.title
        assert root.details == ()


# ── Telegram HTML ────────────────────────────────────────────────────────────


class TestFormatForTelegram:
    def test_full_message(self):
        content = NotificationContent(
            text="Deployment just <b>started</b>",
            state="STARTED",
            title="shop (production)",
            details=("commit <code>abc</code>",),
        )
        assert format_for_telegram(content) == (
            "<b>shop (production)</b>\n"
            f"{state_marker('STARTED')} Deployment just <b>started</b>\n"
            "commit <code>abc</code>"
        )

    def test_reply_without_title(self):
        content = NotificationContent(text="Stage <b>Build</b> just <b>failed</b>", state="FAILED")
        assert format_for_telegram(content) == f"{state_marker('FAILED')} {content.text}"

    def test_too_long_drops_details(self):
        content = NotificationContent(
            text="short", state="STARTED", title="t", details=("x" * 5000,)
        )
        out = format_for_telegram(content, max_length=100)
        assert out == f"{state_marker('STARTED')} short"

    def test_unknown_state_marker(self):
        assert state_marker("STOPPING") == state_marker("ANYTHING")
        assert state_marker("SUCCEEDED") != state_marker("FAILED")
