"""Tests for TelegramNotifier: threaded posting, edits, readiness check."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.enums import ParseMode

from pipewatch.infra.errors import NotifierError
from pipewatch.notify.base import NotificationContent
from pipewatch.notify.telegram import TelegramNotifier

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_bot(message_id: int = 555) -> MagicMock:
    bot = MagicMock()
    sent = MagicMock()
    sent.message_id = message_id
    bot.send_message = AsyncMock(return_value=sent)
    bot.edit_message_text = AsyncMock()
    bot.get_me = AsyncMock()
    bot.session.close = AsyncMock()
    return bot


def _make_notifier(bot: MagicMock, max_length: int = 4096) -> TelegramNotifier:
    return TelegramNotifier(
        "123456789:ABCdefGHIjklmNOPqrs", -100200300, message_max_length=max_length, bot=bot
    )


_ROOT = NotificationContent(
    text="Deployment just <b>started</b>", state="STARTED", title="shop (production)"
)


# ---------------------------------------------------------------------------
# post / update
# ---------------------------------------------------------------------------


class TestPost:
    async def test_root_message_not_a_reply(self):
        bot = _make_bot(message_id=101)
        notifier = _make_notifier(bot)

        handle = await notifier.post(None, _ROOT)

        assert handle == 101
        kwargs = bot.send_message.await_args.kwargs
        assert kwargs["chat_id"] == -100200300
        assert kwargs["parse_mode"] == ParseMode.HTML
        assert kwargs["reply_parameters"] is None
        assert kwargs["text"].startswith("<b>shop (production)</b>")
        assert kwargs["link_preview_options"].is_disabled is True

    async def test_reply_threads_under_root(self):
        bot = _make_bot(message_id=102)
        notifier = _make_notifier(bot)
        content = NotificationContent(text="Stage <b>Build</b> just <b>started</b>", state="STARTED")

        await notifier.post(101, content)

        reply = bot.send_message.await_args.kwargs["reply_parameters"]
        assert reply.message_id == 101

    async def test_send_failure_propagates(self):
        bot = _make_bot()
        bot.send_message.side_effect = RuntimeError("network down")
        notifier = _make_notifier(bot)

        with pytest.raises(RuntimeError, match="network down"):
            await notifier.post(None, _ROOT)

    async def test_text_limited_to_max_length(self):
        bot = _make_bot()
        notifier = _make_notifier(bot, max_length=50)
        content = NotificationContent(
            text="Deployment just <b>started</b>", state="STARTED", details=("x" * 200,)
        )

        await notifier.post(None, content)

        assert len(bot.send_message.await_args.kwargs["text"]) <= 50


class TestUpdate:
    async def test_edits_root_message(self):
        bot = _make_bot()
        notifier = _make_notifier(bot)

        await notifier.update(101, _ROOT)

        kwargs = bot.edit_message_text.await_args.kwargs
        assert kwargs["message_id"] == 101
        assert kwargs["chat_id"] == -100200300
        assert kwargs["parse_mode"] == ParseMode.HTML


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_check_ready_ok(self):
        bot = _make_bot()
        bot.get_me.return_value = MagicMock(username="pipewatch_bot")
        await _make_notifier(bot).check_ready()
        bot.get_me.assert_awaited_once()

    async def test_check_ready_failure(self):
        bot = _make_bot()
        bot.get_me.side_effect = RuntimeError("Unauthorized")

        with pytest.raises(NotifierError) as exc_info:
            await _make_notifier(bot).check_ready()

        assert exc_info.value.code == "TELEGRAM_AUTH_FAILED"

    async def test_close_closes_session(self):
        bot = _make_bot()
        await _make_notifier(bot).close()
        bot.session.close.assert_awaited_once()
