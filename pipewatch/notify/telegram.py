"""Telegram notifier: one root message per execution, replies for each event."""

from __future__ import annotations

import structlog
from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.types import LinkPreviewOptions, ReplyParameters

from pipewatch.infra.errors import NotifierError
from pipewatch.notify.base import NotificationContent, Notifier
from pipewatch.notify.render import format_for_telegram

logger = structlog.get_logger()


class TelegramNotifier(Notifier):
    def __init__(
        self,
        bot_token: str,
        chat_id: int,
        *,
        message_max_length: int = 4096,
        bot: Bot | None = None,
    ) -> None:
        self._bot = bot or Bot(token=bot_token)
        self._chat_id = chat_id
        self._max_length = message_max_length

    async def check_ready(self) -> None:
        """Verify bot token and connectivity via getMe. Raises NotifierError on failure."""
        try:
            me = await self._bot.get_me()
            logger.info("telegram_bot_ready", username=me.username or "")
        except Exception as exc:
            raise NotifierError(
                f"Telegram bot token verification failed: {exc}",
                code="TELEGRAM_AUTH_FAILED",
            ) from exc

    async def post(self, thread_handle: int | None, content: NotificationContent) -> int:
        reply = ReplyParameters(message_id=thread_handle) if thread_handle else None
        message = await self._bot.send_message(
            chat_id=self._chat_id,
            text=format_for_telegram(content, self._max_length),
            parse_mode=ParseMode.HTML,
            reply_parameters=reply,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )
        logger.debug(
            "telegram_message_posted",
            message_id=message.message_id,
            thread_handle=thread_handle,
        )
        return message.message_id

    async def update(self, thread_handle: int, content: NotificationContent) -> None:
        await self._bot.edit_message_text(
            text=format_for_telegram(content, self._max_length),
            chat_id=self._chat_id,
            message_id=thread_handle,
            parse_mode=ParseMode.HTML,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )

    async def close(self) -> None:
        await self._bot.session.close()
