from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class NotificationContent:
    """Channel-neutral message content. text and details are pre-escaped HTML."""

    text: str
    state: str
    title: str | None = None
    details: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "state": self.state,
            "title": self.title,
            "details": list(self.details),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> NotificationContent | None:
        if not data:
            return None
        return cls(
            text=data.get("text", ""),
            state=data.get("state", ""),
            title=data.get("title"),
            details=tuple(data.get("details") or ()),
        )


class Notifier(ABC):
    """Threaded notification channel. Failures propagate to the caller."""

    @abstractmethod
    async def post(self, thread_handle: int | None, content: NotificationContent) -> int:
        """Post content, as a reply to thread_handle when given; return the message handle."""
        ...

    @abstractmethod
    async def update(self, thread_handle: int, content: NotificationContent) -> None:
        """Replace the content of an already-posted message."""
        ...
