"""
Lifecycle notifier -- post-commit side effects.

Services collect notices into an :class:`Outbox` while their transaction
is open and hand it to :meth:`LifecycleNotifier.dispatch` only after the
commit succeeded.  Delivery is best-effort: a failing sink is logged and
counted, never re-raised, so it cannot undo committed booking state.

The default sinks persist into the ``notifications`` and ``messages``
tables through their own short-lived session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import MessageModel, NotificationModel
from src.domain.enums import NotificationType

logger = logging.getLogger(__name__)


# ── Collaborator contracts ────────────────────────────────────────────


class NotificationSink(Protocol):
    async def notify(
        self,
        recipient_id: int,
        type: NotificationType,
        title: str,
        message: str,
        ride_id: Optional[int] = None,
        booking_id: Optional[int] = None,
    ) -> None: ...


class ChatSink(Protocol):
    async def post_message(
        self, ride_id: int, sender_id: Optional[int], content: str
    ) -> None: ...


# ── Outbox ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Notice:
    recipient_id: int
    type: NotificationType
    title: str
    message: str
    ride_id: Optional[int] = None
    booking_id: Optional[int] = None


@dataclass(frozen=True)
class ChatPost:
    ride_id: int
    content: str
    sender_id: Optional[int] = None  # None marks a system message


@dataclass
class Outbox:
    notices: list[Notice] = field(default_factory=list)
    chat_posts: list[ChatPost] = field(default_factory=list)

    def notify(self, recipient_id: int, type: NotificationType, title: str,
               message: str, *, ride_id: Optional[int] = None,
               booking_id: Optional[int] = None) -> None:
        self.notices.append(
            Notice(recipient_id, type, title, message, ride_id, booking_id)
        )

    def system_message(self, ride_id: int, content: str) -> None:
        self.chat_posts.append(ChatPost(ride_id, content))

    def __len__(self) -> int:
        return len(self.notices) + len(self.chat_posts)


@dataclass(frozen=True)
class DispatchReport:
    delivered: int = 0
    failed: int = 0

    @property
    def degraded(self) -> bool:
        return self.failed > 0


# ── Default sinks ─────────────────────────────────────────────────────


class DatabaseNotificationSink:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def notify(self, recipient_id, type, title, message,
                     ride_id=None, booking_id=None) -> None:
        async with self.session_factory() as session:
            session.add(
                NotificationModel(
                    user_id=recipient_id,
                    type=NotificationType(type).value,
                    title=title,
                    message=message,
                    ride_id=ride_id,
                    booking_id=booking_id,
                )
            )
            await session.commit()


class DatabaseChatSink:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def post_message(self, ride_id, sender_id, content) -> None:
        async with self.session_factory() as session:
            session.add(
                MessageModel(
                    ride_id=ride_id,
                    sender_id=sender_id,
                    content=content,
                    is_system=sender_id is None,
                )
            )
            await session.commit()


# ── Dispatcher ────────────────────────────────────────────────────────


class LifecycleNotifier:
    def __init__(self, notifications: NotificationSink, chat: ChatSink):
        self.notifications = notifications
        self.chat = chat

    async def dispatch(self, outbox: Outbox) -> DispatchReport:
        delivered = failed = 0

        for post in outbox.chat_posts:
            try:
                await self.chat.post_message(post.ride_id, post.sender_id, post.content)
                delivered += 1
            except Exception:
                failed += 1
                logger.exception("Chat message for ride %s not delivered", post.ride_id)

        for notice in outbox.notices:
            try:
                await self.notifications.notify(
                    notice.recipient_id,
                    notice.type,
                    notice.title,
                    notice.message,
                    ride_id=notice.ride_id,
                    booking_id=notice.booking_id,
                )
                delivered += 1
            except Exception:
                failed += 1
                logger.exception(
                    "Notification %s to user %s not delivered",
                    notice.type.value,
                    notice.recipient_id,
                )

        report = DispatchReport(delivered, failed)
        if report.degraded:
            logger.warning(
                "Side-effect dispatch degraded: %d delivered, %d failed",
                delivered,
                failed,
            )
        return report


def database_notifier(
    session_factory: async_sessionmaker[AsyncSession],
) -> LifecycleNotifier:
    return LifecycleNotifier(
        DatabaseNotificationSink(session_factory),
        DatabaseChatSink(session_factory),
    )
