"""Notification, email and audit sinks.

These collaborators are fire-and-forget from the order workflows' point
of view. The default implementations write structured log records; a
deployment swaps in real senders with the same methods.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger()


class NotificationSink:
    """In-app notification delivery."""

    async def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        link: str | None = None,
    ) -> None:
        logger.info(
            "Notification sent",
            user_id=user_id,
            notification_type=type,
            title=title,
            message=message,
            link=link,
        )


class EmailSender:
    """Transactional customer emails."""

    async def send_shipped_email(
        self,
        to: str,
        order_number: str,
        courier_name: str,
        tracking_number: str,
    ) -> None:
        logger.info(
            "Shipped email sent",
            to=to,
            order_number=order_number,
            courier_name=courier_name,
            tracking_number=tracking_number,
        )

    async def send_delivered_email(self, to: str, order_number: str) -> None:
        logger.info("Delivered email sent", to=to, order_number=order_number)

    async def send_corporate_status_email(self, to: str, order_number: str, status: str) -> None:
        logger.info(
            "Corporate order status email sent",
            to=to,
            order_number=order_number,
            status=status,
        )


class AuditLog:
    """Activity log for seller actions."""

    async def log_activity(
        self,
        domain: str,
        action: str,
        actor_id: str,
        actor_role: str,
        target_type: str,
        target_id: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        logger.info(
            "Activity logged",
            domain=domain,
            action=action,
            actor_id=actor_id,
            actor_role=actor_role,
            target_type=target_type,
            target_id=target_id,
            message=message,
            metadata=metadata or {},
        )


@dataclass
class SideEffectSinks:
    """The sinks event handlers deliver to."""

    notifications: NotificationSink = field(default_factory=NotificationSink)
    emails: EmailSender = field(default_factory=EmailSender)
    audit: AuditLog = field(default_factory=AuditLog)


# Global sinks instance
_sinks: SideEffectSinks | None = None


def get_sinks() -> SideEffectSinks:
    """Get the side effect sinks singleton."""
    global _sinks
    if _sinks is None:
        _sinks = SideEffectSinks()
    return _sinks


def reset_sinks(sinks: SideEffectSinks | None = None) -> None:
    """Replace the sinks (for testing)."""
    global _sinks
    _sinks = sinks
