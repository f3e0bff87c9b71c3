"""
approval_kernel.services.notifications -- Outbound approval notifications.

Responsibility:
    Defines the notifier interface the approval service calls after every
    committed transition, plus ``dispatch_notification`` which isolates the
    service from notifier failures.

Architecture position:
    Kernel > Services.  Delivery (email, WhatsApp, in-app) belongs to
    external collaborators implementing ``ApprovalNotifier``.

Invariants enforced:
    - Fire-and-forget: a notifier exception is logged and swallowed; it can
      never roll back or mask the state transition that triggered it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from approval_kernel.domain.approval import ApprovalRequest, NotifyChannel
from approval_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

APPROVAL_REQUESTED = "approval.requested"
APPROVAL_APPROVED = "approval.approved"
APPROVAL_REJECTED = "approval.rejected"
APPROVAL_ESCALATED = "approval.escalated"
APPROVAL_COMMENTED = "approval.commented"
APPROVAL_EXPIRED = "approval.expired"


class ApprovalNotifier(Protocol):
    """Pluggable outbound notification hook."""

    def notify(
        self,
        event: str,
        request: ApprovalRequest,
        channels: tuple[NotifyChannel, ...],
    ) -> None:
        """Deliver (or enqueue) a notification about ``request``."""
        ...


class NullNotifier:
    """Notifier that does nothing."""

    def notify(
        self,
        event: str,
        request: ApprovalRequest,
        channels: tuple[NotifyChannel, ...],
    ) -> None:
        return None


@dataclass
class SentNotification:
    event: str
    request: ApprovalRequest
    channels: tuple[NotifyChannel, ...]


@dataclass
class RecordingNotifier:
    """In-process notifier that keeps every notification it receives."""

    sent: list[SentNotification] = field(default_factory=list)

    def notify(
        self,
        event: str,
        request: ApprovalRequest,
        channels: tuple[NotifyChannel, ...],
    ) -> None:
        self.sent.append(SentNotification(event, request, channels))

    def events(self) -> list[str]:
        return [n.event for n in self.sent]


def dispatch_notification(
    notifier: ApprovalNotifier,
    event: str,
    request: ApprovalRequest,
    channels: tuple[NotifyChannel, ...],
) -> bool:
    """Call ``notifier`` and report whether it succeeded.

    Never raises: the transition has already been written.
    """
    try:
        notifier.notify(event, request, channels)
    except Exception:
        logger.warning(
            "approval_notifier_failed",
            exc_info=True,
            extra={
                "event": event,
                "request_id": str(request.request_id),
                "channels": [c.value for c in channels],
            },
        )
        return False
    return True
