# services/notifications.py
import logging
from typing import Iterable, Optional, Protocol

logger = logging.getLogger("uvicorn")


class Notifier(Protocol):
    def notify(self, recipients: list[str], kind: str, title: str, content: str, metadata: Optional[dict] = None) -> None:
        ...


class LoggingNotifier:
    """Default notifier; delivery is handled by another service."""

    def notify(self, recipients: list[str], kind: str, title: str, content: str, metadata: Optional[dict] = None) -> None:
        logger.info(f"📨 [{kind}] {title} -> {len(recipients)} recipient(s)")


def dispatch_notification(
    notifier: Optional[Notifier],
    recipients: Iterable[str],
    kind: str,
    title: str,
    content: str,
    metadata: Optional[dict] = None,
) -> bool:
    """Fire-and-forget: a failing notifier never fails the action that triggered it."""
    recipients = sorted(set(r for r in recipients if r))
    if notifier is None or not recipients:
        return False
    try:
        notifier.notify(recipients, kind, title, content, metadata or {})
        return True
    except Exception as e:
        logger.warning(f"⚠️ Notification '{kind}' failed: {e}")
        return False
