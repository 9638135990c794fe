import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from zabibu_fresh.errors import ZabibuError

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    id: int
    title: str
    message: str
    level: str = "info"
    action: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    dismissed: bool = False


class NotificationCenter:
    """Discrete, dismissable notifications the UI shell renders as alerts"""

    def __init__(self):
        self._notifications: List[Notification] = []
        self._ids = itertools.count(1)
        self._listeners: List[Callable[[Notification], None]] = []

    @property
    def active(self) -> List[Notification]:
        return [n for n in self._notifications if not n.dismissed]

    def add_listener(self, listener: Callable[[Notification], None]):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def notify(self, title: str, message: str, level: str = "info", action: Optional[str] = None) -> Notification:
        notification = Notification(id=next(self._ids), title=title, message=message, level=level, action=action)
        self._notifications.append(notification)
        for listener in list(self._listeners):
            listener(notification)
        return notification

    def notify_failure(self, action: str, error: Exception) -> Notification:
        title, message = get_action_failed_message(action, error)
        logger.warning(f"{title}: {message}")
        return self.notify(title, message, level="error", action=action)

    def dismiss(self, notification_id: int) -> bool:
        for notification in self._notifications:
            if notification.id == notification_id and not notification.dismissed:
                notification.dismissed = True
                return True
        return False

    def dismiss_all(self):
        for notification in self._notifications:
            notification.dismissed = True

    async def attempt(self, action: str, func, *args, **kwargs):
        """
        Run a service call on behalf of the UI. Domain errors become a
        notification naming the action and the call returns None; anything
        else propagates.
        """
        try:
            return await func(*args, **kwargs)
        except ZabibuError as e:
            self.notify_failure(e.action or action, e)
            return None


# Message templates
def get_action_failed_message(action: str, error: Exception) -> tuple[str, str]:
    title = f"Could not {action}"
    detail = getattr(error, "detail", None) or str(error) or "Please try again."
    return title, detail


def get_signup_message(needs_confirmation: bool) -> tuple[str, str]:
    if needs_confirmation:
        return "Signup Successful", "Please verify your phone number with the code we sent before logging in."
    return "Signup Successful", "Welcome to Zabibu Fresh!"
