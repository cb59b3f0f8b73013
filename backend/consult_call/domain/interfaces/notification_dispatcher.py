"""
Notification Dispatcher Interface
"""
from abc import ABC, abstractmethod

from consult_call.domain.models.notification import NotificationRecord, PushAlert


class NotificationDispatcher(ABC):
    """
    Persists notification records and sends push alerts.

    Both operations are best effort: implementations log failures and
    return False instead of raising, so a notification problem never
    rolls back the call transition that triggered it.
    """

    @abstractmethod
    async def persist(self, record: NotificationRecord) -> bool:
        pass

    @abstractmethod
    async def push_alert(self, alert: PushAlert) -> bool:
        pass
