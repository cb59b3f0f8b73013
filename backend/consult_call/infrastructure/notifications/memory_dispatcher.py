"""
In-Memory Notification Dispatcher
Keeps records and alerts in lists; used with the in-memory transport
"""
import logging
from typing import List

from consult_call.domain.interfaces.notification_dispatcher import NotificationDispatcher
from consult_call.domain.models.notification import NotificationRecord, NotificationType, PushAlert

logger = logging.getLogger(__name__)


class InMemoryNotificationDispatcher(NotificationDispatcher):

    def __init__(self):
        self.records: List[NotificationRecord] = []
        self.alerts: List[PushAlert] = []

    async def persist(self, record: NotificationRecord) -> bool:
        self.records.append(record)
        logger.debug(f"Recorded {record.type.value} for {record.user_id}")
        return True

    async def push_alert(self, alert: PushAlert) -> bool:
        self.alerts.append(alert)
        return True

    def records_for(self, user_id: str, type: NotificationType = None) -> List[NotificationRecord]:
        return [
            r for r in self.records
            if r.user_id == user_id and (type is None or r.type == type)
        ]

    def alerts_for(self, user_id: str) -> List[PushAlert]:
        return [a for a in self.alerts if a.target_user_id == user_id]
