"""
Notification Dispatcher Factory
"""
from typing import Optional

from consult_call.core.config import CallSettings
from consult_call.domain.interfaces.notification_dispatcher import NotificationDispatcher


class NotificationDispatcherFactory:
    """Picks the dispatcher matching the signaling transport"""

    @classmethod
    def create(cls, dispatcher_type: str, settings: Optional[CallSettings] = None, **kwargs) -> NotificationDispatcher:
        if dispatcher_type == "supabase":
            from consult_call.infrastructure.notifications.supabase_dispatcher import SupabaseNotificationDispatcher
            return SupabaseNotificationDispatcher(settings=settings, **kwargs)
        elif dispatcher_type == "memory":
            from consult_call.infrastructure.notifications.memory_dispatcher import InMemoryNotificationDispatcher
            return InMemoryNotificationDispatcher()

        raise ValueError(
            f"Unknown notification dispatcher: {dispatcher_type}. "
            f"Available: {', '.join(cls.list_dispatchers())}"
        )

    @classmethod
    def list_dispatchers(cls) -> list[str]:
        return ["supabase", "memory"]
