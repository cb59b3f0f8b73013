"""
Supabase Notification Dispatcher
Writes rows to the notifications table and invokes the push edge function
"""
import logging
from typing import Optional

from supabase import AsyncClient

from consult_call.core.config import CallSettings
from consult_call.domain.interfaces.notification_dispatcher import NotificationDispatcher
from consult_call.domain.models.notification import NotificationRecord, PushAlert
from consult_call.infrastructure.supabase_client import get_async_supabase

logger = logging.getLogger(__name__)


class SupabaseNotificationDispatcher(NotificationDispatcher):
    """Best-effort persistence and push through Supabase"""

    def __init__(self, client: Optional[AsyncClient] = None, settings: Optional[CallSettings] = None):
        self._client = client
        self.settings = settings or CallSettings()

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await get_async_supabase()
        return self._client

    async def persist(self, record: NotificationRecord) -> bool:
        try:
            client = await self._get_client()
            await client.table(self.settings.notifications_table).insert(record.to_row()).execute()
            logger.info(
                f"Stored {record.type.value} notification for {record.user_id}",
                extra={"notification_type": record.type.value},
            )
            return True
        except Exception as e:
            logger.error(f"Failed to store {record.type.value} notification for {record.user_id}: {e}")
            return False

    async def push_alert(self, alert: PushAlert) -> bool:
        try:
            client = await self._get_client()
            await client.functions.invoke(
                self.settings.push_function_name,
                invoke_options={"body": alert.to_function_body()},
            )
            logger.info(f"Push '{alert.tag}' sent to {alert.target_user_id}")
            return True
        except Exception as e:
            logger.warning(f"Push '{alert.tag}' to {alert.target_user_id} failed: {e}")
            return False
