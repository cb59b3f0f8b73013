"""
Signaling Transport Factory
"""
from typing import Optional

from consult_call.core.config import CallSettings
from consult_call.domain.interfaces.signaling_transport import SignalingTransport


class SignalingTransportFactory:
    """
    Factory for creating signaling transports.

    "supabase" talks to Supabase Realtime; "memory" keeps every
    participant inside this process.
    """

    @classmethod
    def create(cls, transport_type: str, settings: Optional[CallSettings] = None, **kwargs) -> SignalingTransport:
        """
        Create signaling transport instance.

        Args:
            transport_type: "supabase" or "memory"
            settings: Call settings (broadcast_self)
            **kwargs: Passed to the transport (client, hub)
        """
        settings = settings or CallSettings()

        if transport_type == "supabase":
            from consult_call.infrastructure.signaling.supabase_realtime import SupabaseRealtimeTransport
            return SupabaseRealtimeTransport(broadcast_self=settings.broadcast_self, **kwargs)
        elif transport_type == "memory":
            from consult_call.infrastructure.signaling.memory_transport import InMemoryTransport
            return InMemoryTransport(broadcast_self=settings.broadcast_self, **kwargs)

        raise ValueError(
            f"Unknown signaling transport: {transport_type}. "
            f"Available: {', '.join(cls.list_transports())}"
        )

    @classmethod
    def list_transports(cls) -> list[str]:
        return ["supabase", "memory"]
