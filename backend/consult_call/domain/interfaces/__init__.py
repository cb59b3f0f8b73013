"""Collaborator interfaces"""
from .media_engine import MediaEngine, ConnectionState, ConnectionStateListener
from .signaling_transport import SignalingTransport, SignalingChannel, BroadcastHandler
from .notification_dispatcher import NotificationDispatcher

__all__ = [
    "MediaEngine",
    "ConnectionState",
    "ConnectionStateListener",
    "SignalingTransport",
    "SignalingChannel",
    "BroadcastHandler",
    "NotificationDispatcher",
]
