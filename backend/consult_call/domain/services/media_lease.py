"""
Media Lease
Process-wide exclusive ownership of the local camera/microphone
"""
import logging
from typing import Optional

from consult_call.domain.exceptions import MediaAccessError, MediaErrorReason

logger = logging.getLogger(__name__)


class MediaLease:
    """At most one call session owns local media at a time"""

    def __init__(self):
        self._holder: Optional[str] = None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    def acquire(self, owner: str) -> None:
        """
        Raises:
            MediaAccessError: (in_use) if another owner holds the lease
        """
        if self._holder is not None and self._holder != owner:
            logger.warning(f"Media requested by {owner} while held by {self._holder}")
            raise MediaAccessError(MediaErrorReason.IN_USE)
        self._holder = owner

    def release(self, owner: str) -> None:
        if self._holder == owner:
            self._holder = None
