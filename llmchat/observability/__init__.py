"""Chat event recording and export."""

from .chat_log import ChatLogService
from .dispatcher import ObservabilityDispatcher
from .events import ObservabilityEvent


__all__ = ["ChatLogService", "ObservabilityDispatcher", "ObservabilityEvent"]
