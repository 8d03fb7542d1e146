from typing import Callable, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
import threading

import structlog

from aiplayer.domain.models.memory import utcnow

logger = structlog.get_logger(__name__)


class InboundMessage(BaseModel):
    """A chat message pushed in by the host environment"""
    sender: str
    content: str
    channel: str = "chat"
    recipient: Optional[str] = Field(None, description="None means broadcast")
    received_at: datetime = Field(default_factory=utcnow)


MessageHandler = Callable[[InboundMessage], None]


class InboundMessageBus:
    """Host-facing entry point for messages; the core subscribes to it"""

    def __init__(self):
        self._handlers: List[MessageHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        """Register a handler; returns a callable that unsubscribes it"""

        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def publish(self, message: InboundMessage) -> int:
        """Deliver to every handler, returning how many accepted it.

        A failing handler is logged and skipped so one agent cannot block
        delivery to the others.
        """

        with self._lock:
            handlers = list(self._handlers)

        delivered = 0
        for handler in handlers:
            try:
                handler(message)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Inbound message handler failed",
                    sender=message.sender,
                    error=str(e),
                    error_type=type(e).__name__
                )
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._handlers)
