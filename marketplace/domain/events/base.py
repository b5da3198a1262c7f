import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from django.utils import timezone

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for all domain events."""

    event_type: str
    occurred_at: datetime = field(default_factory=timezone.now)
    payload: Dict[str, Any] = field(default_factory=dict)
    recipients: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"event_type": self.event_type, "occurred_at": self.occurred_at.isoformat(), "payload": self.payload}


def publish_event(broadcaster, event: DomainEvent) -> None:
    """Hand an event to the broadcaster. Never raises."""
    try:
        broadcaster.publish(event.event_type, event.recipients, event.to_dict())
    except Exception as e:
        logger.warning(f"Dropped {event.event_type} notification: {str(e)}")
