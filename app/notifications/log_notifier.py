import logging
from typing import Any

from app.notifications.base import NotifyResult


log = logging.getLogger(__name__)


class LogNotifier:
    """Writes notification requests to the log. Default until a messaging provider is wired in."""

    channel = "log"

    async def send(self, *, event_type: str, payload: dict[str, Any]) -> NotifyResult:
        log.info("notify: %s %s", event_type, payload)
        return NotifyResult(ok=True, detail={"channel": self.channel})
