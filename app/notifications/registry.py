from app.notifications.base import Notifier
from app.notifications.log_notifier import LogNotifier

NOTIFIERS: dict[str, Notifier] = {
    LogNotifier.channel: LogNotifier(),
}

# event types the messaging system cares about; anything else is acknowledged silently
NOTIFIABLE_EVENTS = frozenset({
    "listing.submitted",
    "listing.approved",
    "listing.rejected",
    "listing.needs_reapproval",
    "listing.expired",
    "listing.reactivated",
    "listing.featured",
    "listing.transacted",
    "subscription.activated",
    "subscription.renewed",
    "subscription.expiring",
    "subscription.expired",
})


def get_notifier(channel: str = "log") -> Notifier:
    if channel not in NOTIFIERS:
        raise KeyError(f"Unknown notification channel: {channel}")
    return NOTIFIERS[channel]
