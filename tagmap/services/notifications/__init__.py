from tagmap.services.notifications.bus import NotificationBus, Subscription

__all__ = [
    "NotificationBus",
    "Subscription",
]
