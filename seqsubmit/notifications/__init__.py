from seqsubmit.notifications.listener import ChangeListener
from seqsubmit.notifications.router import NotificationRouter, Subscription

__all__ = ["ChangeListener", "NotificationRouter", "Subscription"]
