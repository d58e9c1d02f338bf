class NotificationError(Exception):
    """Base exception for the upload notification stream."""


class ListenerStateError(NotificationError):
    """Raised when the listener is used outside of its start/stop lifecycle."""


class RouterStateError(NotificationError):
    """Raised when the router is started twice."""
