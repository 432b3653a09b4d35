"""Driver tracking, request polling and notification entry points."""

from .duty import DutyTracker
from .notifications import Notifier
from .polling import PendingRequestPoller, PollingLoop
from .watcher import RequestWatcher

__all__ = ["DutyTracker", "Notifier", "PendingRequestPoller", "PollingLoop", "RequestWatcher"]
