"""
Device notification primitive
The OS-level "show this at time T" facility the local scheduler drives
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationContent:
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScheduledNotification:
    """A pending entry on the device, addressed by its handle"""
    handle: str
    trigger: datetime
    content: NotificationContent


Listener = Callable[[ScheduledNotification], None]


class DeviceNotifier(ABC):
    """Device facility for local notifications"""

    @abstractmethod
    def request_permissions(self) -> bool:
        ...

    @abstractmethod
    def schedule_at(self, trigger: datetime, content: NotificationContent) -> str:
        """Schedule `content` for the aware instant `trigger`; returns a handle"""

    @abstractmethod
    def cancel(self, handle: str) -> bool:
        ...

    @abstractmethod
    def cancel_all(self) -> int:
        ...

    @abstractmethod
    def scheduled(self) -> List[ScheduledNotification]:
        ...

    @abstractmethod
    def add_received_listener(self, listener: Listener) -> str:
        """Called when a notification is shown while the app is in the foreground"""

    @abstractmethod
    def add_tap_listener(self, listener: Listener) -> str:
        """Called when the user taps a shown notification"""

    @abstractmethod
    def remove_listener(self, token: str) -> None:
        ...


class InMemoryDeviceNotifier(DeviceNotifier):
    """
    Headless device: keeps scheduled entries in memory and fires them when
    `fire_due` is called with a clock value. Used offline and in tests.

    Only the most recent `presented_limit` shown entries stay tappable.
    """

    def __init__(self, grant_permissions: bool = True, presented_limit: int = 100):
        self._grant = grant_permissions
        self.permission_granted = False
        self._lock = threading.Lock()
        self._pending: Dict[str, ScheduledNotification] = {}
        self._presented_limit = presented_limit
        self._presented: "OrderedDict[str, ScheduledNotification]" = OrderedDict()
        self._listeners: Dict[str, Tuple[str, Listener]] = {}

    def request_permissions(self) -> bool:
        self.permission_granted = self._grant
        if not self.permission_granted:
            logger.warning("Notification permission denied")
        return self.permission_granted

    def schedule_at(self, trigger: datetime, content: NotificationContent) -> str:
        if trigger.tzinfo is None:
            raise ValueError("trigger must be timezone-aware")
        handle = str(uuid.uuid4())
        with self._lock:
            self._pending[handle] = ScheduledNotification(handle, trigger, content)
        return handle

    def cancel(self, handle: str) -> bool:
        with self._lock:
            return self._pending.pop(handle, None) is not None

    def cancel_all(self) -> int:
        with self._lock:
            count = len(self._pending)
            self._pending.clear()
        return count

    def scheduled(self) -> List[ScheduledNotification]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda s: s.trigger)

    def _add_listener(self, kind: str, listener: Listener) -> str:
        token = str(uuid.uuid4())
        with self._lock:
            self._listeners[token] = (kind, listener)
        return token

    def add_received_listener(self, listener: Listener) -> str:
        return self._add_listener("received", listener)

    def add_tap_listener(self, listener: Listener) -> str:
        return self._add_listener("tap", listener)

    def remove_listener(self, token: str) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, kind: str, entry: ScheduledNotification) -> None:
        with self._lock:
            listeners = [cb for k, cb in self._listeners.values() if k == kind]
        for listener in listeners:
            listener(entry)

    def fire_due(self, now: datetime) -> List[ScheduledNotification]:
        """Show every entry whose trigger is at or before `now`"""
        with self._lock:
            due = sorted(
                (s for s in self._pending.values() if s.trigger <= now),
                key=lambda s: s.trigger
            )
            for entry in due:
                del self._pending[entry.handle]
                self._presented[entry.handle] = entry
            while len(self._presented) > self._presented_limit:
                self._presented.popitem(last=False)

        for entry in due:
            self._notify("received", entry)
        return due

    def tap(self, handle: str) -> Optional[ScheduledNotification]:
        with self._lock:
            entry = self._presented.get(handle)
        if entry is not None:
            self._notify("tap", entry)
        return entry
