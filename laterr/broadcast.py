"""Cross-context broadcast of session changes.

Each client is one *context* (the equivalent of a browser tab). When a context
writes the session slot it publishes on the channel; every subscriber that
belongs to a *different* context is notified. A context is never notified of
its own writes.

Channels are process-wide and looked up by name, so clients that share a
data directory in one process also share a channel.
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[Dict[str, Any]]], None]


@dataclass
class _Subscriber:
    token: str
    context_id: str
    listener: Listener
    loop: Optional[asyncio.AbstractEventLoop]


class Subscription:
    """Handle returned by ``subscribe``; call ``unsubscribe()`` to stop delivery."""

    def __init__(self, channel: "SessionChannel", token: str):
        self._channel = channel
        self._token = token
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._channel._remove(self._token)
            self.active = False


class SessionChannel:
    """In-process pub/sub for the session slot."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._subscribers: Dict[str, _Subscriber] = {}

    @staticmethod
    def new_context_id() -> str:
        return uuid.uuid4().hex

    def subscribe(self, context_id: str, listener: Listener) -> Subscription:
        """Register ``listener`` for changes made by other contexts.

        If called from a running event loop, deliveries are scheduled onto that
        loop; otherwise the listener runs on the publisher's thread.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        token = uuid.uuid4().hex
        with self._lock:
            self._subscribers[token] = _Subscriber(token, context_id, listener, loop)
        return Subscription(self, token)

    def _remove(self, token: str) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    def publish(self, origin_context_id: str, record: Optional[Dict[str, Any]]) -> int:
        """Deliver ``record`` (None means signed out) to other contexts.

        Returns:
            Number of listeners notified.
        """
        with self._lock:
            targets: List[_Subscriber] = [
                s for s in self._subscribers.values() if s.context_id != origin_context_id
            ]
        for sub in targets:
            self._deliver(sub, record)
        return len(targets)

    def _deliver(self, sub: _Subscriber, record: Optional[Dict[str, Any]]) -> None:
        if sub.loop is not None and not sub.loop.is_closed():
            sub.loop.call_soon_threadsafe(self._call, sub, record)
        else:
            self._call(sub, record)

    def _call(self, sub: _Subscriber, record: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            if sub.token not in self._subscribers:
                return
        try:
            sub.listener(record)
        except Exception:
            logger.exception(f"Session listener on channel {self.name!r} failed")

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


_channels: Dict[str, SessionChannel] = {}
_channels_lock = threading.Lock()


def get_channel(name: str) -> SessionChannel:
    """Return the process-wide channel called ``name``."""
    with _channels_lock:
        channel = _channels.get(name)
        if channel is None:
            channel = _channels[name] = SessionChannel(name)
        return channel
