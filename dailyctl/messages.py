"""Execution message log with bounded live-tail subscriptions."""

import logging
import threading
from collections import deque
from typing import Deque, Iterator, List, Optional
from .exceptions import LogClosedError
from .models import Message

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 1000


class Subscription:
    """One observer's view of a message log.

    Holds at most `buffer_size` unread messages (no limit when None).
    Messages arriving while the buffer is full are dropped for this
    subscriber only and counted in `dropped`; the publisher never waits on a
    slow reader.
    """

    def __init__(self, log: "MessageLog", buffer_size: Optional[int]):
        self._log = log
        self._buffer_size = buffer_size
        self._pending: Deque[Message] = deque()
        self._cond = threading.Condition()
        self._ended = False
        self.dropped = 0

    def _offer(self, message: Message) -> None:
        with self._cond:
            if self._buffer_size is not None and len(self._pending) >= self._buffer_size:
                self.dropped += 1
                if self.dropped == 1:
                    logger.warning("Subscriber buffer full (%d), dropping messages", self._buffer_size)
                return
            self._pending.append(message)
            self._cond.notify()

    def _end(self) -> None:
        with self._cond:
            self._ended = True
            self._cond.notify_all()

    @property
    def ended(self) -> bool:
        """True once the log has closed (or this subscription was closed)."""
        return self._ended

    def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Next unread message, or None if the log ended or timeout elapsed."""
        with self._cond:
            self._cond.wait_for(lambda: self._pending or self._ended, timeout)
            if self._pending:
                return self._pending.popleft()
            return None

    def close(self) -> None:
        """Stop receiving messages."""
        self._log.unsubscribe(self)
        self._end()

    def __iter__(self) -> Iterator[Message]:
        while True:
            message = self.get()
            if message is None:
                return
            yield message


class MessageLog:
    """Append-only ordered log broadcasting to any number of subscribers."""

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self.buffer_size = buffer_size
        self._messages: List[Message] = []
        self._subscribers: List[Subscription] = []
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: Message) -> None:
        """Record a message and hand it to every subscriber."""
        with self._lock:
            if self._closed:
                raise LogClosedError("message log is closed")
            self._messages.append(message)
            for sub in self._subscribers:
                sub._offer(message)

    def subscribe(self, replay: bool = False, unbounded: bool = False) -> Subscription:
        """Attach a new subscriber.

        Without `replay` only messages appended from now on are delivered.
        With `replay` the subscription starts with the latest `buffer_size`
        messages already recorded, taken atomically with the attach.
        An `unbounded` subscriber never drops messages and replays them all.
        """
        buffer_size = None if unbounded else self.buffer_size
        sub = Subscription(self, buffer_size)
        with self._lock:
            if replay:
                recorded = self._messages if unbounded else self._messages[-buffer_size:]
                for message in recorded:
                    sub._offer(message)
            if self._closed:
                sub._end()
            else:
                self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def snapshot(self) -> List[Message]:
        """Copy of every message recorded so far."""
        with self._lock:
            return list(self._messages)

    def close(self) -> None:
        """Freeze the log and end all subscriptions."""
        with self._lock:
            self._closed = True
            subscribers, self._subscribers = self._subscribers, []
        for sub in subscribers:
            sub._end()
