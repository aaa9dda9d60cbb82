"""
Background operations delivered as events.

Store reads and external contact lookups must never block the UI thread.
OperationDispatcher runs them on a thread pool and turns each outcome into an
event object placed on a queue. The UI loop (or a test) drains the queue and
the events are handed to subscribed handlers on the draining thread.

Nothing is cancelled: every operation is idempotent, so an overtaken result
just replaces an older one.

Usage:
    dispatcher = OperationDispatcher()
    dispatcher.subscribe(ChatsLoaded, on_chats)
    dispatcher.load_chats(store)
    ...
    dispatcher.dispatch_pending()  # from the UI loop
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, DefaultDict, List, Optional, Type

from chime.models import Chat, Message

if TYPE_CHECKING:
    from chime.store import MessageStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base class for completion events."""


@dataclass(frozen=True)
class ChatsLoaded(Event):
    chats: List[Chat] = field(default_factory=list)


@dataclass(frozen=True)
class MessagesLoaded(Event):
    chat_id: int
    messages: List[Message] = field(default_factory=list)


@dataclass(frozen=True)
class ChatMarkedRead(Event):
    chat_id: int
    changed: int


@dataclass(frozen=True)
class ContactLookupCompleted(Event):
    """An external lookup finished; ``name`` is "" when nothing matched."""

    identifier: str
    name: str


@dataclass(frozen=True)
class OperationFailed(Event):
    operation: str
    error: BaseException


Handler = Callable[[Any], None]


class OperationDispatcher:
    """Runs operations on a worker pool and queues their outcomes as events."""

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chime")
        self._events: "queue.Queue[Event]" = queue.Queue()
        self._handlers: DefaultDict[Type[Event], List[Handler]] = defaultdict(list)
        self._handlers_lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], handler: Handler) -> None:
        """Register a handler called for every event of ``event_type``."""
        with self._handlers_lock:
            self._handlers[event_type].append(handler)

    def post(self, event: Event) -> None:
        """Queue an event for the next dispatch."""
        self._events.put(event)

    def submit(
        self,
        operation: str,
        fn: Callable[..., Any],
        to_event: Callable[[Any], Optional[Event]],
        *args: Any,
        **kwargs: Any,
    ) -> "Future[Any]":
        """
        Run ``fn(*args, **kwargs)`` in the background.

        The result is converted by ``to_event`` and queued (a None event is
        dropped). Any exception is queued as OperationFailed. The event is on
        the queue before the returned future resolves.
        """

        def run() -> Any:
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                logger.warning(f"{operation} failed: {e}")
                self.post(OperationFailed(operation=operation, error=e))
                raise
            event = to_event(result)
            if event is not None:
                self.post(event)
            return result

        return self._executor.submit(run)

    def load_chats(self, store: "MessageStore") -> "Future[Any]":
        return self.submit("load_chats", store.list_chats, lambda chats: ChatsLoaded(chats=chats))

    def load_messages(self, store: "MessageStore", chat_id: int) -> "Future[Any]":
        return self.submit(
            "load_messages",
            store.list_messages,
            lambda messages: MessagesLoaded(chat_id=chat_id, messages=messages),
            chat_id,
        )

    def mark_read(self, store: "MessageStore", chat_id: int) -> "Future[Any]":
        return self.submit(
            "mark_read",
            store.mark_read,
            lambda changed: ChatMarkedRead(chat_id=chat_id, changed=changed),
            chat_id,
        )

    def lookup_contact(
        self, identifier: str, lookup: Callable[[str], str]
    ) -> "Future[Any]":
        """Run an external name lookup; completes with ContactLookupCompleted."""
        return self.submit(
            "lookup_contact",
            lookup,
            lambda name: ContactLookupCompleted(identifier=identifier, name=name or ""),
            identifier,
        )

    def next_event(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Pop one queued event, waiting up to ``timeout`` seconds."""
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def dispatch(self, event: Event) -> None:
        """Hand one event to every handler subscribed to its type."""
        with self._handlers_lock:
            handlers = list(self._handlers.get(type(event), ()))
        for handler in handlers:
            handler(event)

    def dispatch_pending(self) -> int:
        """
        Deliver every queued event to its handlers on the calling thread.

        Returns:
            Number of events dispatched.
        """
        count = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return count
            self.dispatch(event)
            count += 1

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "OperationDispatcher":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
