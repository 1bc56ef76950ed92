"""Registries of locally exposed methods and callbacks."""

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Optional

from .exception import HandlerRegistrationError

__all__ = ['CallbackRegistry', 'HandlerRegistry', 'Invocable']

Invocable = Callable[..., Any]


@dataclass
class HandlerRegistry:
    """Methods exposed to the peer, keyed by name.

    Each name can be registered exactly once. The registry is populated during setup
    and only read while messages are dispatched, so it needs no locking.
    """

    handlers: dict[str, Invocable] = field(default_factory=dict)

    def register(self, name: str, handler: Invocable, /) -> None:
        """Register a handler.

        Raises:
            HandlerRegistrationError: If the name is empty or already registered, or the
                handler is not callable.
        """
        if not isinstance(name, str) or not name:
            raise HandlerRegistrationError('invalid method name', method=name)
        if handler is None:
            raise HandlerRegistrationError('handler is None', method=name)
        if not callable(handler):
            raise HandlerRegistrationError(
                'handler must be callable',
                method=name,
                handler_type=type(handler).__name__,
            )
        if name in self.handlers:
            raise HandlerRegistrationError('handler already exists for method', method=name)
        self.handlers[name] = handler

    def get(self, name: str, /) -> Optional[Invocable]:
        return self.handlers.get(name)

    def __contains__(self, name: object, /) -> bool:
        return name in self.handlers

    def __iter__(self, /) -> Iterator[str]:
        return iter(self.handlers)

    def __len__(self, /) -> int:
        return len(self.handlers)


@dataclass
class CallbackRegistry:
    """Callbacks sent to the peer, keyed by a sequence number.

    IDs are assigned in strictly increasing order and never reused, even after the
    callback is removed, so a stale reference from the peer can never reach a newer
    callback. Handlers running on other threads may send callbacks, so every access is
    serialized by a lock.

    Attributes:
        seq: The next ID to assign.
    """

    seq: int = 0
    callbacks: dict[int, Invocable] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def register(self, callback: Invocable, /) -> int:
        """Track a callback and return its ID."""
        with self.lock:
            callback_id, self.seq = self.seq, self.seq + 1
            self.callbacks[callback_id] = callback
        return callback_id

    def remove(self, callback_id: int, /) -> None:
        """Stop tracking a callback. Removing an unknown ID does nothing."""
        with self.lock:
            self.callbacks.pop(callback_id, None)

    def get(self, callback_id: int, /) -> Optional[Invocable]:
        with self.lock:
            return self.callbacks.get(callback_id)

    def __contains__(self, callback_id: object, /) -> bool:
        with self.lock:
            return callback_id in self.callbacks

    def __len__(self, /) -> int:
        with self.lock:
            return len(self.callbacks)
