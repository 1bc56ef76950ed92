"""Common dnode exceptions.

Errors fall into three tiers:

* :class:`HandlerRegistrationError` indicates a programming mistake and is raised
  immediately when a handler is registered.
* :class:`DispatchError` and its subclasses describe a single inbound message that
  could not be processed. The receive loop reports them and keeps running.
* :class:`TransportError` is fatal to the receive loop and propagates to its owner.
"""

from typing import Any

# isort: unique-list
__all__ = [
    'ArgumentError',
    'CallbackNotFoundError',
    'ConnectionClosed',
    'DispatchError',
    'DnodeBaseException',
    'HandlerError',
    'HandlerRegistrationError',
    'MessageDecodeError',
    'MethodNotFoundError',
    'TransportError',
]


class DnodeBaseException(Exception):
    """Base exception for dnode protocol logic.

    Parameters:
        message: A human-readable description of the exception.
        context: Machine-readable data.
    """

    def __init__(self, message: str, /, **context: Any) -> None:
        super().__init__(message)
        self.context = context

    def __repr__(self, /) -> str:
        cls_name, args = self.__class__.__name__, [repr(self.args[0])]
        args.extend(f'{name}={value!r}' for name, value in self.context.items())
        return f'{cls_name}({", ".join(args)})'


class HandlerRegistrationError(DnodeBaseException):
    """A handler could not be registered (empty name, not callable, or duplicate)."""


class DispatchError(DnodeBaseException):
    """An inbound message could not be dispatched."""


class MethodNotFoundError(DispatchError):
    """The peer called a method name with no registered handler."""


class CallbackNotFoundError(DispatchError):
    """The peer referenced a callback ID that was removed or never existed."""


class MessageDecodeError(DispatchError):
    """The raw bytes are not a well-formed message."""


class ArgumentError(DispatchError):
    """The arguments do not have the requested shape."""


class HandlerError(DispatchError):
    """A handler or callback raised an exception."""


class TransportError(DnodeBaseException):
    """Sending or receiving a message failed."""


class ConnectionClosed(TransportError):
    """The peer closed the connection."""
