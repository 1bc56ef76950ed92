"""The dnode message processor.

A :class:`Dnode` is one side of a dnode connection. It exposes named methods to the
peer, tracks the callbacks it has sent, and runs the receive loop that turns each
inbound message into exactly one method or callback invocation:

.. code-block:: python

    async def echo(text, reply):
        await reply(text)

    node = Dnode(transport)
    node.handle_func('echo', echo)
    await node.run()    # Raises the transport error that ends the connection.

Messages are processed one at a time, in the order they arrive. A handler finishes
(including awaiting its result, if it returns an awaitable) before the next message is
received. This matters to consumers such as terminals, where the order of key presses
must be preserved. Handlers that do not care about ordering can spawn their own tasks
and return promptly, but the loop never makes that choice for them.

A message naming an unknown method or callback, or whose handler fails, does not stop
the loop. The failure is logged and passed to :attr:`Dnode.on_error`. Only transport
failures end the loop.
"""

import dataclasses
import inspect
import typing
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional, Protocol, Union

from . import log
from .codec import Codec, JSONCodec
from .exception import (
    ArgumentError,
    CallbackNotFoundError,
    DispatchError,
    HandlerError,
    MethodNotFoundError,
    TransportError,
)
from .function import Function
from .message import CallbackFormat, Message, Method, Partial
from .registry import CallbackRegistry, HandlerRegistry, Invocable
from .transport import Transport

__all__ = ['Dnode', 'ErrorObserver', 'Runner', 'Wrapper', 'route']

Wrapper = Callable[[Any, Transport], list[Any]]
"""Transforms generically decoded arguments before a handler is invoked.

Receives the argument tree (with callback stubs in place) and the transport the message
arrived on, and returns the positional arguments to invoke the handler with. A common
use is to prepend connection-scoped context taken from :attr:`Transport.properties`.
"""

Runner = Callable[[Method, Invocable, Partial, Transport], Optional[Awaitable[None]]]
"""Invokes a handler, replacing the default invocation strategy.

Receives the method name (or callback ID), the handler, the undecoded arguments, and the
transport. A runner decides how to decode the arguments, for example with
:meth:`Partial.unpack`, and may return an awaitable that the loop waits for.
"""

ErrorObserver = Callable[[DispatchError], None]
HandlerMethod = Callable[..., Any]


class RemoteMethod(Protocol):
    __dnode__: str

    def __call__(self, /, *args: Any, **kwargs: Any) -> Any:
        ...


@typing.overload
def route(method_or_name: str, /) -> Callable[[HandlerMethod], RemoteMethod]:
    ...


@typing.overload
def route(method_or_name: HandlerMethod, /) -> RemoteMethod:
    ...


def route(
    method_or_name: Union[str, HandlerMethod],
    /,
) -> Union[RemoteMethod, Callable[[HandlerMethod], RemoteMethod]]:
    """Decorator for marking a method as exposed to the peer.

    Register every marked method of an object with :meth:`Dnode.register`:

    >>> class Greeter:
    ...     @route
    ...     async def greet(self, name, reply):
    ...         await reply(f'hello, {name}')
    ...     @route('non-python-identifier')
    ...     def method2(self):
    ...         ...

    Parameters:
        method_or_name: Either the method to be registered or the name it should be
            registered under. If the former, the registered name is the method name.
    """
    if isinstance(method_or_name, str):

        def decorator(method: HandlerMethod) -> RemoteMethod:
            remote_method = typing.cast(RemoteMethod, method)
            remote_method.__dnode__ = typing.cast(str, method_or_name)
            return remote_method

        return decorator
    remote_method = typing.cast(RemoteMethod, method_or_name)
    remote_method.__dnode__ = method_or_name.__name__
    return remote_method


@dataclass(eq=False)
class Dnode:
    """One side of a dnode connection.

    Attributes:
        transport: Carries messages to and from the peer.
        codec: Encodes messages.
        callback_format: The layout of the ``callbacks`` field in outbound messages.
        wrap_method_args: Applied to the arguments of method calls.
        wrap_callback_args: Applied to the arguments of callback calls.
        run_method: Invokes handlers of method calls. Defaults to :meth:`invoke`.
        run_callback: Invokes callbacks. Defaults to :meth:`invoke`.
        on_error: Observes each message that could not be dispatched.
        logger: Receives diagnostic events. Drops them by default.
        handlers: Exposed methods. Copies share this registry.
        callbacks: Callbacks sent to the peer. Each copy starts with its own, empty
            registry.
    """

    transport: Transport
    codec: Codec = field(default_factory=JSONCodec)
    callback_format: CallbackFormat = CallbackFormat.PATH
    wrap_method_args: Optional[Wrapper] = None
    wrap_callback_args: Optional[Wrapper] = None
    run_method: Optional[Runner] = None
    run_callback: Optional[Runner] = None
    on_error: Optional[ErrorObserver] = None
    logger: log.AsyncLogger = field(default_factory=log.get_null_logger, repr=False)
    handlers: HandlerRegistry = field(default_factory=HandlerRegistry, repr=False)
    callbacks: CallbackRegistry = field(default_factory=CallbackRegistry, init=False, repr=False)

    def copy(self, transport: Transport, /) -> 'Dnode':
        """Make a new instance for another connection with the same methods.

        The copy shares this instance's handlers and configuration, but tracks its own
        callbacks, since callback IDs are meaningful only on the connection they were
        sent over.
        """
        return dataclasses.replace(self, transport=transport)

    def handle_func(self, method: str, handler: Invocable, /) -> None:
        """Expose a handler to the peer under a method name.

        Raises:
            HandlerRegistrationError: If the name is empty or already registered, or the
                handler is not callable.
        """
        self.handlers.register(method, handler)

    def register(self, obj: Any, /) -> None:
        """Expose every method of ``obj`` decorated with :func:`route`."""
        # Inspect the class so properties of the instance are not evaluated.
        for attr, func in inspect.getmembers(type(obj), inspect.isfunction):
            if hasattr(func, '__dnode__'):
                self.handle_func(func.__dnode__, getattr(obj, attr))

    def remove_callback(self, callback_id: int, /) -> None:
        """Forget a callback sent to the peer.

        Long-lived connections that send many short-lived callbacks should remove them
        once they are no longer needed, since nothing else bounds the registry. Removing
        an unknown ID does nothing.
        """
        self.callbacks.remove(callback_id)

    def _make_stub(self, callback_id: int, /) -> Function:
        return Function(callback_id, self)

    async def send(self, method: Method, /, *args: Any) -> Message:
        """Send a call of a remote method or callback.

        Every callable in ``args`` is registered as a callback the peer can invoke.

        Parameters:
            method: A method name, or the ID of a callback the peer sent.
            *args: Arguments to the call.

        Returns:
            The message that was sent.

        Raises:
            TypeError: If the arguments cannot be encoded.
            TransportError: If the message could not be sent.
        """
        message = Message.build(method, list(args), self.callbacks.register)
        try:
            data = message.encode(self.codec, self.callback_format)
        except TypeError:
            for callback_id in message.callbacks.values():
                self.callbacks.remove(callback_id)
            raise
        await self.transport.send(data)
        await self.logger.debug(
            'Sent message',
            method=method,
            callback_ids=sorted(message.callbacks.values()),
        )
        return message

    async def call(self, method: str, /, *args: Any) -> Message:
        """Call a remote method by name. See :meth:`send`."""
        if not isinstance(method, str):
            raise TypeError('method name must be a string')
        return await self.send(method, *args)

    @staticmethod
    def invoke(method: Method, handler: Invocable, args: Partial, _transport: Transport) -> Any:
        """The default runner: invoke the handler with the generically decoded arguments.

        A list of arguments is passed positionally. Any other value is passed as the only
        argument.

        Raises:
            ArgumentError: If the arguments do not fit the handler's signature.
        """
        values = args.materialize()
        if not isinstance(values, list):
            values = [values]
        try:
            signature = inspect.signature(handler)
        except (TypeError, ValueError):
            signature = None
        if signature:
            try:
                signature.bind(*values)
            except TypeError as exc:
                raise ArgumentError(
                    'arguments do not match the handler signature',
                    method=method,
                    argument_count=len(values),
                ) from exc
        return handler(*values)

    async def _dispatch(self, data: bytes, /) -> None:
        message = Message.decode(data, self.codec, self._make_stub)
        await self.logger.debug(
            'Received message',
            method=message.method,
            callback_ids=sorted(message.callbacks.values()),
        )
        handler: Optional[Invocable]
        if isinstance(message.method, str):
            handler = self.handlers.get(message.method)
            if handler is None:
                raise MethodNotFoundError('no such method exists', method=message.method)
            runner, wrapper = self.run_method, self.wrap_method_args
        else:
            handler = self.callbacks.get(message.method)
            if handler is None:
                raise CallbackNotFoundError('no such callback exists', callback_id=message.method)
            runner, wrapper = self.run_callback, self.wrap_callback_args
        args = message.arguments
        if wrapper:
            transport = self.transport
            args = args.with_wrapper(lambda tree: wrapper(tree, transport))  # type: ignore
        try:
            result = (runner or self.invoke)(message.method, handler, args, self.transport)
            if inspect.isawaitable(result):
                await result
        except (DispatchError, TransportError):
            raise
        except Exception as exc:
            raise HandlerError('handler produced an error', method=message.method) from exc

    async def process_message(self, data: bytes, /) -> None:
        """Dispatch one raw message.

        Dispatch errors are reported, not raised. An exception raised by the
        ``on_error`` observer is logged and otherwise ignored.

        Raises:
            TransportError: If the handler failed to send a message.
        """
        try:
            await self._dispatch(data)
        except DispatchError as exc:
            await self.logger.error('Unable to dispatch message', exc_info=exc)
            if self.on_error:
                try:
                    self.on_error(exc)
                except Exception as observer_exc:
                    await self.logger.error('Error observer failed', exc_info=observer_exc)

    async def run(self, /) -> NoReturn:
        """Process incoming messages until the transport fails.

        Raises:
            TransportError: The error that ended the loop. :class:`ConnectionClosed`
                indicates an orderly shutdown. Owners decide whether to reconnect.
        """
        while True:
            try:
                data = await self.transport.receive()
            except TransportError as exc:
                await self.logger.info('Receive loop stopped', exc_info=exc)
                raise
            # Do not dispatch in a separate task, or messages may be handled out of order.
            await self.process_message(data)
