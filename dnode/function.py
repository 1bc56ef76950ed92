"""Stubs standing in for callbacks that live on the other side of a connection."""

import asyncio
import concurrent.futures
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from .dnode import Dnode
    from .message import Message

__all__ = ['Function']


@dataclass(frozen=True)
class Function:
    """A callable proxy for a remote callback.

    Calling the stub does not run anything locally. Instead, the stub sends a message
    whose method is the callback's numeric ID and whose arguments are the call's
    arguments. Those arguments may carry callables of their own, which are registered
    as new local callbacks.

    Calling the stub only creates a coroutine, and nothing is sent until that coroutine
    is awaited. An async handler awaits it. A synchronous handler must return it, so
    the default runner awaits it. Calling ``reply(x)`` and discarding the result sends
    nothing. From another thread, use :meth:`call_threadsafe`.

    Example:
        >>> async def handler(name, reply):   # doctest: +SKIP
        ...     await reply(f'hello, {name}')
        >>> def sync_handler(name, reply):   # doctest: +SKIP
        ...     return reply(f'hello, {name}')

    Attributes:
        callback_id: The ID the peer assigned to the callback.
        dnode: The instance whose transport carries the call.
    """

    callback_id: int
    dnode: 'Dnode' = field(repr=False, compare=False)

    async def __call__(self, /, *args: Any) -> 'Message':
        """Invoke the remote callback.

        Returns:
            The message that was sent.

        Raises:
            TransportError: If the message could not be sent.
        """
        return await self.dnode.send(self.callback_id, *args)

    def call_threadsafe(
        self,
        loop: asyncio.AbstractEventLoop,
        /,
        *args: Any,
    ) -> 'concurrent.futures.Future[Message]':
        """Invoke the remote callback from a thread that is not running ``loop``.

        Handlers that offload blocking work to other threads should use this method
        instead of awaiting the stub.
        """
        return asyncio.run_coroutine_threadsafe(self(*args), loop)
