"""Accept many connections exposing the same methods."""

import asyncio
from typing import Any

from .dnode import Dnode
from .exception import ConnectionClosed, TransportError
from .transport import StreamTransport

__all__ = ['handle_connection', 'serve']


async def handle_connection(template: Dnode, transport: StreamTransport, /) -> None:
    """Run a copy of ``template`` on one accepted connection until it closes."""
    node = template.copy(transport)
    logger = node.logger.bind(remote_addr=transport.remote_addr)
    node.logger = logger
    await logger.info('Accepted connection')
    try:
        await node.run()
    except ConnectionClosed:
        await logger.info('Connection closed')
    except TransportError as exc:
        await logger.error('Connection failed', exc_info=exc)
    finally:
        transport.close()


async def serve(
    template: Dnode,
    host: str,
    port: int,
    /,
    *,
    delimited: bool = True,
    **kwargs: Any,
) -> asyncio.AbstractServer:
    """Start a TCP server that runs a copy of ``template`` per connection.

    The template's own transport is never used, so any placeholder will do:

    .. code-block:: python

        template = Dnode(MemoryTransport())
        template.handle_func('ping', ping)
        server = await serve(template, '0.0.0.0', 5050)
        async with server:
            await server.serve_forever()

    Parameters:
        template: Provides the handlers and configuration of every connection.
        host: The address to bind to.
        port: The port to bind to. Zero picks a free port.
        delimited: Framing of each connection. See :class:`StreamTransport`.
        kwargs: Passed to :func:`asyncio.start_server`.
    """

    async def accept(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await handle_connection(template, StreamTransport(reader, writer, delimited=delimited))

    return await asyncio.start_server(accept, host, port, **kwargs)
