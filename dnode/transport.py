"""Transports carrying whole dnode messages between two peers.

A :class:`Transport` moves discrete byte strings, one per message, to and from exactly
one peer. Framing is the transport's business; the protocol core never sees partial
messages. Every failure surfaces as a :class:`TransportError`, and an orderly shutdown
by either side as :class:`ConnectionClosed`.

Implementations:

* :class:`MemoryTransport`: an in-process pair, useful for tests and for connecting two
  components of the same program.
* :class:`StreamTransport`: :mod:`asyncio` streams (TCP or Unix sockets). By default,
  messages are delimited by newlines, which is how dnode peers talk over plain sockets.
* :class:`SocketTransport`: a ZMQ ``PAIR`` socket.
"""

import abc
import asyncio
import struct
import types
from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar, Union

import zmq
import zmq.asyncio
import zmq.error

from .exception import ConnectionClosed, TransportError

__all__ = ['MemoryTransport', 'SocketTransport', 'StreamTransport', 'Transport']

TransportType = TypeVar('TransportType', bound='Transport')


@dataclass(eq=False)  # type: ignore[misc]
class Transport(abc.ABC):  # https://github.com/python/mypy/issues/5374
    """An abstraction for sending and receiving messages to and from one peer.

    A transport supports the async context manager protocol, which opens it on entry and
    closes it on exit.

    Attributes:
        properties: Connection-scoped data set by the application. Never interpreted by
            the protocol.
    """

    properties: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    async def __aenter__(self: TransportType) -> TransportType:
        await self.open()
        return self

    async def __aexit__(
        self,
        _exc_type: Optional[type[BaseException]],
        _exc: Optional[BaseException],
        _traceback: Optional[types.TracebackType],
    ) -> None:
        self.close()

    async def open(self, /) -> None:
        """Open the underlying connection, if the transport needs to."""

    def close(self, /) -> None:
        """Close the underlying connection."""

    @property
    @abc.abstractmethod
    def remote_addr(self, /) -> str:
        """The address of the peer."""

    @abc.abstractmethod
    async def send(self, data: bytes, /) -> None:
        """Send a single message.

        Raises:
            TransportError: If the message could not be sent.
        """

    @abc.abstractmethod
    async def receive(self, /) -> bytes:
        """Receive a single message, waiting until one arrives.

        Raises:
            ConnectionClosed: If either side closed the connection.
            TransportError: If the message could not be received.
        """


@dataclass(eq=False)
class MemoryTransport(Transport):
    """One end of an in-process connection.

    Attributes:
        address: The name reported as this end's :attr:`remote_addr` to its peer.
        inbox: Messages waiting to be received. ``None`` marks the end of the stream.
        peer: The other end.
    """

    address: str = 'memory'
    inbox: asyncio.Queue[Optional[bytes]] = field(default_factory=asyncio.Queue, repr=False)
    peer: Optional['MemoryTransport'] = field(default=None, repr=False)
    closed: bool = False

    @classmethod
    def pipe(cls, /, *addresses: str) -> tuple['MemoryTransport', 'MemoryTransport']:
        """Make two connected ends."""
        left_addr, right_addr = addresses or ('memory-left', 'memory-right')
        left, right = cls(address=left_addr), cls(address=right_addr)
        left.peer, right.peer = right, left
        return left, right

    @property
    def remote_addr(self, /) -> str:
        return self.peer.address if self.peer else ''

    def feed(self, data: bytes, /) -> None:
        """Queue a message for this end to receive, as if the peer had sent it."""
        self.inbox.put_nowait(bytes(data))

    def feed_eof(self, /) -> None:
        self.inbox.put_nowait(None)

    async def send(self, data: bytes, /) -> None:
        if self.closed or not self.peer or self.peer.closed:
            raise ConnectionClosed('transport is closed', address=self.address)
        self.peer.feed(data)

    async def receive(self, /) -> bytes:
        if self.closed:
            raise ConnectionClosed('transport is closed', address=self.address)
        data = await self.inbox.get()
        if data is None:
            self.closed = True
            raise ConnectionClosed('peer closed the connection', address=self.address)
        return data

    def close(self, /) -> None:
        if not self.closed:
            self.closed = True
            self.feed_eof()
            if self.peer and not self.peer.closed:
                self.peer.feed_eof()


LENGTH_PREFIX = struct.Struct('!I')


@dataclass(eq=False)
class StreamTransport(Transport):
    """A transport over a pair of :mod:`asyncio` streams.

    Attributes:
        reader: The stream to read from.
        writer: The stream to write to.
        delimited: If true, each message is terminated by a newline, which the messages
            themselves must not contain (true of JSON as the protocol encodes it). If
            false, each message is prefixed with its length as a 32-bit big-endian
            integer, which supports binary encodings.
    """

    reader: asyncio.StreamReader = field(repr=False)
    writer: asyncio.StreamWriter = field(repr=False)
    delimited: bool = True

    @classmethod
    async def connect(cls, host: str, port: int, /, **kwargs: Any) -> 'StreamTransport':
        """Open a TCP connection.

        Raises:
            TransportError: If the connection could not be established.
        """
        delimited = kwargs.pop('delimited', True)
        try:
            reader, writer = await asyncio.open_connection(host, port, **kwargs)
        except OSError as exc:
            raise TransportError('unable to connect', host=host, port=port) from exc
        return cls(reader, writer, delimited=delimited)

    @property
    def remote_addr(self, /) -> str:
        peername = self.writer.get_extra_info('peername')
        if isinstance(peername, tuple):
            host, port, *_ = peername
            return f'{host}:{port}'
        return str(peername or '')

    async def send(self, data: bytes, /) -> None:
        if self.writer.is_closing():
            raise ConnectionClosed('transport is closed', address=self.remote_addr)
        if self.delimited:
            if b'\n' in data:
                raise TransportError('delimited message contains a newline')
            frame = data + b'\n'
        else:
            frame = LENGTH_PREFIX.pack(len(data)) + data
        try:
            self.writer.write(frame)
            await self.writer.drain()
        except ConnectionError as exc:
            raise ConnectionClosed('peer closed the connection') from exc
        except OSError as exc:
            raise TransportError('unable to send message') from exc

    async def _read_frame(self, /) -> bytes:
        if not self.delimited:
            (length,) = LENGTH_PREFIX.unpack(await self.reader.readexactly(LENGTH_PREFIX.size))
            return await self.reader.readexactly(length)
        while True:
            line = await self.reader.readuntil(b'\n')
            if line.strip():
                return line[:-1]

    async def receive(self, /) -> bytes:
        try:
            return await self._read_frame()
        except asyncio.IncompleteReadError as exc:
            raise ConnectionClosed('peer closed the connection') from exc
        except asyncio.LimitOverrunError as exc:
            raise TransportError('message exceeds the stream buffer limit') from exc
        except ConnectionError as exc:
            raise ConnectionClosed('peer closed the connection') from exc
        except OSError as exc:
            raise TransportError('unable to receive message') from exc

    def close(self, /) -> None:
        self.writer.close()


SocketOptions = dict[int, Union[int, bytes]]


@dataclass(eq=False)
class SocketTransport(Transport):
    """A transport over a ZMQ ``PAIR`` socket.

    ZMQ frames messages itself and reconnects transparently, so an unreachable peer
    shows up as a timeout (``zmq.SNDTIMEO``/``zmq.RCVTIMEO``) rather than as a closed
    connection.

    Attributes:
        address: A ZMQ endpoint, such as ``'tcp://127.0.0.1:5000'``.
        bind: Whether to bind to the address or connect to it.
        options: ZMQ socket options, applied when the socket is opened.
    """

    address: str = 'tcp://127.0.0.1:5000'
    bind: bool = False
    options: SocketOptions = field(default_factory=dict)
    socket: Optional[zmq.asyncio.Socket] = field(default=None, init=False, repr=False)

    @property
    def remote_addr(self, /) -> str:
        return self.address

    @property
    def closed(self, /) -> bool:
        return bool(self.socket.closed) if self.socket else True

    async def open(self, /) -> None:
        ctx = zmq.asyncio.Context.instance()
        self.socket = ctx.socket(zmq.PAIR)
        for option, value in self.options.items():
            self.socket.set(option, value)
        try:
            if self.bind:
                self.socket.bind(self.address)
            else:
                self.socket.connect(self.address)
        except zmq.error.ZMQError as exc:
            self.close()
            raise TransportError('unable to open socket', address=self.address) from exc

    def close(self, /) -> None:
        if self.socket:
            self.socket.close(linger=0)

    async def send(self, data: bytes, /) -> None:
        if not self.socket or self.closed:
            raise ConnectionClosed('transport is closed', address=self.address)
        try:
            await self.socket.send(data)
        except zmq.error.Again as exc:
            raise TransportError('send timed out', address=self.address) from exc
        except zmq.error.ZMQError as exc:
            raise TransportError('unable to send message', address=self.address) from exc

    async def receive(self, /) -> bytes:
        if not self.socket or self.closed:
            raise ConnectionClosed('transport is closed', address=self.address)
        try:
            return await self.socket.recv()
        except zmq.error.Again as exc:
            raise TransportError('receive timed out', address=self.address) from exc
        except zmq.error.ZMQError as exc:
            if self.closed:
                raise ConnectionClosed('transport is closed', address=self.address) from exc
            raise TransportError('unable to receive message', address=self.address) from exc
