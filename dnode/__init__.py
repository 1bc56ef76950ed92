"""A processor for the dnode remote-invocation protocol.

See the `protocol description`_ for details.

.. _protocol description:
    https://github.com/substack/dnode-protocol/blob/master/doc/protocol.markdown
"""

from .codec import CBORCodec, Codec, JSONCodec
from .dnode import Dnode, Runner, Wrapper, route
from .exception import (
    ArgumentError,
    CallbackNotFoundError,
    ConnectionClosed,
    DispatchError,
    DnodeBaseException,
    HandlerError,
    HandlerRegistrationError,
    MessageDecodeError,
    MethodNotFoundError,
    TransportError,
)
from .function import Function
from .message import CallbackFormat, Message, Partial
from .path import Path
from .server import serve
from .transport import MemoryTransport, SocketTransport, StreamTransport, Transport

__version__ = '0.1.0'

__all__ = [
    'ArgumentError',
    'CBORCodec',
    'CallbackFormat',
    'CallbackNotFoundError',
    'Codec',
    'ConnectionClosed',
    'DispatchError',
    'Dnode',
    'DnodeBaseException',
    'Function',
    'HandlerError',
    'HandlerRegistrationError',
    'JSONCodec',
    'MemoryTransport',
    'Message',
    'MessageDecodeError',
    'MethodNotFoundError',
    'Partial',
    'Path',
    'Runner',
    'SocketTransport',
    'StreamTransport',
    'Transport',
    'TransportError',
    'Wrapper',
    'route',
    'serve',
]
