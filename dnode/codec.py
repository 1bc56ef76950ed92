"""Structured-data encodings for dnode messages.

The dnode protocol is defined over JSON, which :class:`JSONCodec` implements with
:mod:`orjson`. :class:`CBORCodec` is a compact binary alternative for peers that both
speak it.
"""

import abc
from typing import Any

import cbor2
import orjson as json

from .exception import MessageDecodeError

__all__ = ['CBORCodec', 'Codec', 'JSONCodec']


class Codec(abc.ABC):
    """Encode and decode trees of mappings, sequences, strings, numbers, booleans, and
    null."""

    name: str = ''

    @abc.abstractmethod
    def encode(self, obj: Any, /) -> bytes:
        """Encode a tree.

        Raises:
            TypeError: If the tree contains a value the encoding cannot represent.
        """

    @abc.abstractmethod
    def decode(self, buf: bytes, /) -> Any:
        """Decode a tree.

        Raises:
            MessageDecodeError: If the buffer is malformed.
        """

    @staticmethod
    def from_name(name: str, /) -> 'Codec':
        """Look up a codec by name (``'json'`` or ``'cbor'``).

        Raises:
            ValueError: If no such codec exists.
        """
        for codec_type in (JSONCodec, CBORCodec):
            if codec_type.name == name.lower():
                return codec_type()
        raise ValueError(f'unknown codec: {name!r}')


class JSONCodec(Codec):
    name = 'json'

    def encode(self, obj: Any, /) -> bytes:
        try:
            return json.dumps(obj, option=json.OPT_NON_STR_KEYS)
        except json.JSONEncodeError as exc:
            raise TypeError(f'unable to encode as JSON: {exc}') from exc

    def decode(self, buf: bytes, /) -> Any:
        try:
            return json.loads(buf)
        except json.JSONDecodeError as exc:
            raise MessageDecodeError('invalid JSON', reason=str(exc)) from exc


class CBORCodec(Codec):
    name = 'cbor'

    def encode(self, obj: Any, /) -> bytes:
        try:
            return cbor2.dumps(obj)
        except cbor2.CBOREncodeError as exc:
            raise TypeError(f'unable to encode as CBOR: {exc}') from exc

    def decode(self, buf: bytes, /) -> Any:
        try:
            return cbor2.loads(buf)
        except (cbor2.CBORDecodeError, EOFError) as exc:
            raise MessageDecodeError('invalid CBOR', reason=str(exc)) from exc
