"""The dnode wire message and its decode-deferred arguments.

A message is a mapping with four entries:

.. code-block:: json

    {"method": "greet", "arguments": ["alice", "[Function]"], "callbacks": {"1": 0}, "links": []}

``method`` is either a method name or the numeric ID of a callback the receiver sent
earlier. ``callbacks`` locates every callable in ``arguments``; see
:class:`CallbackFormat` for its two layouts. ``links`` is reserved and always empty.
"""

import copy
import dataclasses
import enum
import typing
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .codec import Codec
from .exception import ArgumentError, MessageDecodeError
from .function import Function
from .path import Path
from .scrub import collect_callbacks, inject_callbacks

__all__ = ['CallbackFormat', 'Message', 'Method', 'Partial']

Method = Union[str, int]


class CallbackFormat(enum.Enum):
    """Layouts of a message's ``callbacks`` field.

    Attributes:
        PATH: Maps each canonical path string to its callback ID, for example
            ``{"1.done": 0}``.
        ID: Maps each callback ID (as a string) to its path as a list of keys, for
            example ``{"0": [1, "done"]}``. JavaScript dnode peers use this layout.

    Decoding accepts either layout, and both may be mixed in one message.
    """

    PATH = 'path'
    ID = 'id'


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _check_type(value: Any, shape: Any) -> Any:
    """Check a decoded value against a type, converting where the encoding is lossy.

    Supports plain classes, dataclasses (from mappings), :data:`typing.Any`, and the
    ``list``, ``tuple``, ``dict``, and :data:`typing.Union` generics.
    """
    if shape is None or shape is Any:
        return value
    origin, args = typing.get_origin(shape), typing.get_args(shape)
    if origin is Union:
        for option in args:
            try:
                return _check_type(value, option)
            except ArgumentError:
                continue
        raise ArgumentError('value matches no type of the union', shape=repr(shape))
    if origin in (list, tuple, dict):
        value = _check_type(value, origin)
        if origin is list and args:
            return [_check_type(element, args[0]) for element in value]
        if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
            return tuple(_check_type(element, args[0]) for element in value)
        if origin is tuple and args:
            if len(args) != len(value):
                raise ArgumentError('wrong tuple length', expected=len(args), actual=len(value))
            return tuple(_check_type(element, arg) for element, arg in zip(value, args))
        if origin is dict and args:
            key_type, value_type = args
            return {
                _check_type(key, key_type): _check_type(element, value_type)
                for key, element in value.items()
            }
        return value
    if not isinstance(shape, type):
        raise ArgumentError('unsupported type', shape=repr(shape))
    if dataclasses.is_dataclass(shape) and not isinstance(value, shape):
        if not isinstance(value, Mapping):
            raise ArgumentError('expected a mapping', shape=shape.__name__)
        hints = typing.get_type_hints(shape)
        kwargs = {
            attr.name: _check_type(value[attr.name], hints.get(attr.name))
            for attr in dataclasses.fields(shape)
            if attr.init and attr.name in value
        }
        try:
            return shape(**kwargs)
        except TypeError as exc:
            raise ArgumentError('unable to build dataclass', shape=shape.__name__) from exc
    if shape is float and _as_int(value) is not None:
        return float(value)
    if shape is int:
        integer = _as_int(value)
        if integer is None:
            raise ArgumentError('expected an integer', actual=type(value).__name__)
        return integer
    if shape is tuple and isinstance(value, list):
        return tuple(value)
    if not isinstance(value, shape):
        raise ArgumentError(
            'value has the wrong type',
            expected=shape.__name__,
            actual=type(value).__name__,
        )
    return value


@dataclass
class Partial:
    """Arguments whose decoding is deferred until the consumer knows what it needs.

    Attributes:
        raw: The decoded argument tree, with callbacks still in placeholder form.
        callbacks: Location and ID of each remote callback in the tree.
        make_stub: Builds the stub for a callback ID. Without one, placeholders remain
            in place.
        wrapper: Applied to the generic tree after stubs are injected.
    """

    raw: Any = field(default_factory=list)
    callbacks: Mapping[Path, int] = field(default_factory=dict)
    make_stub: Optional[Callable[[int], Any]] = field(default=None, repr=False)
    wrapper: Optional[Callable[[Any], Any]] = field(default=None, repr=False)

    def with_wrapper(self, wrapper: Callable[[Any], Any], /) -> 'Partial':
        """Return a copy whose generic decoding is post-processed by ``wrapper``."""
        return dataclasses.replace(self, wrapper=wrapper)

    def materialize(self, /) -> Any:
        """Decode generically, with a stub at every callback location.

        Raises:
            ArgumentError: If a callback path does not address an existing location.
        """
        if self.callbacks and self.make_stub:
            tree = inject_callbacks(self.raw, self.callbacks, self.make_stub)
        else:
            tree = copy.deepcopy(self.raw)
        if self.wrapper:
            tree = self.wrapper(tree)
        return tree

    def unmarshal(self, shape: Any = None, /) -> Any:
        """Decode strictly into the given shape.

        Parameters:
            shape: A type, such as ``list[int]``, a dataclass, or :class:`Function`.
                ``None`` skips type checking.

        Raises:
            ArgumentError: If the arguments do not match the shape.

        Example:
            >>> Partial([1, 2.0]).unmarshal(list[int])
            [1, 2]
        """
        return _check_type(self.materialize(), shape)

    def unpack(self, /, *shapes: Any) -> tuple[Any, ...]:
        """Decode a positional argument list, checking each element's type.

        Raises:
            ArgumentError: If the arguments are not a list of exactly ``len(shapes)``
                elements of the given types.

        Example:
            >>> Partial(['a', 1]).unpack(str, int)
            ('a', 1)
        """
        args = self.slice_of_length(len(shapes))
        return tuple(_check_type(arg, shape) for arg, shape in zip(args, shapes))

    def slice(self, /) -> list[Any]:
        return typing.cast(list[Any], self.unmarshal(list))

    def slice_of_length(self, length: int, /) -> list[Any]:
        args = self.slice()
        if len(args) != length:
            raise ArgumentError('wrong number of arguments', expected=length, actual=len(args))
        return args

    def one(self, /) -> Any:
        """Decode the only argument of a one-argument list."""
        (arg,) = self.slice_of_length(1)
        return arg

    def as_map(self, /) -> dict[Any, Any]:
        return typing.cast(dict[Any, Any], self.unmarshal(dict))

    def as_string(self, /) -> str:
        return typing.cast(str, self.unmarshal(str))

    def as_float(self, /) -> float:
        return typing.cast(float, self.unmarshal(float))

    def as_bool(self, /) -> bool:
        return typing.cast(bool, self.unmarshal(bool))

    def as_function(self, /) -> Function:
        return typing.cast(Function, self.unmarshal(Function))


@dataclass
class Message:
    """A call of a method or callback.

    Attributes:
        method: A method name, or the ID of a callback the receiver exposed.
        arguments: The call's arguments.
        callbacks: Location and ID of each callback the sender exposes in the arguments.
        links: Reserved. Never interpreted.
    """

    method: Method
    arguments: Partial = field(default_factory=Partial)
    callbacks: dict[Path, int] = field(default_factory=dict)
    links: list[Any] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        method: Method,
        args: Any,
        register: Callable[[Callable[..., Any]], int],
        /,
    ) -> 'Message':
        """Build an outbound message, registering every callable in ``args``."""
        scrubbed, callbacks = collect_callbacks(args, register)
        return cls(method, Partial(scrubbed, callbacks), callbacks)

    def to_wire(self, /, callback_format: CallbackFormat = CallbackFormat.PATH) -> dict[str, Any]:
        if callback_format is CallbackFormat.ID:
            callbacks: dict[str, Any] = {
                str(callback_id): list(path) for path, callback_id in self.callbacks.items()
            }
        else:
            callbacks = {path.format(): callback_id for path, callback_id in self.callbacks.items()}
        return {
            'method': self.method,
            'arguments': self.arguments.raw,
            'callbacks': callbacks,
            'links': [],
        }

    @staticmethod
    def _parse_callbacks(callbacks: Any) -> dict[Path, int]:
        if not isinstance(callbacks, Mapping):
            raise MessageDecodeError('callbacks must be a mapping', callbacks=callbacks)
        parsed: dict[Path, int] = {}
        for key, value in callbacks.items():
            if isinstance(value, (list, tuple)):
                callback_id, path = _as_int(key), value
                if callback_id is None and isinstance(key, str) and key.isdigit():
                    callback_id = int(key)
            else:
                callback_id, path = _as_int(value), key
            if callback_id is None or callback_id < 0:
                raise MessageDecodeError('invalid callback ID', key=key, value=value)
            try:
                parsed[Path.parse(path)] = callback_id
            except ArgumentError as exc:
                raise MessageDecodeError('invalid callback path', key=key, value=value) from exc
        return parsed

    @classmethod
    def from_wire(
        cls,
        obj: Any,
        /,
        make_stub: Optional[Callable[[int], Any]] = None,
    ) -> 'Message':
        """Validate a decoded wire mapping.

        Raises:
            MessageDecodeError: If the mapping is not a valid message.
        """
        if not isinstance(obj, Mapping):
            raise MessageDecodeError('message must be a mapping', kind=type(obj).__name__)
        if 'method' not in obj:
            raise MessageDecodeError('message has no method')
        method = obj['method']
        if not isinstance(method, str):
            method = _as_int(method)
            if method is None or method < 0:
                raise MessageDecodeError('invalid method', method=obj['method'])
        callbacks = obj.get('callbacks')
        callbacks = cls._parse_callbacks({} if callbacks is None else callbacks)
        arguments = Partial(obj.get('arguments', []), callbacks, make_stub)
        # ``links`` is reserved, so whatever the peer sent is discarded unread.
        return cls(method, arguments, callbacks)

    def encode(
        self,
        codec: Codec,
        /,
        callback_format: CallbackFormat = CallbackFormat.PATH,
    ) -> bytes:
        """Encode the message.

        Raises:
            TypeError: If the arguments contain values the codec cannot represent.
        """
        return codec.encode(self.to_wire(callback_format))

    @classmethod
    def decode(
        cls,
        buf: bytes,
        codec: Codec,
        /,
        make_stub: Optional[Callable[[int], Any]] = None,
    ) -> 'Message':
        """Decode a message.

        Raises:
            MessageDecodeError: If the buffer is not a valid message.
        """
        return cls.from_wire(codec.decode(buf), make_stub)
