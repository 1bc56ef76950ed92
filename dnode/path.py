"""Locations inside nested argument trees.

A :class:`Path` is the sequence of mapping keys and sequence indices leading from the
root of an argument tree to one value. Paths travel on the wire in their canonical
string form, where keys are joined by ``.`` and any literal ``.`` or ``\\`` inside a key
is escaped with a backslash:

============================== ===========================
Path                           String
============================== ===========================
``Path([0])``                  ``'0'``
``Path([1, 'done'])``          ``'1.done'``
``Path([0, 'a.b', 2])``        ``'0.a\\.b.2'``
============================== ===========================

Parsing cannot tell a mapping key ``'0'`` from a sequence index ``0``, so parsed paths
hold strings and each segment is resolved against the container it indexes into.
"""

from collections.abc import Iterable, Mapping, MutableMapping, MutableSequence, Sequence
from typing import Any, Union

from .exception import ArgumentError

__all__ = ['Key', 'Path']

Key = Union[str, int]
SEPARATOR, ESCAPE = '.', '\\'


class Path(tuple[Key, ...]):
    """An immutable, hashable sequence of keys.

    Examples:
        >>> Path([0, 'cb']).format()
        '0.cb'
        >>> Path.parse('0.cb')
        Path('0', 'cb')
        >>> Path([1]) + ('x',)
        Path(1, 'x')
    """

    def __new__(cls, keys: Iterable[Key] = (), /) -> 'Path':
        return super().__new__(cls, keys)

    def __repr__(self, /) -> str:
        return f'{self.__class__.__name__}({", ".join(map(repr, self))})'

    def __add__(self, other: Any, /) -> 'Path':  # type: ignore[override]
        return Path(tuple(self) + tuple(other))

    def child(self, key: Key, /) -> 'Path':
        return Path((*self, key))

    def format(self, /) -> str:
        """Render the canonical string form of this path."""
        segments = []
        for key in self:
            segment = str(key).replace(ESCAPE, ESCAPE * 2).replace(SEPARATOR, ESCAPE + SEPARATOR)
            segments.append(segment)
        return SEPARATOR.join(segments)

    @classmethod
    def parse(cls, encoded: Union[str, int, Sequence[Key]], /) -> 'Path':
        """Parse a path from its wire representation.

        Besides the canonical string, a bare integer (a top-level index) and a list of
        keys (the layout JavaScript dnode peers send) are accepted.

        Raises:
            ArgumentError: If the representation is not recognized.

        Examples:
            >>> Path.parse('0.a\\\\.b.2')
            Path('0', 'a.b', '2')
            >>> Path.parse([0, 'cb'])
            Path(0, 'cb')
            >>> Path.parse('')
            Path()
        """
        if isinstance(encoded, bool):
            raise ArgumentError('invalid path', path=encoded)
        if isinstance(encoded, int):
            return cls([encoded])
        if isinstance(encoded, (list, tuple)):
            if not all(isinstance(key, (str, int)) for key in encoded):
                raise ArgumentError('invalid path', path=encoded)
            return cls(encoded)
        if not isinstance(encoded, str):
            raise ArgumentError('invalid path', path=encoded)
        if not encoded:
            return cls()
        segments, current, escaped = [], [], False
        for char in encoded:
            if escaped:
                current.append(char)
                escaped = False
            elif char == ESCAPE:
                escaped = True
            elif char == SEPARATOR:
                segments.append(''.join(current))
                current = []
            else:
                current.append(char)
        if escaped:
            raise ArgumentError('path ends with an escape character', path=encoded)
        segments.append(''.join(current))
        return cls(segments)

    @staticmethod
    def _resolve_key(container: Any, key: Key) -> Key:
        if isinstance(container, Mapping):
            if key in container:
                return key
            if isinstance(key, str) and key.lstrip('-').isdigit() and int(key) in container:
                return int(key)
            if isinstance(key, int) and str(key) in container:
                return str(key)
            raise ArgumentError('path does not address an existing key', key=key)
        if isinstance(container, Sequence) and not isinstance(container, (str, bytes)):
            try:
                index = int(key)
            except (TypeError, ValueError) as exc:
                raise ArgumentError('sequence index is not an integer', key=key) from exc
            if not 0 <= index < len(container):
                raise ArgumentError('sequence index out of range', key=key)
            return index
        raise ArgumentError('path traverses a scalar value', key=key)

    def get(self, tree: Any, /) -> Any:
        """Get the value this path addresses inside ``tree``.

        Raises:
            ArgumentError: If the path does not address an existing location.
        """
        value = tree
        for key in self:
            value = value[self._resolve_key(value, key)]
        return value

    def set(self, tree: Any, value: Any, /) -> Any:
        """Replace the value this path addresses, in place.

        Returns:
            The (possibly new) root. Setting the empty path replaces the root itself.

        Raises:
            ArgumentError: If the path does not address an existing location or the
                container is immutable.
        """
        if not self:
            return value
        *parents, last = self
        container = Path(parents).get(tree)
        key = self._resolve_key(container, last)
        if not isinstance(container, (MutableMapping, MutableSequence)):
            raise ArgumentError('path addresses an immutable container', path=self.format())
        container[key] = value
        return tree
