"""Callback substitution in argument trees.

Outbound, :func:`collect_callbacks` walks the arguments and swaps every callable for
:data:`PLACEHOLDER`, recording where it was found and under which ID it was registered.
Inbound, :func:`inject_callbacks` performs the reverse: each recorded location receives
a stub that forwards calls to the peer.

Mappings are traversed in sorted-key order and sequences positionally, so the same
arguments always produce the same callback IDs relative to the registry's counter.
"""

import copy
from collections.abc import Callable, Mapping
from typing import Any

from .path import Path

__all__ = ['PLACEHOLDER', 'collect_callbacks', 'inject_callbacks', 'is_callback']

PLACEHOLDER = '[Function]'
"""The value standing in for a callable on the wire."""


def is_callback(value: Any, /) -> bool:
    """Whether a value is sent as a callback rather than encoded as data."""
    return callable(value) and not isinstance(value, type)


def _sort_key(key: Any) -> tuple[str, str]:
    return type(key).__name__, str(key)


def _scrub(
    value: Any,
    path: Path,
    register: Callable[[Callable[..., Any]], int],
    callbacks: dict[Path, int],
) -> Any:
    if is_callback(value):
        callbacks[path] = register(value)
        return PLACEHOLDER
    if isinstance(value, Mapping):
        scrubbed = {
            key: _scrub(value[key], path.child(key), register, callbacks)
            for key in sorted(value, key=_sort_key)
        }
        return {key: scrubbed[key] for key in value}
    if isinstance(value, (list, tuple)):
        return [
            _scrub(element, path.child(index), register, callbacks)
            for index, element in enumerate(value)
        ]
    return value


def collect_callbacks(
    value: Any,
    register: Callable[[Callable[..., Any]], int],
    /,
) -> tuple[Any, dict[Path, int]]:
    """Replace callables in a tree with placeholders.

    Parameters:
        value: The argument tree. Neither the tree nor its containers are modified.
        register: Called once per callable found, in traversal order. Returns the ID
            the peer will use to invoke the callable.

    Returns:
        A copy of the tree with callables replaced, and a mapping of each callable's
        location to its ID.

    Example:
        >>> ids = iter(range(10))
        >>> collect_callbacks([1, {'b': print, 'a': len}], lambda _fn: next(ids))
        ([1, {'b': '[Function]', 'a': '[Function]'}], {Path(1, 'a'): 0, Path(1, 'b'): 1})
    """
    callbacks: dict[Path, int] = {}
    scrubbed = _scrub(value, Path(), register, callbacks)
    return scrubbed, callbacks


def inject_callbacks(
    tree: Any,
    callbacks: Mapping[Path, int],
    make_stub: Callable[[int], Any],
    /,
) -> Any:
    """Replace each location named in ``callbacks`` with a stub.

    Parameters:
        tree: A decoded argument tree. The tree is copied, not modified.
        callbacks: Locations of remote callbacks and their IDs.
        make_stub: Builds the stub for a callback ID.

    Returns:
        The new tree.

    Raises:
        ArgumentError: If a path does not address an existing location.
    """
    tree = copy.deepcopy(tree)
    # Deepest paths first, so a stub never hides a location that still needs one.
    for path, callback_id in sorted(callbacks.items(), key=lambda item: -len(item[0])):
        tree = path.set(tree, make_stub(callback_id))
    return tree
