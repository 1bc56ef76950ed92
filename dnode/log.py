"""Logging configuration.

Diagnostics are emitted through :mod:`structlog`. Events pass through a chain of
processors that filter, enrich, and finally render them.

The protocol core never logs through a global sink. Each :class:`dnode.Dnode` receives
its logger at construction and defaults to :func:`get_null_logger`, so diagnostics are
off until an embedder passes a real logger:

.. code-block:: python

    log.configure(fmt='pretty', level='debug')
    node = Dnode(transport, logger=log.get_logger().bind(peer=transport.remote_addr))

Note:
    :func:`get_logger` returns a lazy proxy that reads the global configuration each
    time it is used. Calling ``bind`` produces a concrete logger whose processors are
    fixed at that moment, so call :func:`configure` first.

Events go to standard error, which keeps standard output free for the messages that
the command-line tools print.
"""

import functools
import logging
import sys
import typing
from collections.abc import Callable, MutableMapping
from typing import Any, Literal, NoReturn, Optional, TextIO, Union

import orjson as json
import structlog
import structlog.contextvars
import structlog.processors
from structlog.stdlib import AsyncBoundLogger as AsyncLogger

from .exception import DnodeBaseException

__all__ = [
    'AsyncLogger',
    'LEVELS',
    'configure',
    'get_level_num',
    'get_logger',
    'get_null_logger',
]


Event = MutableMapping[str, Any]
Rendered = Union[Event, str, bytes]
Processor = Callable[[Any, str, Event], Rendered]
LEVELS: list[str] = ['debug', 'info', 'warning', 'error', 'critical']
"""Severities, least severe first.

============ ===========================================================
Level        Emitted when
============ ===========================================================
``debug``    A message is sent or received.
``info``     A connection is accepted, or a receive loop stops.
``warning``  (Unused by the protocol core.)
``error``    A message cannot be dispatched, or a connection fails.
``critical`` (Unused by the protocol core.)
============ ===========================================================
"""


def drop(_logger: AsyncLogger, _method: str, _event: Event, /) -> NoReturn:
    raise structlog.DropEvent


def get_logger(*factory_args: Any, **context: Any) -> AsyncLogger:
    """Get a lazy async logger that follows the global configuration.

    Parameters:
        factory_args: Passed to the logger factory.
        context: Bound to every event.
    """
    logger = structlog.get_logger(*factory_args, **context, wrapper_class=AsyncLogger)
    return typing.cast(AsyncLogger, logger)


def get_null_logger() -> AsyncLogger:
    """Get an async logger that discards every event, whatever the configuration."""
    return get_logger(processors=[drop])


@functools.lru_cache(maxsize=16)
def get_level_num(level_name: str, /, *, default: int = logging.DEBUG) -> int:
    """Look up the numeric value of a :mod:`logging` level name.

    Example:
        >>> get_level_num('error')
        40
        >>> get_level_num('verbose') == logging.DEBUG
        True
    """
    level = getattr(logging, level_name.upper(), None)
    return level if isinstance(level, int) else default


def _filter_by_level(level: str, /) -> Processor:
    threshold = get_level_num(level)

    def processor(_logger: AsyncLogger, method: str, event: Event, /) -> Event:
        if get_level_num(method) < threshold:
            raise structlog.DropEvent
        return event

    return processor


def _add_exc_context(_logger: AsyncLogger, _method: str, event: Event, /) -> Event:
    """Copy the context of a :class:`DnodeBaseException` into the event.

    Keys already present in the event are not overwritten.
    """
    exc = event.get('exc_info')
    if isinstance(exc, DnodeBaseException):
        return exc.context | event
    return event


def configure(
    *,
    fmt: Literal['json', 'pretty'] = 'json',
    level: str = 'info',
    stream: Optional[TextIO] = None,
) -> None:
    """Set the global :mod:`structlog` configuration.

    Parameters:
        fmt: ``'pretty'`` renders colored, human-readable lines with tracebacks.
            ``'json'`` renders one JSON object per line.
        level: The least severe level that is emitted. One of :data:`LEVELS`.
        stream: Where events are written. Defaults to standard error.
    """
    logging.captureWarnings(True)
    renderers: list[Processor]
    if fmt == 'pretty':
        renderers = [structlog.dev.ConsoleRenderer(pad_event=40)]
    else:
        renderers = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(serializer=json.dumps),
        ]

    # Look up the stream per logger, since standard error may be replaced after this
    # call (for example, by output capture).
    def logger_factory(*_args: Any) -> Union[structlog.PrintLogger, structlog.BytesLogger]:
        file = stream or sys.stderr
        if fmt == 'pretty':
            return structlog.PrintLogger(file)
        return structlog.BytesLogger(file.buffer)

    structlog.configure(
        cache_logger_on_first_use=True,
        wrapper_class=AsyncLogger,
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _filter_by_level(level),
            _add_exc_context,
            structlog.processors.TimeStamper(fmt='iso'),
            *renderers,
        ],
        logger_factory=logger_factory,
    )
