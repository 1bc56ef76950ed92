"""The `dnode` command and its configuration sources."""

import functools
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import click
import orjson as json
import uvloop
import yaml

import dnode

from . import log
from .codec import Codec
from .message import Method
from .tools import client, msgparser

__all__ = [
    'cli',
    'load_yaml',
]


@dataclass
class OptionStore:
    options: dict[str, Any] = field(default_factory=dict)


ParameterCallback = Callable[[click.Context, click.Parameter, Any], Any]


@functools.lru_cache(maxsize=64)
def make_converter(convert: Callable[[Any], Any]) -> ParameterCallback:
    """Wrap a conversion as a :mod:`click` parameter callback.

    For ``multiple=True`` options, the conversion is applied element-wise. Any exception
    the conversion raises is reported as a bad parameter.
    """

    def apply(value: Any) -> Any:
        return tuple(map(convert, value)) if isinstance(value, (tuple, list)) else convert(value)

    def callback(_ctx: click.Context, _param: click.Parameter, value: Any, /) -> Any:
        try:
            return apply(value)
        except click.BadParameter:
            raise
        except Exception as exc:
            raise click.BadParameter(str(exc)) from exc

    return callback


def make_multipart_parser(
    *converters: Callable[[str], Any],
    delimeter: str = ':',
) -> ParameterCallback:
    """Build a callback that splits a delimited option value and converts each part.

    Splitting starts from the right, so the first part may contain the delimeter (as an
    IPv6 host would).

    Examples:
        >>> make_multipart_parser()
        Traceback (most recent call last):
          ...
        ValueError: not enough converters
        >>> convert = make_multipart_parser(str, int)
        >>> convert(None, None, 'localhost')
        Traceback (most recent call last):
          ...
        click.exceptions.BadParameter: not enough parts provided
        >>> convert(None, None, 'localhost:5050')
        ('localhost', 5050)
    """
    if not converters:
        raise ValueError('not enough converters')

    def convert(element: str) -> Iterator[Any]:
        components = element.rsplit(delimeter, maxsplit=len(converters) - 1)
        if len(components) != len(converters):
            raise click.BadParameter('not enough parts provided')
        for i, (converter, component) in enumerate(zip(converters, components)):
            try:
                yield converter(component)
            except Exception as exc:
                raise click.BadParameter(f'failed to parse part {i+1}: {exc}') from exc

    return make_converter(lambda value: tuple(convert(value)))


def parse_method(value: str) -> Method:
    """Parse a method name or, if the value is a nonnegative integer, a callback ID.

    Examples:
        >>> parse_method('echo')
        'echo'
        >>> parse_method('7')
        7
    """
    return int(value) if value.isdigit() else value


def parse_callback(value: str) -> tuple[str, int]:
    """Parse a ``PATH=ID`` pair. The path may itself contain ``=``.

    Examples:
        >>> parse_callback('1.done=0')
        ('1.done', 0)
        >>> parse_callback('0')
        Traceback (most recent call last):
          ...
        ValueError: '0' should have the form PATH=ID
    """
    path, sep, callback_id = value.rpartition('=')
    if not sep or not callback_id.isdigit():
        raise ValueError(f'{value!r} should have the form PATH=ID')
    return path, int(callback_id)


def check_positive(value: float) -> float:
    """Reject zero and negative numbers.

    Examples:
        >>> check_positive(0.01)
        0.01
        >>> check_positive(0)
        Traceback (most recent call last):
          ...
        ValueError: '0' should be a positive number
    """
    if value <= 0:
        raise ValueError(f"'{value}' should be a positive number")
    return value


def load_yaml(path: Union[str, Path]) -> Any:
    """Load a YAML document, reporting syntax errors with their position.

    Examples:
        >>> import tempfile
        >>> with tempfile.NamedTemporaryFile(mode='w') as tmp:
        ...     print('call: {timeout: 2}', file=tmp)
        ...     _ = tmp.seek(0)
        ...     load_yaml(tmp.name)
        {'call': {'timeout': 2}}
    """
    try:
        with Path(path).open() as stream:
            return yaml.load(stream, Loader=yaml.SafeLoader)
    except yaml.YAMLError as exc:
        message = f'Unable to parse YAML ({path})'
        mark = getattr(exc, 'problem_mark', None)
        if mark:  # pragma: no cover
            message += f': line {mark.line + 1}, column {mark.column + 1}'
        raise ValueError(message) from exc


def load_config(ctx: click.Context, _param: click.Parameter, value: Optional[str]) -> None:
    """Use a YAML file's contents as defaults for any option not given explicitly.

    Top-level keys are option names of the main command (``log_level``), and nested
    mappings hold the options of subcommands (``call: {timeout: 2}``).
    """
    if not value:
        return
    try:
        config = load_yaml(value) or {}
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if not isinstance(config, dict):
        raise click.BadParameter('configuration must be a mapping')
    ctx.default_map = {**(ctx.default_map or {}), **config}


@click.group(
    context_settings=dict(
        auto_envvar_prefix='DNODE',
        max_content_width=100,
        show_default=True,
    ),
)
@click.option(
    '--config',
    type=click.Path(dir_okay=False, exists=True),
    callback=load_config,
    is_eager=True,
    expose_value=False,
    help='YAML file providing option defaults.',
)
@click.option(
    '--log-level',
    type=click.Choice(log.LEVELS, case_sensitive=False),
    default='warning',
    help='Least severe log level to emit (to standard error).',
)
@click.option(
    '--log-format',
    type=click.Choice(['json', 'pretty'], case_sensitive=False),
    default='pretty',
    help='Rendering of log events.',
)
@click.option(
    '--codec',
    type=click.Choice(['json', 'cbor'], case_sensitive=False),
    default='json',
    callback=make_converter(Codec.from_name),
    help='Message encoding. CBOR messages are read and written in hex.',
)
@click.version_option(version=dnode.__version__, message='%(version)s')
@click.pass_context
def cli(ctx: click.Context, **options: Any) -> None:
    """Tools for the dnode remote-invocation protocol.

    dnode peers call each other's methods with arguments that may include callbacks,
    which the receiving side can invoke later.
    """
    ctx.ensure_object(OptionStore)
    ctx.obj.options.update(options)
    log.configure(fmt=options['log_format'], level=options['log_level'])


@cli.command()
@click.option(
    '--output-format',
    type=click.Choice(['json', 'pretty'], case_sensitive=False),
    default='pretty',
    help='Format of records printed to standard output.',
)
@click.argument('message', nargs=-1)
@click.pass_context
def parse_msg(ctx: click.Context, **options: Any) -> None:
    """Parse dnode messages.

    Each argument is one message as transmitted on the wire:

    \b
        $ python -m dnode parse-msg \\
        >   '{"method":"greet","arguments":["alice","[Function]"],"callbacks":{"1":0}}'

    This operation is the inverse of "format-msg".
    """
    ctx.obj.options.update(options)
    msgparser.parse_messages(ctx.obj.options)


@cli.command()
@click.option(
    '--arguments',
    callback=make_converter(json.loads),
    default='[]',
    help='Arguments (in JSON format).',
)
@click.option(
    '--callback',
    callback=make_converter(parse_callback),
    metavar='PATH=ID',
    multiple=True,
    help='Mark the argument at PATH as a callback with the given ID.',
)
@click.option(
    '--callback-format',
    type=click.Choice(['path', 'id'], case_sensitive=False),
    default='path',
    help='Layout of the "callbacks" field.',
)
@click.argument('method', callback=make_converter(parse_method))
@click.pass_context
def format_msg(ctx: click.Context, **options: Any) -> None:
    """Format a dnode message.

    METHOD is a method name, or a callback ID if it is a nonnegative integer:

    \b
        $ python -m dnode format-msg greet --arguments '["alice", null]' --callback 1=0
    """
    ctx.obj.options.update(options)
    if not msgparser.format_message(ctx.obj.options):
        ctx.exit(1)


@cli.command(name='call')
@click.option(
    '--arguments',
    callback=make_converter(json.loads),
    default='[]',
    help='Positional arguments, as a JSON array.',
)
@click.option(
    '--wait-callback/--no-wait-callback',
    default=False,
    help='Append a callback to the arguments and print the arguments it is called with.',
)
@click.option(
    '--timeout',
    type=float,
    callback=make_converter(check_positive),
    default=5,
    help='Seconds to wait for the callback.',
)
@click.argument('address', metavar='HOST:PORT', callback=make_multipart_parser(str, int))
@click.argument('method')
@click.pass_context
def call_cli(ctx: click.Context, **options: Any) -> None:
    """Call a method of a dnode peer listening on TCP.

    \b
        $ python -m dnode call --wait-callback --arguments '["hi"]' localhost:5050 echo
    """
    ctx.obj.options.update(options)
    if not uvloop.run(client.main(ctx.obj.options)):
        ctx.exit(1)
