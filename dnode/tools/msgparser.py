from typing import Any

import click
import orjson as json

from ..codec import Codec
from ..exception import DnodeBaseException
from ..message import CallbackFormat, Message, Partial
from ..path import Path
from ..scrub import PLACEHOLDER, inject_callbacks


INDENT = 2


def _echo(text: str, /, *, level: int = 0, **style: Any) -> None:
    click.secho(' ' * (INDENT * level) + text, **style)


def _dumps(obj: Any) -> str:
    return json.dumps(obj, default=repr, option=json.OPT_NON_STR_KEYS).decode()


def _read(codec: Codec, text: str) -> bytes:
    return bytes.fromhex(text) if codec.name == 'cbor' else text.encode()


def _write(codec: Codec, data: bytes) -> str:
    return data.hex() if codec.name == 'cbor' else data.decode()


def _fail(action: str, exc: Exception) -> None:
    click.secho(
        f'-> Failed to {action} message: {type(exc).__name__}: {exc}',
        fg='bright_red',
        bold=True,
        err=True,
    )


def format_message(options: dict[str, Any]) -> bool:
    codec: Codec = options['codec']
    try:
        callbacks = {Path.parse(path): callback_id for path, callback_id in options['callback']}
        arguments = inject_callbacks(options['arguments'], callbacks, lambda _id: PLACEHOLDER)
        message = Message(options['method'], Partial(arguments, callbacks), callbacks)
        data = message.encode(codec, CallbackFormat(options['callback_format']))
    except (DnodeBaseException, TypeError) as exc:
        _fail('format', exc)
        return False
    print(_write(codec, data))
    return True


def _parse(message: Message) -> dict[str, Any]:
    return {
        'kind': 'method' if isinstance(message.method, str) else 'callback',
        'method': message.method,
        'arguments': message.arguments.raw,
        'callbacks': {path.format(): callback_id for path, callback_id in message.callbacks.items()},
    }


def _display_message_pretty(record: dict[str, Any]) -> None:
    _echo(f'-> {record["kind"].title()}: {record["method"]!r}', fg='bright_green', bold=True)
    _echo(f'Arguments: {_dumps(record["arguments"])}', level=1)
    if record['callbacks']:
        _echo('Callbacks:', level=1, fg='bright_blue', bold=True)
    for path, callback_id in record['callbacks'].items():
        _echo(f'{path or "(root)"} -> {callback_id}', level=2)


def parse_messages(options: dict[str, Any]) -> None:
    codec: Codec = options['codec']
    for encoding in options['message']:
        try:
            record = _parse(Message.decode(_read(codec, encoding), codec))
        except (DnodeBaseException, ValueError) as exc:
            _fail('parse', exc)
            continue
        if options['output_format'] == 'json':
            print(_dumps(record))
        else:
            _display_message_pretty(record)
