import asyncio

import click.testing
import orjson as json
import pytest

from dnode.__main__ import cli
from dnode.codec import JSONCodec
from dnode.dnode import Dnode
from dnode.server import serve
from dnode.tools import client
from dnode.transport import MemoryTransport

GREET = b'{"method":"greet","arguments":["alice","[Function]"],"callbacks":{"1":0},"links":[]}'


@pytest.fixture
def runner():
    yield click.testing.CliRunner()


def test_format(runner):
    result = runner.invoke(cli, [
        'format-msg',
        'greet',
        '--arguments',
        '["alice", null]',
        '--callback',
        '1=0',
    ])
    assert result.exit_code == 0
    assert result.output.strip() == GREET.decode()


def test_format_callback_method(runner):
    result = runner.invoke(cli, ['format-msg', '7', '--arguments', '[{"a.b": 1}]'])
    assert result.exit_code == 0
    assert json.loads(result.output) == {
        'method': 7,
        'arguments': [{'a.b': 1}],
        'callbacks': {},
        'links': [],
    }


def test_format_invalid(runner):
    result = runner.invoke(cli, ['format-msg', 'greet', '--arguments', '["x"]', '--callback', '5=0'])
    assert result.exit_code == 1
    assert 'Failed to format message' in result.output
    result = runner.invoke(cli, ['format-msg', 'greet', '--callback', '1'])
    assert result.exit_code == 2
    result = runner.invoke(cli, ['format-msg', 'greet', '--arguments', '[1'])
    assert result.exit_code == 2


def test_parse(runner):
    result = runner.invoke(cli, ['parse-msg', '--output-format', 'json', GREET.decode()])
    assert result.exit_code == 0
    assert json.loads(result.output) == {
        'kind': 'method',
        'method': 'greet',
        'arguments': ['alice', '[Function]'],
        'callbacks': {'1': 0},
    }
    result = runner.invoke(cli, ['parse-msg', GREET.decode(), '{"method":3,"arguments":[]}'])
    assert result.exit_code == 0
    assert "-> Method: 'greet'" in result.output
    assert '1 -> 0' in result.output
    assert '-> Callback: 3' in result.output


def test_parse_invalid(runner):
    result = runner.invoke(cli, ['parse-msg', '--output-format', 'json', 'not json', '{"method":1}'])
    assert result.exit_code == 0
    assert 'Failed to parse message' in result.output
    assert '"kind":"callback"' in result.output


def test_cbor(runner):
    result = runner.invoke(cli, ['--codec', 'cbor', 'format-msg', 'greet', '--arguments', '["x"]'])
    assert result.exit_code == 0
    encoding = result.output.strip()
    bytes.fromhex(encoding)
    result = runner.invoke(cli, ['--codec', 'cbor', 'parse-msg', '--output-format', 'json', encoding])
    assert result.exit_code == 0
    assert json.loads(result.output)['arguments'] == ['x']


def test_config(runner, tmp_path):
    config = tmp_path / 'dnode.yaml'
    config.write_text('log_level: debug\nformat-msg:\n  callback_format: id\n')
    args = ['format-msg', 'greet', '--arguments', '[null]', '--callback', '0=3']
    result = runner.invoke(cli, ['--config', str(config), *args])
    assert result.exit_code == 0
    assert json.loads(result.output)['callbacks'] == {'3': ['0']}
    result = runner.invoke(cli, args, env={'DNODE_FORMAT_MSG_CALLBACK_FORMAT': 'id'})
    assert json.loads(result.output)['callbacks'] == {'3': ['0']}
    config.write_text('[not, a, mapping]\n')
    result = runner.invoke(cli, ['--config', str(config), *args])
    assert result.exit_code == 2


def test_call_arguments(runner):
    result = runner.invoke(cli, ['call', 'localhost', 'echo'])
    assert result.exit_code == 2
    result = runner.invoke(cli, ['call', '--timeout', '0', 'localhost:5050', 'echo'])
    assert result.exit_code == 2


@pytest.mark.asyncio
async def test_client(capsys):
    template = Dnode(MemoryTransport())

    async def echo(text, reply):
        await reply(text, text.upper())

    template.handle_func('echo', echo)
    template.handle_func('ignore', lambda text: None)
    server = await serve(template, '127.0.0.1', 0)
    (host, port, *_), = [sock.getsockname() for sock in server.sockets]
    options = {
        'address': (host, port),
        'codec': JSONCodec(),
        'method': 'echo',
        'arguments': ['hi'],
        'wait_callback': True,
        'timeout': 1,
    }
    async with server:
        assert await client.main(options)
        assert '["hi","HI"]' in capsys.readouterr().out
        assert not await client.main(options | {'method': 'ignore', 'timeout': 0.05})
        assert await client.main(options | {'method': 'ignore', 'wait_callback': False})
        await asyncio.sleep(0.05)
    assert not await client.main(options)
