import asyncio
import struct

import pytest
import zmq

from dnode.codec import CBORCodec
from dnode.dnode import Dnode
from dnode.exception import ConnectionClosed, TransportError
from dnode.server import serve
from dnode.transport import MemoryTransport, SocketTransport, StreamTransport


async def accept_one(**options):
    accepted = asyncio.Queue()

    async def on_connect(reader, writer):
        await accepted.put(StreamTransport(reader, writer, **options))

    server = await asyncio.start_server(on_connect, '127.0.0.1', 0)
    (host, port, *_), = [sock.getsockname() for sock in server.sockets]
    client = await StreamTransport.connect(host, port, **options)
    return server, client, await asyncio.wait_for(accepted.get(), 1)


@pytest.mark.asyncio
async def test_memory_pipe():
    left, right = MemoryTransport.pipe('left', 'right')
    assert left.remote_addr == 'right'
    assert right.remote_addr == 'left'
    await left.send(b'first')
    await left.send(b'second')
    assert await right.receive() == b'first'
    assert await right.receive() == b'second'
    right.close()
    with pytest.raises(ConnectionClosed):
        await left.receive()
    with pytest.raises(ConnectionClosed):
        await left.send(b'third')
    with pytest.raises(ConnectionClosed):
        await right.receive()


@pytest.mark.asyncio
async def test_memory_context_manager():
    left, right = MemoryTransport.pipe()
    async with left:
        left.properties['user'] = 'alice'
        await right.send(b'message')
        assert await left.receive() == b'message'
    assert left.closed
    assert left.properties == {'user': 'alice'}
    with pytest.raises(ConnectionClosed):
        await right.send(b'message')


@pytest.mark.asyncio
async def test_stream_delimited():
    server, client, accepted = await accept_one()
    async with server:
        await client.send(b'{"method":"ping"}')
        await client.send(b'{"method":"pong"}')
        assert await accepted.receive() == b'{"method":"ping"}'
        assert await accepted.receive() == b'{"method":"pong"}'
        with pytest.raises(TransportError):
            await client.send(b'line one\nline two')
        assert client.remote_addr.startswith('127.0.0.1:')
        client.close()
        with pytest.raises(ConnectionClosed):
            await asyncio.wait_for(accepted.receive(), 1)
        with pytest.raises(ConnectionClosed):
            await client.send(b'{}')
        accepted.close()


@pytest.mark.asyncio
async def test_stream_blank_lines_skipped():
    server, client, accepted = await accept_one()
    async with server:
        client.writer.write(b'\n\n{"method":"ping"}\n')
        await client.writer.drain()
        assert await accepted.receive() == b'{"method":"ping"}'
        client.close()
        accepted.close()


@pytest.mark.asyncio
async def test_stream_length_prefixed():
    server, client, accepted = await accept_one(delimited=False)
    async with server:
        payload = bytes(range(256)) + b'\n'
        await client.send(payload)
        await client.send(b'')
        assert await accepted.receive() == payload
        assert await accepted.receive() == b''
        client.writer.write(struct.pack('!I', 10) + b'short')
        client.close()
        with pytest.raises(ConnectionClosed):
            await asyncio.wait_for(accepted.receive(), 1)
        accepted.close()


@pytest.mark.asyncio
async def test_stream_connect_refused():
    server = await asyncio.start_server(lambda reader, writer: None, '127.0.0.1', 0)
    (host, port, *_), = [sock.getsockname() for sock in server.sockets]
    server.close()
    await server.wait_closed()
    with pytest.raises(TransportError):
        await StreamTransport.connect(host, port)


@pytest.mark.asyncio
@pytest.mark.parametrize('delimited,codec', [(True, None), (False, CBORCodec())])
async def test_serve(delimited, codec):
    options = {'codec': codec} if codec else {}
    template = Dnode(MemoryTransport(), **options)

    async def echo(text, reply):
        await reply(text, text.upper())

    template.handle_func('echo', echo)
    server = await serve(template, '127.0.0.1', 0, delimited=delimited)
    (host, port, *_), = [sock.getsockname() for sock in server.sockets]
    async with server:
        clients = []
        for _ in range(2):
            transport = await StreamTransport.connect(host, port, delimited=delimited)
            clients.append(Dnode(transport, **options))
        replies = asyncio.Queue()
        tasks = [asyncio.create_task(client.run()) for client in clients]
        try:
            for i, client in enumerate(clients):
                await client.call('echo', f'hi {i}', lambda *reply: replies.put_nowait(reply))
                assert await asyncio.wait_for(replies.get(), 1) == (f'hi {i}', f'HI {i}')
        finally:
            for client in clients:
                client.transport.close()
            for task in tasks:
                with pytest.raises(TransportError):
                    await asyncio.wait_for(task, 1)
    assert len(template.callbacks) == 0


@pytest.mark.asyncio
async def test_socket_pair():
    address = 'inproc://dnode-test-pair'
    server = SocketTransport(address=address, bind=True, options={zmq.RCVTIMEO: 1000})
    client = SocketTransport(address=address, options={zmq.SNDTIMEO: 1000})
    async with server, client:
        assert client.remote_addr == address
        await client.send(b'{"method":"ping"}')
        assert await server.receive() == b'{"method":"ping"}'
        await server.send(b'{"method":0}')
        assert await client.receive() == b'{"method":0}'
    assert server.closed and client.closed
    with pytest.raises(ConnectionClosed):
        await server.receive()
    with pytest.raises(ConnectionClosed):
        await client.send(b'{}')


@pytest.mark.asyncio
async def test_socket_timeout():
    transport = SocketTransport(
        address='inproc://dnode-test-timeout',
        bind=True,
        options={zmq.RCVTIMEO: 50},
    )
    async with transport:
        with pytest.raises(TransportError):
            await transport.receive()


@pytest.mark.asyncio
async def test_socket_open_error():
    transport = SocketTransport(address='not-an-endpoint', bind=True)
    with pytest.raises(TransportError):
        await transport.open()
    assert transport.closed
