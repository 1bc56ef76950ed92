import asyncio
import contextlib
from typing import Any

import orjson as json

from .. import log
from ..dnode import Dnode
from ..exception import TransportError
from ..transport import StreamTransport


async def main(options: dict[str, Any]) -> bool:
    logger = log.get_logger().bind()
    host, port = options['address']
    codec = options['codec']
    try:
        transport = await StreamTransport.connect(host, port, delimited=codec.name == 'json')
    except TransportError as exc:
        await logger.error('Unable to connect', exc_info=exc)
        return False
    node = Dnode(transport, codec=codec, logger=logger.bind(remote_addr=transport.remote_addr))
    replies: asyncio.Queue[list[Any]] = asyncio.Queue()
    args = list(options['arguments'])
    if options['wait_callback']:
        args.append(lambda *reply: replies.put_nowait(list(reply)))
    run_task = asyncio.create_task(node.run(), name='dnode-run')
    try:
        await node.call(options['method'], *args)
        await logger.info('Remote call sent', method=options['method'])
        if options['wait_callback']:
            reply = await asyncio.wait_for(replies.get(), options['timeout'])
            print(json.dumps(reply, default=repr).decode())
        return True
    except asyncio.TimeoutError:
        await logger.error('Timed out waiting for callback', timeout=options['timeout'])
    except TransportError as exc:
        await logger.error('Remote call failed', exc_info=exc)
    finally:
        run_task.cancel()
        transport.close()
        with contextlib.suppress(asyncio.CancelledError, TransportError):
            await run_task
    return False
