import concurrent.futures

import pytest

from dnode.exception import HandlerRegistrationError
from dnode.registry import CallbackRegistry, HandlerRegistry


def test_handler_register():
    handlers = HandlerRegistry()
    handlers.register('ping', print)
    assert 'ping' in handlers
    assert handlers.get('ping') is print
    assert handlers.get('pong') is None
    assert list(handlers) == ['ping']
    assert len(handlers) == 1


@pytest.mark.parametrize('name,handler', [
    ('', print),
    (None, print),
    (1, print),
    ('ping', None),
    ('ping', 'not callable'),
])
def test_handler_register_invalid(name, handler):
    handlers = HandlerRegistry()
    with pytest.raises(HandlerRegistrationError):
        handlers.register(name, handler)
    assert len(handlers) == 0


def test_handler_register_duplicate():
    handlers = HandlerRegistry()
    handlers.register('ping', print)
    with pytest.raises(HandlerRegistrationError) as excinfo:
        handlers.register('ping', len)
    assert excinfo.value.context == {'method': 'ping'}
    assert handlers.get('ping') is print


def test_callback_ids_monotonic():
    callbacks = CallbackRegistry()
    first, second = callbacks.register(print), callbacks.register(len)
    assert (first, second) == (0, 1)
    callbacks.remove(first)
    assert first not in callbacks
    assert callbacks.get(first) is None
    assert callbacks.register(print) == 2
    assert callbacks.get(second) is len
    assert len(callbacks) == 2


def test_callback_remove_idempotent():
    callbacks = CallbackRegistry()
    callback_id = callbacks.register(print)
    callbacks.remove(callback_id)
    callbacks.remove(callback_id)
    callbacks.remove(100)
    assert len(callbacks) == 0
    assert callbacks.seq == 1


def test_callback_register_concurrent():
    callbacks = CallbackRegistry()
    workers, per_worker = 8, 250

    def register_many():
        return [callbacks.register(lambda: None) for _ in range(per_worker)]

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(register_many) for _ in range(workers)]
        ids = [callback_id for future in futures for callback_id in future.result()]
    assert sorted(ids) == list(range(workers * per_worker))
    assert len(callbacks) == callbacks.seq == workers * per_worker
