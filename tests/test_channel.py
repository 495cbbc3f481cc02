import pytest
import threading
import time

from roomchat import channel
from roomchat.context import Cancelled, Context


def test_fifo():

    queue = channel.Queue(8)

    for number in range(5):
        queue.put(number)

    assert len(queue) == 5
    assert [queue.get() for number in range(5)] == [0, 1, 2, 3, 4]


def test_invalid_capacity():

    with pytest.raises(ValueError):
        channel.Queue(0)


def test_unbounded():

    queue = channel.Queue()

    for number in range(1000):
        queue.put(number)

    assert queue.full() == False
    assert len(queue) == 1000


def test_get_nowait():

    queue = channel.Queue(2)

    with pytest.raises(channel.Empty):
        queue.get_nowait()

    queue.put('a')
    assert queue.get_nowait() == 'a'


def test_get_timeout():

    queue = channel.Queue(2)

    with pytest.raises(channel.Empty):
        queue.get(timeout=0.01)


def test_put_timeout():

    queue = channel.Queue(1)
    queue.put('a')

    with pytest.raises(channel.Full):
        queue.put('b', timeout=0.01)

    assert queue.get() == 'a'


def test_backpressure():

    queue = channel.Queue(128)

    for number in range(128):
        queue.put(number)

    assert queue.full() == True

    finished = threading.Event()

    def producer():
        queue.put(128)
        finished.set()

    thread = threading.Thread(target=producer)
    thread.daemon = True
    thread.start()

    # The producer stays blocked until room is made; nothing is dropped.

    assert finished.wait(0.1) == False
    assert len(queue) == 128

    assert queue.get() == 0
    assert finished.wait(2) == True
    thread.join(2)

    received = [queue.get_nowait() for number in range(128)]
    assert received == list(range(1, 129))


def test_close_drains_first():

    queue = channel.Queue(4)
    queue.put('a')
    queue.put('b')

    assert queue.close() == True
    assert queue.close() == False
    assert queue.closed == True

    with pytest.raises(channel.Closed):
        queue.put('c')

    assert queue.get() == 'a'
    assert queue.get_nowait() == 'b'

    with pytest.raises(channel.Closed):
        queue.get()

    with pytest.raises(channel.Closed):
        queue.get_nowait()


def test_close_releases_blocked_get():

    queue = channel.Queue(4)
    errors = list()

    def consumer():
        try:
            queue.get()
        except channel.Closed as e:
            errors.append(e)

    thread = threading.Thread(target=consumer)
    thread.start()

    time.sleep(0.05)
    queue.close()
    thread.join(2)

    assert thread.is_alive() == False
    assert len(errors) == 1


def test_close_releases_blocked_put():

    queue = channel.Queue(1)
    queue.put('a')
    errors = list()

    def producer():
        try:
            queue.put('b')
        except channel.Closed as e:
            errors.append(e)

    thread = threading.Thread(target=producer)
    thread.start()

    time.sleep(0.05)
    queue.close()
    thread.join(2)

    assert len(errors) == 1
    assert queue.get() == 'a'


def test_cancel_releases_blocked_calls():

    context = Context()
    full = channel.Queue(1)
    full.put('a')
    empty = channel.Queue(1)
    errors = list()

    def producer():
        try:
            full.put('b', context)
        except Cancelled as e:
            errors.append(e)

    def consumer():
        try:
            empty.get(context)
        except Cancelled as e:
            errors.append(e)

    threads = (threading.Thread(target=producer), threading.Thread(target=consumer))
    for thread in threads:
        thread.start()

    time.sleep(0.05)
    context.cancel()

    for thread in threads:
        thread.join(2)
        assert thread.is_alive() == False

    assert len(errors) == 2
    assert len(full) == 1


def test_cancelled_context_raises_immediately():

    context = Context()
    context.cancel()
    queue = channel.Queue(1)

    with pytest.raises(Cancelled):
        queue.put('a', context)

    with pytest.raises(Cancelled):
        queue.get(context)


def test_watch():

    queue = channel.Queue(4)
    event = threading.Event()

    queue.watch(event)
    assert event.is_set() == False

    queue.put('a')
    assert event.is_set() == True

    event.clear()
    queue.get()
    assert event.is_set() == False

    queue.close()
    assert event.is_set() == True

    queue.unwatch(event)
    queue.unwatch(event)


def test_watch_sees_earlier_items():

    queue = channel.Queue(4)
    queue.put('a')

    event = threading.Event()
    queue.watch(event)
    assert event.is_set() == True


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
