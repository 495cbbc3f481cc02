import io
import pytest
import threading
import time

import roomchat
from roomchat import display
from roomchat.session import Kind, Session, State
from roomchat.transport import TransportError

from fakes import Recorder, run_in_thread, wait_until


@pytest.fixture
def rooms(context, network, settings):

    alice = roomchat.join(context, network.node('QmAlicePeer0001alice1'), 'QmAlicePeer0001alice1', 'alice', 'lobby', settings)
    bob = roomchat.join(context, network.node('QmBobPeer000002bob22222'), 'QmBobPeer000002bob22222', 'bob', 'lobby', settings)

    yield alice, bob

    alice.close()
    bob.close()


class Spy:
    """ Wrap a callable, remembering the arguments of every call.
    """

    def __init__(self, method):
        self.method = method
        self.calls = list()

    def __call__(self, *args):
        self.calls.append(args)
        return self.method(*args)


def test_quit_command(rooms, monkeypatch):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder)

    publish = Spy(alice.publish)
    monkeypatch.setattr(alice, 'publish', publish)

    thread, result = run_in_thread(session)

    assert session.submit('/quit') == False
    thread.join(2)

    assert thread.is_alive() == False
    assert result['reason'] is Kind.STOPPED
    assert session.state is State.STOPPED
    assert publish.calls == []
    assert recorder.lines == []
    assert recorder.flushes == 1

    time.sleep(0.05)
    assert len(bob.messages) == 0


def test_empty_line(rooms, monkeypatch):

    alice, bob = rooms
    session = Session(alice, Recorder())

    publish = Spy(alice.publish)
    monkeypatch.setattr(alice, 'publish', publish)

    assert session.submit('') == False
    assert len(session.requests) == 0
    assert publish.calls == []


def test_send_and_echo(rooms):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder)
    thread, result = run_in_thread(session)

    assert session.submit('hi') == True

    chat = bob.messages.get(timeout=2)
    assert chat.text == 'hi'
    assert chat.sender_id == alice.self_id
    assert chat.sender_nick == 'alice'

    assert wait_until(lambda: recorder.texts() == ['<alice>: hi'])
    assert recorder.lines[0][0] == (display.SELF, '<alice>:')

    session.stop()
    thread.join(2)


def test_inbound_rendered(rooms):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder)
    thread, result = run_in_thread(session)

    bob.publish('hello')
    bob.publish('again')

    assert wait_until(lambda: recorder.texts() == ['<bob>: hello', '<bob>: again'])
    assert recorder.lines[0][0] == (display.PEER, '<bob>:')

    session.stop()
    thread.join(2)


def test_publish_failure_still_echoes(rooms, monkeypatch):

    alice, bob = rooms
    recorder = Recorder()
    errors = list()
    session = Session(alice, recorder, errors=lambda message, exception: errors.append(exception))

    error = TransportError('no route')

    def refuse(context, data):
        raise error

    monkeypatch.setattr(alice.topic, 'publish', refuse)

    thread, result = run_in_thread(session)
    session.submit('hi')

    assert wait_until(lambda: recorder.texts() == ['<alice>: hi'])
    assert errors == [error]

    # The failure does not end the session.

    bob.publish('still here')
    assert wait_until(lambda: '<bob>: still here' in recorder.texts())
    assert session.state is State.RUNNING

    session.stop()
    thread.join(2)


def test_peer_refresh(rooms, settings):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder)
    thread, result = run_in_thread(session)

    # Labels are the trailing characters of each peer id.

    assert wait_until(lambda: ['bob22222'] in recorder.labels)

    session.stop()
    thread.join(2)

    assert len(bob.self_id) > settings.label_length


def test_peer_refresh_failure(rooms, monkeypatch):

    alice, bob = rooms
    recorder = Recorder()
    errors = list()
    session = Session(alice, recorder, errors=lambda message, exception: errors.append(message))

    def refuse():
        raise TransportError('no peers')

    monkeypatch.setattr(alice, 'list_peers', refuse)

    thread, result = run_in_thread(session)
    assert wait_until(lambda: len(errors) >= 2)

    assert recorder.labels == []
    assert session.state is State.RUNNING

    session.stop()
    thread.join(2)


def test_refresh_cadence(rooms):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder, roomchat.Settings(refresh_interval=0.1))
    thread, result = run_in_thread(session)

    time.sleep(0.55)
    session.stop()
    thread.join(2)

    # A steady cadence: roughly five refreshes, never a burst.

    assert 3 <= len(recorder.labels) <= 6


def test_context_cancelled(context, rooms):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder)
    thread, result = run_in_thread(session)

    time.sleep(0.05)
    context.cancel()
    thread.join(2)

    assert thread.is_alive() == False
    assert result['reason'] is Kind.CANCELLED
    assert session.state is State.STOPPED
    assert session.requests.closed
    assert session.submit('too late') == False


def test_end_of_stream(rooms):

    alice, bob = rooms
    recorder = Recorder()

    for number in range(3):
        bob.publish(str(number))

    assert wait_until(lambda: len(alice.messages) == 3)
    alice.subscription.cancel()

    session = Session(alice, recorder)
    reason = session.run()

    # Everything queued before the stream ended is shown first.

    assert reason is Kind.END_OF_STREAM
    assert recorder.texts() == ['<bob>: 0', '<bob>: 1', '<bob>: 2']
    assert recorder.flushes == 1


def test_simultaneous_shutdown(context, rooms):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder)
    thread, result = run_in_thread(session)

    time.sleep(0.05)

    barrier = threading.Barrier(3)

    def trigger(action):
        barrier.wait()
        action()

    triggers = [
        threading.Thread(target=trigger, args=(context.cancel,)),
        threading.Thread(target=trigger, args=(session.stop,)),
        threading.Thread(target=trigger, args=(alice.subscription.cancel,)),
    ]

    for trigger_thread in triggers:
        trigger_thread.start()
    for trigger_thread in triggers:
        trigger_thread.join(2)

    thread.join(2)

    assert thread.is_alive() == False
    assert result['reason'] in (Kind.CANCELLED, Kind.STOPPED, Kind.END_OF_STREAM)
    assert session.reason is result['reason']
    assert session.state is State.STOPPED
    assert recorder.flushes == 1


def test_run_once(rooms):

    alice, bob = rooms
    session = Session(alice, Recorder())
    session.stop()

    assert session.run() is Kind.STOPPED

    with pytest.raises(RuntimeError):
        session.run()


def test_submit_before_run(rooms):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder)

    assert session.submit('early') == True

    thread, result = run_in_thread(session)

    assert bob.messages.get(timeout=2).text == 'early'

    session.stop()
    thread.join(2)


def test_inbound_flood_does_not_starve_input(rooms):

    alice, bob = rooms
    recorder = Recorder()
    session = Session(alice, recorder)

    flood = alice.settings.queue_capacity
    for number in range(flood):
        bob.publish('flood %d' % (number))

    assert wait_until(lambda: len(alice.messages) == flood)

    session.submit('mine')

    thread, result = run_in_thread(session)
    assert wait_until(lambda: len(recorder.lines) >= flood + 1, timeout=5)

    session.stop()
    thread.join(2)

    # The typed line is handled within the first rotation, not after the
    # whole backlog of inbound messages.

    texts = recorder.texts()
    assert texts.index('<alice>: mine') < 3

    assert bob.messages.get(timeout=2).text == 'mine'


def test_default_error_sink(rooms, monkeypatch, caplog):

    alice, bob = rooms
    session = Session(alice, Recorder())

    def refuse(context, data):
        raise TransportError('no route')

    monkeypatch.setattr(alice.topic, 'publish', refuse)

    with caplog.at_level('ERROR', logger='roomchat.session'):
        session.submit('hi')
        thread, result = run_in_thread(session)
        assert wait_until(lambda: 'no route' in caplog.text)

    session.stop()
    thread.join(2)


def test_stream_display():

    stream = io.StringIO()
    sink = display.StreamDisplay(stream)

    sink.append([(display.PEER, '<bob>:'), ('', ' hello')])
    sink.peers(['bob22222'])
    sink.peers(['bob22222'])
    sink.peers([])
    sink.flush()

    assert stream.getvalue() == '<bob>: hello\npeers: bob22222\npeers: \n'


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
