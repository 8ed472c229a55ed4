import pytest

from loto.errors import ValidationError
from loto.services import protocol
from loto.services.game import GameSnapshot, Status
from loto.services.registry import PeerRegistry


def _joined(registry, *channels):
    for channel in channels:
        registry.join(channel)


def test_parse_sync_state_to_snake_case():
    loaded = protocol.parse_message({
        'type': 'SyncState', 'history': [7, 52], 'currentNumber': 52, 'currentAnnouncement': 'hi',
    })
    assert loaded == {'type': 'SyncState', 'history': [7, 52], 'current_number': 52, 'current_announcement': 'hi'}


def test_sync_state_builder_uses_camel_case():
    snap = GameSnapshot(called_numbers=(7, 52, 81), current_number=81, current_announcement='x',
                        status=Status.STOPPED)
    assert protocol.sync_state(snap) == {
        'type': 'SyncState', 'history': [7, 52, 81], 'currentNumber': 81, 'currentAnnouncement': 'x',
    }


def test_chat_message_keys():
    loaded = protocol.parse_message({'type': 'ChatMessage', 'id': 'm1', 'sender': 'Ann', 'text': 'hi',
                                     'isSystem': True})
    assert loaded['is_system'] is True


@pytest.mark.parametrize('payload', [
    None,
    [],
    {'type': 'Nope'},
    {'type': 'CallNumber', 'number': 91, 'history': [91]},
    {'type': 'CallNumber', 'number': 7, 'history': [7, 7]},
    {'type': 'CallNumber', 'number': 7, 'history': [8]},
    {'type': 'SyncState'},
    {'type': 'ChatMessage', 'id': 'x', 'sender': 'Ann'},
])
def test_parse_rejects_bad_messages(payload):
    with pytest.raises(ValidationError):
        protocol.parse_message(payload)


def test_terminal_call_has_no_number():
    message = protocol.call_number(None, 'done', list(range(1, 91)))
    assert protocol.parse_message(message)['number'] is None


def test_broadcast_reaches_every_open_channel(make_channel):
    registry = PeerRegistry()
    a, b = make_channel('a'), make_channel('b')
    _joined(registry, a, b)
    registry.connect(make_channel('pending'))

    delivered = protocol.Broadcaster(registry).broadcast(protocol.reset_game())

    assert delivered == 2
    assert a.sent == b.sent == [{'type': 'ResetGame'}]


def test_broadcast_excludes_origin(make_channel):
    registry = PeerRegistry()
    a, b, c = make_channel('a'), make_channel('b'), make_channel('c')
    _joined(registry, a, b, c)

    protocol.Broadcaster(registry).broadcast({'type': 'ResetGame'}, exclude=b)

    assert b.sent == []
    assert len(a.sent) == len(c.sent) == 1


def test_failed_channel_is_dropped_and_others_still_deliver(make_channel):
    registry = PeerRegistry()
    a, broken, c = make_channel('a'), make_channel('x', fail=True), make_channel('c')
    _joined(registry, a, broken, c)
    dropped = []

    broadcaster = protocol.Broadcaster(registry, on_drop=dropped.append)
    delivered = broadcaster.broadcast(protocol.reset_game())

    assert delivered == 2
    assert a.sent == c.sent == [{'type': 'ResetGame'}]
    assert [p.channel.id for p in dropped] == ['x']
    assert registry.open_channels() == [a, c]


def test_leave_notice_comes_after_the_message(make_channel):
    registry = PeerRegistry()
    a, broken, c = make_channel('a'), make_channel('x', fail=True), make_channel('c')
    _joined(registry, a, broken, c)
    broadcaster = None

    def on_drop(peer):
        broadcaster.broadcast({'type': 'ResetGame', 'note': 'left'})

    broadcaster = protocol.Broadcaster(registry, on_drop=on_drop)
    broadcaster.broadcast({'type': 'ResetGame'})

    assert a.sent == c.sent == [{'type': 'ResetGame'}, {'type': 'ResetGame', 'note': 'left'}]


def test_factories_are_read_at_send_time(make_channel):
    registry = PeerRegistry()
    a = make_channel('a')
    registry.join(a)
    state = {'n': 1}
    broadcaster = protocol.Broadcaster(registry)

    factory = lambda: {'type': 'SyncState', 'history': list(range(1, state['n'] + 1))}
    state['n'] = 3
    broadcaster.send(a, factory)

    assert a.sent == [{'type': 'SyncState', 'history': [1, 2, 3]}]


def test_send_failure_counts_as_leave(make_channel):
    registry = PeerRegistry()
    broken = make_channel('x', fail=True)
    registry.join(broken)

    assert protocol.Broadcaster(registry).send(broken, protocol.reset_game()) is False
    assert registry.open_channels() == []
