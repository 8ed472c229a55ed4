import pytest

from loto.errors import RejectedError, SessionMismatchError, ValidationError
from loto.services import protocol
from loto.services.chat import new_message


def _chat_texts(channel):
    return [m['text'] for m in channel.sent if m['type'] == 'ChatMessage']


def test_late_joiner_gets_one_snapshot(host, make_channel):
    for _ in range(5):
        host.draw()
    late = make_channel('late')
    host.join(late, 'Late')

    snapshots = [m for m in late.sent if m['type'] == 'SyncState']
    assert len(snapshots) == 1
    assert snapshots[0]['history'] == host.game.called_numbers
    assert snapshots[0]['currentNumber'] == host.game.called_numbers[-1]
    assert late.sent[0]['type'] == 'SyncState'


def test_snapshot_goes_only_to_the_joiner(host, make_channel):
    first, second = make_channel('a'), make_channel('b')
    host.join(first, 'Alice')
    host.draw()
    host.join(second, 'Bob')

    assert 'SyncState' not in first.types()[1:]
    assert first.types() == ['SyncState', 'ChatMessage', 'CallNumber', 'ChatMessage']
    assert _chat_texts(first)[-1] == 'Bob joined'


def test_join_with_wrong_code_is_refused(host, make_channel):
    channel = make_channel('a')
    with pytest.raises(SessionMismatchError):
        host.join(channel, 'Alice', code='ZZZ999')
    assert channel.sent == []
    assert host.peers() == []


def test_join_code_is_case_insensitive(host, make_channel):
    channel = make_channel('a')
    peer = host.join(channel, 'Alice', code='abc123')
    assert peer.open


def test_rejoin_sends_a_fresh_snapshot_without_a_second_notice(host, make_channel):
    channel = make_channel('a')
    host.join(channel, 'Alice')
    host.draw()
    host.join(channel, 'Alice')

    assert channel.types().count('SyncState') == 2
    assert _chat_texts(channel).count('Alice joined') == 1
    assert len(host.peers()) == 1


def test_unnamed_peer_is_a_guest(host, make_channel):
    assert host.join(make_channel('a'), '   ').name == 'Guest'


def test_every_peer_sees_draws_in_the_same_order(host, make_channel):
    channels = [make_channel(name) for name in ('a', 'b', 'c')]
    for channel in channels:
        host.join(channel, channel.id)
    for _ in range(10):
        host.draw()

    sequences = [[m['number'] for m in ch.sent if m['type'] == 'CallNumber'] for ch in channels]
    assert sequences[0] == sequences[1] == sequences[2] == host.game.called_numbers


def test_failed_peer_is_dropped_and_announced(host, make_channel):
    alice, bob = make_channel('a'), make_channel('b')
    host.join(alice, 'Alice')
    host.join(bob, 'Bob')
    bob.fail = True

    host.draw()

    assert alice.types()[-2:] == ['CallNumber', 'ChatMessage']
    assert _chat_texts(alice)[-1] == 'Bob left'
    assert [p['id'] for p in host.peers()] == ['a']


def test_leave_is_announced_once(host, make_channel):
    alice, bob = make_channel('a'), make_channel('b')
    host.join(alice, 'Alice')
    host.join(bob, 'Bob')

    assert host.leave('b') is not None
    assert host.leave('b') is None
    assert _chat_texts(alice).count('Bob left') == 1


def test_disconnect_before_join_is_absorbed(host, make_channel):
    alice, stranger = make_channel('a'), make_channel('s')
    host.join(alice, 'Alice')
    host.connect(stranger)

    assert host.leave('s') is None
    assert not any('left' in text for text in _chat_texts(alice))


def test_peer_chat_is_relayed_to_the_others(host, make_channel):
    alice, bob, carol = make_channel('a'), make_channel('b'), make_channel('c')
    for channel, name in ((alice, 'Alice'), (bob, 'Bob'), (carol, 'Carol')):
        host.join(channel, name)
    bob_before = len(bob.sent)
    payload = protocol.chat_message(new_message('Bob', 'hi all'))

    host.receive(bob, payload)
    host.receive(bob, payload)

    assert alice.sent[-1] == payload
    assert carol.sent[-1] == payload
    assert _chat_texts(alice).count('hi all') == 1
    assert len(bob.sent) == bob_before
    assert [m['text'] for m in host.chat_messages()].count('hi all') == 1


def test_peers_cannot_drive_the_game(host, make_channel):
    alice = make_channel('a')
    host.join(alice, 'Alice')
    with pytest.raises(RejectedError) as excinfo:
        host.receive(alice, protocol.call_number(7, 'x', [7]))
    assert excinfo.value.code == 'not_host'
    assert host.game.called_numbers == []


def test_chat_before_join_is_refused(host, make_channel):
    stranger = make_channel('s')
    host.connect(stranger)
    with pytest.raises(RejectedError) as excinfo:
        host.receive(stranger, protocol.chat_message(new_message('S', 'hello')))
    assert excinfo.value.code == 'not_joined'


def test_malformed_message_is_refused(host, make_channel):
    alice = make_channel('a')
    host.join(alice, 'Alice')
    with pytest.raises(ValidationError):
        host.receive(alice, {'type': 'ChatMessage'})


def test_reset_reaches_every_peer(host, make_channel):
    alice = make_channel('a')
    host.join(alice, 'Alice')
    host.draw()
    host.reset()

    assert alice.sent[-1] == {'type': 'ResetGame'}
    assert host.state()['called_numbers'] == []
    assert host.state()['status'] == 'idle'


def test_host_chat(host, make_channel):
    alice = make_channel('a')
    host.join(alice, 'Alice')
    message = host.say('Host', 'welcome')

    assert alice.sent[-1] == protocol.chat_message(message)
    with pytest.raises(ValidationError):
        host.say('  ', 'hello')


def test_session_starts_with_a_welcome_line(host):
    [welcome] = host.chat_messages()
    assert welcome['is_system']
    assert 'ABC123' in welcome['text']


def test_state(host, make_channel):
    host.join(make_channel('a'), 'Alice')
    number = host.draw()
    state = host.state()

    assert state['session_code'] == 'ABC123'
    assert state['current_number'] == number
    assert state['current_announcement'] == f"Number {number}!"
    assert state['remaining'] == 89
    assert state['peers'] == 1
    assert state['automatic'] is False
    assert state['interval_ms'] == 6000
