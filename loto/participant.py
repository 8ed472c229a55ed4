"""The participant process: a read-only mirror of the host's game, a ticket
and a chat log, fed by the messages the host sends.

The participant never draws. Its copy of the called numbers is replaced
wholesale by ``SyncState`` and by the ``history`` carried in each
``CallNumber``.
"""

import logging
import random
from typing import Callable, Optional

import click
import socketio

from loto.services import protocol
from loto.services.chat import ChatLog, ChatMessage, new_message, system_message
from loto.services.evaluator import Verdict, evaluate
from loto.services.phrases import NEW_GAME, WIN_CRY, fixed_phrase
from loto.services.ticket import MarkResult, Ticket, generate_ticket

logger = logging.getLogger(__name__)


class GameMirror:
    """Local copy of the host's game state."""

    def __init__(self):
        self.called_numbers: list[int] = []
        self.current_number: Optional[int] = None
        self.current_announcement = ''
        self.exhausted = False

    def apply_sync(self, message: dict) -> None:
        self.called_numbers = list(message['history'])
        self.current_number = message.get('current_number')
        self.current_announcement = message.get('current_announcement') or ''
        self.exhausted = len(self.called_numbers) == 90

    def apply_call(self, message: dict) -> None:
        # The host's history is the truth; replacing rather than appending
        # repairs any message this peer missed
        self.called_numbers = list(message['history'])
        if message['number'] is not None:
            self.current_number = message['number']
        else:
            self.exhausted = True
        if message.get('announcement'):
            self.current_announcement = message['announcement']

    def apply_announcement(self, message: dict) -> None:
        if message['number'] == self.current_number:
            self.current_announcement = message['announcement']

    def apply_reset(self, announcement: str = '') -> None:
        self.called_numbers = []
        self.current_number = None
        self.current_announcement = announcement
        self.exhausted = False


class Participant:
    def __init__(self, name: str, language: str = 'vi', ticket: Optional[Ticket] = None,
                 chat_limit: int = 40, rng: Optional[random.Random] = None):
        self.name = name
        self.language = language
        self.rng = rng
        self.ticket = ticket or generate_ticket(rng)
        self.mirror = GameMirror()
        self.chat = ChatLog(chat_limit)
        self.chat.append(system_message("Chào mừng bạn đến phòng chơi!"))
        self.verdict = Verdict.NONE
        # Cells still marked from before the last reset
        self._stale_marks: set[tuple[int, int]] = set()

    def apply(self, payload) -> dict:
        """Apply one message from the host. Returns the loaded message."""
        message = protocol.parse_message(payload)
        kind = message['type']
        if kind == protocol.SYNC_STATE:
            self.mirror.apply_sync(message)
            self._expire_stale_marks()
        elif kind == protocol.CALL_NUMBER:
            self.mirror.apply_call(message)
            self._expire_stale_marks()
        elif kind == protocol.ANNOUNCEMENT:
            self.mirror.apply_announcement(message)
        elif kind == protocol.RESET_GAME:
            self.mirror.apply_reset(fixed_phrase(NEW_GAME, self.language))
            self.verdict = Verdict.NONE
            self._stale_marks = {
                (r, c) for r, row in enumerate(self.ticket) for c, cell in enumerate(row) if cell and cell.marked
            }
        elif kind == protocol.CHAT_MESSAGE:
            self.chat.append(ChatMessage.from_wire(message))
        logger.debug(f"[applied] type={kind} called={len(self.mirror.called_numbers)}")
        return message

    def _expire_stale_marks(self) -> None:
        """Clear an old-round mark once its number is called again, so the player marks it afresh."""
        called = set(self.mirror.called_numbers)
        for pos in [p for p in self._stale_marks if self.ticket.cell(*p).value in called]:
            self.ticket.cell(*pos).marked = False
            self._stale_marks.discard(pos)

    def mark(self, row: int, col: int, marked: Optional[bool] = None) -> MarkResult:
        """Toggle a cell, or set it when ``marked`` is given. Numbers the host has not called are refused."""
        result = self.ticket.mark(row, col, self.mirror.called_numbers, marked)
        if result in (MarkResult.MARKED, MarkResult.UNMARKED):
            self._check_win()
        return result

    def _check_win(self) -> None:
        verdict = evaluate(self.ticket, self.mirror.called_numbers)
        if verdict != Verdict.NONE and self.verdict == Verdict.NONE:
            self.mirror.current_announcement = WIN_CRY
            logger.info(f"[win] name={self.name!r} verdict={verdict.value}")
        self.verdict = verdict

    def new_ticket(self) -> Ticket:
        self.ticket = generate_ticket(self.rng)
        self.verdict = Verdict.NONE
        self._stale_marks = set()
        return self.ticket

    def say(self, text: str) -> dict:
        """Log a chat line locally and return the message to send to the host."""
        message = new_message(self.name, text)
        self.chat.append(message)
        return protocol.chat_message(message)


class ParticipantClient:
    """Connects a Participant to a host over Socket.IO."""

    def __init__(self, participant: Participant, session_code: str,
                 client: Optional[socketio.Client] = None,
                 on_update: Optional[Callable[[dict], None]] = None):
        self.participant = participant
        self.session_code = session_code
        self.client = client or socketio.Client(reconnection=True)
        self.on_update = on_update
        self.client.on('connect', self._on_connect, namespace=protocol.NAMESPACE)
        self.client.on(protocol.EVENT, self._on_message, namespace=protocol.NAMESPACE)
        self.client.on('joined', self._on_joined, namespace=protocol.NAMESPACE)
        self.client.on('error', self._on_error, namespace=protocol.NAMESPACE)

    def _on_connect(self):
        # Every (re)connect asks for a fresh snapshot
        self.client.emit('join_session', {'session_code': self.session_code, 'name': self.participant.name},
                         namespace=protocol.NAMESPACE)

    def _on_joined(self, data):
        logger.info(f"[joined] session={data.get('session_code')} name={data.get('name')!r}")

    def _on_error(self, data):
        logger.warning(f"[host-error] code={(data or {}).get('code')} message={(data or {}).get('message')}")

    def _on_message(self, data):
        try:
            message = self.participant.apply(data)
        except Exception:
            logger.exception("[message-dropped] could not apply host message")
            return
        if self.on_update is not None:
            self.on_update(message)

    def connect(self, url: str) -> None:
        self.client.connect(url, namespaces=[protocol.NAMESPACE])

    def send_chat(self, text: str) -> None:
        self.client.emit(protocol.EVENT, self.participant.say(text), namespace=protocol.NAMESPACE)

    def wait(self) -> None:
        self.client.wait()

    def disconnect(self) -> None:
        self.client.disconnect()


def _echo_update(participant: Participant):
    def _echo(message: dict) -> None:
        kind = message['type']
        mirror = participant.mirror
        if kind == protocol.SYNC_STATE:
            click.echo(f"synced: {len(mirror.called_numbers)} numbers called")
        elif kind == protocol.CALL_NUMBER:
            if message['number'] is None:
                click.echo(mirror.current_announcement)
            else:
                click.echo(f"[{message['number']:>2}] {mirror.current_announcement}")
                pos = participant.ticket.find(message['number'])
                if pos is not None:
                    participant.mark(*pos, marked=True)
                    click.echo(f"  on your ticket! verdict={participant.verdict.value}")
        elif kind == protocol.ANNOUNCEMENT:
            click.echo(f"     {message['announcement']}")
        elif kind == protocol.RESET_GAME:
            click.echo(mirror.current_announcement)
        elif kind == protocol.CHAT_MESSAGE:
            click.echo(f"<{message['sender']}> {message['text']}")
    return _echo


@click.command('join')
@click.argument('url')
@click.option('--code', 'session_code', required=True, help='Session code shared by the host.')
@click.option('--name', default='Guest', show_default=True)
@click.option('--language', type=click.Choice(['vi', 'en']), default='vi', show_default=True)
def join_command(url, session_code, name, language):
    """Join a host as a participant and follow the calls, marking automatically."""
    participant = Participant(name, language=language)
    for row in participant.ticket.to_rows():
        click.echo(' '.join(f"{cell['value']:>2}" if cell else ' .' for cell in row))
    client = ParticipantClient(participant, session_code, on_update=_echo_update(participant))
    client.connect(url)
    try:
        client.wait()
    except KeyboardInterrupt:
        client.disconnect()
