"""Wire messages exchanged between the host and its peers.

Every message is a JSON object with a ``type`` discriminator, emitted on the
Socket.IO event ``protocol`` in namespace ``/ws``. Payload keys are camelCase
on the wire and snake_case once loaded.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional, Union

from marshmallow import EXCLUDE, Schema, fields, validate, validates_schema
from marshmallow import ValidationError as MarshmallowValidationError

from loto.errors import ValidationError
from .registry import Channel, PeerClient, PeerRegistry

logger = logging.getLogger(__name__)

NAMESPACE = '/ws'
EVENT = 'protocol'

SYNC_STATE = 'SyncState'
CALL_NUMBER = 'CallNumber'
RESET_GAME = 'ResetGame'
ANNOUNCEMENT = 'Announcement'
CHAT_MESSAGE = 'ChatMessage'


def _number():
    return fields.Integer(validate=validate.Range(min=1, max=90))


class _MessageSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    type = fields.String(required=True)


class _HistoryMixin:
    @validates_schema
    def _validate_history(self, data, **kwargs):  # type: ignore[no-untyped-def]
        history = data.get('history') or []
        if len(history) != len(set(history)):
            raise MarshmallowValidationError({'history': ['Numbers must be unique']})
        number = data.get('number')
        if number is not None and (not history or history[-1] != number):
            raise MarshmallowValidationError({'number': ['Must be the last number in history']})


class SyncStateSchema(_HistoryMixin, _MessageSchema):
    history = fields.List(_number(), required=True)
    current_number = fields.Integer(data_key='currentNumber', allow_none=True, load_default=None,
                                    validate=validate.Range(min=1, max=90))
    current_announcement = fields.String(data_key='currentAnnouncement', load_default='')


class CallNumberSchema(_HistoryMixin, _MessageSchema):
    number = fields.Integer(allow_none=True, required=True, validate=validate.Range(min=1, max=90))
    announcement = fields.String(load_default='')
    history = fields.List(_number(), required=True)


class ResetGameSchema(_MessageSchema):
    pass


class AnnouncementSchema(_MessageSchema):
    number = fields.Integer(required=True, validate=validate.Range(min=1, max=90))
    announcement = fields.String(required=True)


class ChatMessageSchema(_MessageSchema):
    id = fields.String(required=True, validate=validate.Length(min=1, max=64))
    sender = fields.String(required=True, validate=validate.Length(max=64))
    text = fields.String(required=True)
    is_system = fields.Boolean(data_key='isSystem', load_default=False)


SCHEMAS: dict[str, Schema] = {
    SYNC_STATE: SyncStateSchema(),
    CALL_NUMBER: CallNumberSchema(),
    RESET_GAME: ResetGameSchema(),
    ANNOUNCEMENT: AnnouncementSchema(),
    CHAT_MESSAGE: ChatMessageSchema(),
}


def parse_message(payload: Any) -> dict:
    """Validate an inbound wire message and return it with snake_case keys."""
    if not isinstance(payload, dict):
        raise ValidationError("Message must be an object")
    schema = SCHEMAS.get(payload.get('type'))
    if schema is None:
        raise ValidationError("Unknown message type", details={'type': payload.get('type')})
    try:
        return schema.load(payload)
    except MarshmallowValidationError as exc:
        raise ValidationError("Invalid message", details=exc.messages) from exc


# ---- Builders: callers pass the state as it is at send time ----

def sync_state(snapshot) -> dict:
    return SCHEMAS[SYNC_STATE].dump({
        'type': SYNC_STATE,
        'history': list(snapshot.called_numbers),
        'current_number': snapshot.current_number,
        'current_announcement': snapshot.current_announcement,
    })


def call_number(number: Optional[int], announcement: str, history: Iterable[int]) -> dict:
    return SCHEMAS[CALL_NUMBER].dump({
        'type': CALL_NUMBER,
        'number': number,
        'announcement': announcement,
        'history': list(history),
    })


def reset_game() -> dict:
    return {'type': RESET_GAME}


def announcement(number: int, text: str) -> dict:
    return SCHEMAS[ANNOUNCEMENT].dump({'type': ANNOUNCEMENT, 'number': number, 'announcement': text})


def chat_message(message) -> dict:
    return SCHEMAS[CHAT_MESSAGE].dump({
        'type': CHAT_MESSAGE,
        'id': message.id,
        'sender': message.sender,
        'text': message.text,
        'is_system': message.is_system,
    })


MessageOrFactory = Union[dict, Callable[[], dict]]


class Broadcaster:
    """Fan messages out to every open peer channel.

    Each channel is an independent sink: a failed write drops that peer from
    the registry and delivery continues to the rest. Messages may be passed as
    zero-argument factories, which are called at send time so the payload
    reflects current state rather than the state when the send was requested.
    """

    def __init__(self, registry: PeerRegistry, on_drop: Optional[Callable[[PeerClient], None]] = None):
        self.registry = registry
        self.on_drop = on_drop

    @staticmethod
    def _resolve(message: MessageOrFactory) -> dict:
        return message() if callable(message) else message

    def _write(self, channel: Channel, message: dict) -> bool:
        try:
            channel.send(message)
            return True
        except Exception as exc:
            logger.warning(f"[send-failed] channel={channel.id} type={message.get('type')} error={exc!r}")
            return False

    def _drop(self, channels: list[Channel]) -> None:
        for channel in channels:
            peer = self.registry.leave(channel)
            if peer is not None and self.on_drop is not None:
                self.on_drop(peer)

    def send(self, channel: Channel, message: MessageOrFactory) -> bool:
        """Send to one channel. A failed write counts as that peer leaving."""
        payload = self._resolve(message)
        if self._write(channel, payload):
            return True
        self._drop([channel])
        return False

    def broadcast(self, message: MessageOrFactory, exclude: Optional[Channel] = None) -> int:
        """Deliver to every open channel except ``exclude``. Returns the delivery count."""
        payload = self._resolve(message)
        excluded_id = exclude.id if exclude is not None else None
        delivered = 0
        failed: list[Channel] = []
        for channel in self.registry.open_channels():
            if channel.id == excluded_id:
                continue
            if self._write(channel, payload):
                delivered += 1
            else:
                failed.append(channel)
        logger.debug(f"[broadcast] type={payload.get('type')} delivered={delivered} failed={len(failed)}")
        # Drop after the loop so leave notices never interleave with this message
        self._drop(failed)
        return delivered
