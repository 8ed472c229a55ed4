import logging

from flask import request
from flask_socketio import emit

from loto import get_session, socketio
from loto.errors import LotoError
from loto.services.protocol import EVENT, NAMESPACE

logger = logging.getLogger(__name__)


class SocketIOChannel:
    """One connected peer socket, addressed by its Socket.IO session id."""

    def __init__(self, sid: str, namespace: str = NAMESPACE):
        self.id = sid
        self.namespace = namespace

    def send(self, message: dict) -> None:
        # Use socketio.emit since this may be called from a background task
        socketio.emit(EVENT, message, to=self.id, namespace=self.namespace)

    def __repr__(self):
        return f"SocketIOChannel({self.id!r})"


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _current_channel() -> SocketIOChannel:
    return SocketIOChannel(_get_sid(), request.namespace or NAMESPACE)  # type: ignore


def _reply_error(exc: LotoError) -> None:
    emit('error', {'code': exc.code, 'message': exc.message, 'details': exc.details})


def handle_connect(auth=None):
    get_session().connect(_current_channel())
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    # Sockets that never joined are absorbed by the registry
    get_session().leave(_get_sid())


def handle_join_session(data):
    data = data or {}
    session = get_session()
    try:
        peer = session.join(_current_channel(), data.get('name') or '', code=data.get('session_code'))
    except LotoError as exc:
        _reply_error(exc)
        return
    emit('joined', {'session_code': session.code, 'name': peer.name})


def handle_leave_session(data=None):
    get_session().leave(_get_sid())
    emit('left', {'session_code': get_session().code})


def handle_protocol_message(data):
    try:
        get_session().receive(_current_channel(), data)
    except LotoError as exc:
        logger.info(f"[message-rejected] sid={_get_sid()} code={exc.code}")
        _reply_error(exc)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_session', handle_join_session, namespace=namespace)
        socketio.on_event('leave_session', handle_leave_session, namespace=namespace)
        socketio.on_event(EVENT, handle_protocol_message, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
