import time

from flask import Blueprint, current_app, jsonify, request
from marshmallow import Schema, fields
from marshmallow import ValidationError as MarshmallowValidationError

from loto import get_session
from loto.errors import LotoError, RejectedError, ValidationError
from loto.services.game import Status

session_api = Blueprint('session_api', __name__)

_last_controller_action: dict[str, float] = {}


class AutoStartSchema(Schema):
    interval_ms = fields.Integer(required=False, load_default=None, allow_none=True)


class ChatSchema(Schema):
    sender = fields.String(required=False, load_default='Host')
    text = fields.String(required=True)


_auto_start_schema = AutoStartSchema()
_chat_schema = ChatSchema()


@session_api.errorhandler(LotoError)
def _handle_loto_error(exc: LotoError):
    return jsonify({'error': exc.to_dict()}), exc.status_code


@session_api.errorhandler(MarshmallowValidationError)
def _handle_schema_error(exc: MarshmallowValidationError):
    wrapped = ValidationError(details=exc.messages)
    return jsonify({'error': wrapped.to_dict()}), wrapped.status_code


def _debounced(action: str) -> bool:
    try:
        debounce_ms = int(current_app.config.get('CONTROLLER_DEBOUNCE_MS', 0))
    except (TypeError, ValueError):
        debounce_ms = 0
    if debounce_ms <= 0:
        return False
    now = time.time() * 1000.0
    last = _last_controller_action.get(action, 0)
    if now - last < debounce_ms:
        return True
    _last_controller_action[action] = now
    return False


@session_api.route('/state', methods=['GET'])
def get_state():
    return jsonify(get_session().state())


@session_api.route('/peers', methods=['GET'])
def get_peers():
    return jsonify(get_session().peers())


@session_api.route('/chat', methods=['GET'])
def get_chat():
    return jsonify(get_session().chat_messages())


@session_api.route('/draw', methods=['POST'])
def draw():
    """Call the next number by hand."""
    if _debounced('draw'):
        return jsonify({'message': 'debounced'}), 202
    session = get_session()
    number = session.draw()
    if number is None:
        raise RejectedError('All numbers have been called', code='exhausted')
    payload = session.state()
    payload['number'] = number
    return jsonify(payload)


@session_api.route('/auto/start', methods=['POST'])
def start_automatic():
    data = _auto_start_schema.load(request.get_json(silent=True) or {})
    interval_ms = data.get('interval_ms')
    if interval_ms is not None:
        lo = int(current_app.config.get('AUTO_DRAW_MIN_MS', 2000))
        hi = int(current_app.config.get('AUTO_DRAW_MAX_MS', 10000))
        if not lo <= interval_ms <= hi:
            raise ValidationError(details={'interval_ms': [f'Must be between {lo} and {hi}']})
    session = get_session()
    called_before = len(session.state()['called_numbers'])
    started = session.start_automatic(interval_ms)
    state = session.state()
    # The immediate draw may take the last number; that call still succeeded
    drew = len(state['called_numbers']) > called_before
    if not started and not drew and state['status'] == Status.EXHAUSTED.value:
        raise RejectedError('All numbers have been called', code='exhausted')
    # Idempotent start: already running returns the current state
    return jsonify(state)


@session_api.route('/auto/stop', methods=['POST'])
def stop_automatic():
    session = get_session()
    session.stop_automatic()
    return jsonify(session.state())


@session_api.route('/reset', methods=['POST'])
def reset():
    session = get_session()
    session.reset()
    return jsonify(session.state())


@session_api.route('/chat', methods=['POST'])
def post_chat():
    data = _chat_schema.load(request.get_json(silent=True) or {})
    message = get_session().say(data['sender'], data['text'])
    return jsonify(message.to_dict()), 201
