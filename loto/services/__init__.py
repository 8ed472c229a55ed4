"""Session services: ticket layout, win checks, the draw state machine and
the host-side synchronization protocol.

These modules hold the game mechanics and the fan-out rules. Socket.IO
handlers and HTTP routes import them, keeping transport concerns separated
from the session itself.
"""
