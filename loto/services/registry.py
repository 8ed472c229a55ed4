import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """A reliable, ordered, bidirectional message channel to one peer."""

    id: str

    def send(self, message: dict) -> None: ...


@dataclass
class PeerClient:
    channel: Channel
    joined_at: int
    open: bool = False
    name: str = ''

    def to_dict(self):
        return {'id': self.channel.id, 'name': self.name, 'joined_at': self.joined_at, 'open': self.open}


class PeerRegistry:
    """Live peer channels, keyed by channel id.

    A channel is first ``connect``-ed (transport up, handshake pending) and
    becomes open on ``join``. Only open channels receive broadcasts.
    """

    def __init__(self):
        self._peers: Dict[str, PeerClient] = {}
        self._clock = itertools.count(1)

    def __len__(self):
        return len(self._peers)

    def __contains__(self, channel_id: str) -> bool:
        return channel_id in self._peers

    def get(self, channel_id: str) -> Optional[PeerClient]:
        return self._peers.get(channel_id)

    def connect(self, channel: Channel) -> PeerClient:
        peer = self._peers.get(channel.id)
        if peer is None:
            peer = PeerClient(channel=channel, joined_at=next(self._clock))
            self._peers[channel.id] = peer
        return peer

    def join(self, channel: Channel, name: str = '') -> PeerClient:
        """Mark a channel open. Joining twice keeps the original entry."""
        peer = self.connect(channel)
        if not peer.open:
            peer.open = True
            peer.joined_at = next(self._clock)
            logger.info(f"[peer-join] channel={channel.id} name={name!r} peers={len(self.open_channels())}")
        if name:
            peer.name = name
        return peer

    def leave(self, channel: Union[Channel, str]) -> Optional[PeerClient]:
        """Remove a channel. Unknown or never-opened channels are absorbed quietly."""
        channel_id = channel if isinstance(channel, str) else channel.id
        peer = self._peers.pop(channel_id, None)
        if peer is None:
            logger.debug(f"[peer-leave-ignored] channel={channel_id} unknown")
            return None
        if not peer.open:
            logger.debug(f"[peer-leave-ignored] channel={channel_id} never joined")
            return None
        logger.info(f"[peer-leave] channel={channel_id} name={peer.name!r} peers={len(self.open_channels())}")
        return peer

    def peers(self) -> list:
        return sorted((p for p in self._peers.values() if p.open), key=lambda p: p.joined_at)

    def open_channels(self) -> list:
        return [peer.channel for peer in self.peers()]
