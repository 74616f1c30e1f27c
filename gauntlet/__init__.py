"""gauntlet: two-party ledger sessions over a shared, seeded obstacle course."""

from gauntlet.config import Settings, load_settings
from gauntlet.ledger import RpcLedger
from gauntlet.service import GameClient
from gauntlet.track import TrackLayout, generate_track

__version__ = "0.1.0"

__all__ = [
    "GameClient",
    "RpcLedger",
    "Settings",
    "TrackLayout",
    "generate_track",
    "load_settings",
]
