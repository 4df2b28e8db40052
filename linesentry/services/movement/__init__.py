"""Movement detection for LineSentry."""

from linesentry.services.movement.detector import (
    Movement,
    MovementDetector,
    PeerMove,
    SignalContext,
    build_context,
    compute_movement,
)

__all__ = [
    "Movement",
    "MovementDetector",
    "PeerMove",
    "SignalContext",
    "build_context",
    "compute_movement",
]
