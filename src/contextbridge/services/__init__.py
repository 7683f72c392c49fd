"""Service layer (proposals, snapshots, commands, settings).

Only the error taxonomy is re-exported here; the editor modules import it
and the heavier services import the editor.
"""

from .errors import (
    BridgeError,
    CollaboratorFailure,
    InvalidRangeError,
    ProposalNotFoundError,
    ProtocolError,
    UnsupportedCommandError,
)

__all__ = [
    "BridgeError",
    "CollaboratorFailure",
    "InvalidRangeError",
    "ProposalNotFoundError",
    "ProtocolError",
    "UnsupportedCommandError",
]
