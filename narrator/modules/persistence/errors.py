from __future__ import annotations

from narrator.errors import NarratorError


class PersistenceError(NarratorError):
    """Raised when saved games, progress or shards cannot be read or written."""


PERSISTENCE_SAVE = "PERSISTENCE_SAVE"
PERSISTENCE_LOAD = "PERSISTENCE_LOAD"
BOON_REJECTED = "BOON_REJECTED"
