"""Error taxonomy for game sessions.

Catalog errors are terminal for a session. Asset errors are local to one
image. Score errors only ever affect persistence, never gameplay.
"""


class GameError(Exception):
    """Base class for every error raised by the game services."""


class CatalogUnavailable(GameError):
    """The catalog store could not be reached or queried."""


class CatalogEmpty(GameError):
    """No matching firm, active game, or playable content."""


class AssetLoadFailed(GameError):
    """An image resource failed to render; retryable."""


class ScoreLookupFailed(GameError):
    """Existing score records could not be fetched."""


class ScoreWriteFailed(GameError):
    """Deleting superseded records or creating the new one failed."""
