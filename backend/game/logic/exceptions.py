"""Typed domain exceptions for game rule violations.

All precondition violations use subclasses of GameRuleError rather than
raw ValueError. This enables consistent catch-and-convert at the session
boundary (SessionManager) while the broad fatal-error containment there
still handles anything unexpected.
"""


class GameRuleError(Exception):
    """Base exception for game rule violations.

    Raised by the lifecycle service when a command violates the game rules
    or the session is in the wrong phase. The message is user-facing and is
    sent back to the caller verbatim. No state is mutated.
    """


class SessionNotFoundError(GameRuleError):
    """Session code or player could not be resolved."""


class PlayerNotFoundError(SessionNotFoundError):
    """Player id (or the caller's connection) is not part of the session."""


class GameAlreadyStartedError(GameRuleError):
    """Join or start attempted after the game left the waiting state."""


class GameFullError(GameRuleError):
    """Join attempted on a session that already seats the maximum players."""


class NotEnoughPlayersError(GameRuleError):
    """Start attempted with fewer than the minimum number of players."""


class GameNotInProgressError(GameRuleError):
    """Turn command attempted while the game is not being played."""


class NotYourTurnError(GameRuleError):
    """Turn command issued by a player who does not hold the turn."""


class AlreadyDrewError(GameRuleError):
    """Second draw attempted in the same turn."""


class MustDrawFirstError(GameRuleError):
    """Drop attempted before drawing."""


class TileNotInRackError(GameRuleError):
    """Dropped tile id is not in the caller's rack."""


class NoTileAvailableError(GameRuleError):
    """The left-hand neighbor has no dropped tile to take."""


class SkipTurnRejectedError(GameRuleError):
    """Turn skip requested while the current player is still within grace."""


class AlreadyInGameError(GameRuleError):
    """Join attempted by a connection that already holds a seat in the session."""


class ServerAtCapacityError(GameRuleError):
    """Create attempted while the server already hosts the maximum number of games."""


class StaleSessionError(Exception):
    """Raised by a SessionStore when a compare-and-swap write loses a race.

    Not a GameRuleError: it signals a storage-level conflict and is reported
    to the caller as a generic failure.
    """

    def __init__(self, code: str, expected_version: int | None, actual_version: int | None) -> None:
        self.code = code
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"stale write for session {code}: expected version {expected_version}, found {actual_version}",
        )
