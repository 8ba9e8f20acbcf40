"""
Exception hierarchy for the turn engine and its collaborators.

Hierarchy:
- GameError (base, carries a stable `code`)
  - ConfigurationError (bad input; nothing was mutated)
  - InvariantViolation (programming fault; logged and propagated)
  - DependencyError (dictionary / solver trouble; callers degrade)
  - GameNotFound (store)
"""


class GameError(Exception):
    """Base exception for all game errors."""
    code: str = "GAME_ERROR"
    retryable: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_response(self) -> dict:
        return {"code": self.code, "message": self.message}


# =========================
# Configuration errors
# =========================

class ConfigurationError(GameError):
    code = "CONFIGURATION"


class EditionNotFound(ConfigurationError):
    code = "EDITION_NOT_FOUND"


class GameNotReady(ConfigurationError):
    code = "GAME_NOT_READY"


class GameFull(ConfigurationError):
    code = "GAME_FULL"


class NotEnoughPlayers(ConfigurationError):
    code = "NOT_ENOUGH_PLAYERS"


class BagExhausted(ConfigurationError):
    code = "BAG_EXHAUSTED"


class InsufficientBag(ConfigurationError):
    code = "INSUFFICIENT_BAG"


class TileNotOnRack(ConfigurationError):
    code = "TILE_NOT_ON_RACK"


class NotYourTurn(ConfigurationError):
    code = "NOT_YOUR_TURN"


class NoPreviousMove(ConfigurationError):
    code = "NO_PREVIOUS_MOVE"


class TakeBackNotAllowed(ConfigurationError):
    code = "TAKE_BACK_NOT_ALLOWED"


class GameOver(ConfigurationError):
    code = "GAME_OVER"


class GamePaused(ConfigurationError):
    code = "GAME_PAUSED"


class NextGameExists(ConfigurationError):
    code = "NEXT_GAME_EXISTS"


# =========================
# Invariant violations
# =========================

class InvariantViolation(GameError):
    code = "INVARIANT"


class PlayerNotFound(InvariantViolation):
    code = "PLAYER_NOT_FOUND"


class MultipleEmptyRacks(InvariantViolation):
    code = "MULTIPLE_EMPTY_RACKS"


# =========================
# External dependencies
# =========================

class DependencyError(GameError):
    code = "DEPENDENCY"
    retryable = True


class DictionaryUnavailable(DependencyError):
    code = "DICTIONARY_UNAVAILABLE"


class SolverError(DependencyError):
    code = "SOLVER_ERROR"


# =========================
# Store
# =========================

class GameNotFound(GameError):
    code = "GAME_NOT_FOUND"
