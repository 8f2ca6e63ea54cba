class BingoError(Exception):
    """Base class for every error raised by the bingo engine."""


class ValidationError(BingoError):
    """The event or request is malformed, or nothing on the board can use it."""


class ConcurrencyConflict(BingoError):
    """A row lock or version check failed; the unit of work may be retried."""


class ProcessingFailed(BingoError):
    """
    Raised once the retry budget for a ConcurrencyConflict is exhausted.
    The event has not been applied and is safe to redeliver.
    """

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class NotFoundError(BingoError):
    """A team, board, tile, effect or grant no longer exists."""


class InvalidStateError(BingoError):
    """The target is in a state that does not allow the operation."""


class NotificationDeliveryError(BingoError):
    """An outbound notification could not be delivered. Only ever logged."""
