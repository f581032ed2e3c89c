"""Exceptions raised by the scheduling core.

Storage failures are not wrapped: whatever the store raises reaches the
caller unchanged.
"""


class RepasoError(Exception):
    """Base exception for all scheduling-core errors."""


class InvalidRatingError(RepasoError, ValueError):
    """Raised when a review rating is outside Again(1)..Easy(4)."""

    def __init__(self, rating: object) -> None:
        super().__init__(f"Rating must be an integer from 1 (Again) to 4 (Easy), got {rating!r}")
        self.rating = rating


class InvalidCardStateError(RepasoError, ValueError):
    """Raised when a card state cannot be fed to the memory model."""


class UnknownSubModeError(RepasoError, ValueError):
    """Raised when an ordering request names a sub-mode that does not exist."""

    def __init__(self, sub_mode: object) -> None:
        super().__init__(f"Unknown study sub-mode: {sub_mode!r}")
        self.sub_mode = sub_mode
