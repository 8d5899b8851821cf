from __future__ import annotations

INSTRUMENT_UNRESOLVED = 30


class EarconError(Exception):
    """Base error for the earcon library."""

    code: int | None = None


class InvalidConfigError(EarconError):
    """Raised when options or settings cannot be parsed or validated."""


class PlaybackError(EarconError):
    """Raised when no audio output backend is usable."""


class InstrumentUnresolvedError(EarconError):
    """A configured pair has no usable instrument or no play options.

    Reported through the diagnostic channel during ``sonify``; never raised
    to the caller.
    """

    code = INSTRUMENT_UNRESOLVED

    def __init__(self, reference: object, index: int, reason: str) -> None:
        self.reference = reference
        self.index = index
        self.reason = reason
        super().__init__(f"[#{self.code}] instrument {reference!r} at index {index}: {reason}")


class VoicePlayError(EarconError):
    """An instrument copy raised from ``play``; the voice was dropped."""

    def __init__(self, reference: object, index: int, copy_id: str) -> None:
        self.reference = reference
        self.index = index
        self.copy_id = copy_id
        super().__init__(f"instrument {reference!r} at index {index} failed to play voice {copy_id}")
