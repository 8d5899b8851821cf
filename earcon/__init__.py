from __future__ import annotations

from .config import (
    EarconHooks,
    EarconInstrument,
    EarconOptions,
    EarconSettings,
    PlayOptions,
    merge_options,
    unique_key,
)
from .core import Earcon
from .errors import (
    INSTRUMENT_UNRESOLVED,
    EarconError,
    InstrumentUnresolvedError,
    InvalidConfigError,
    PlaybackError,
    VoicePlayError,
)
from .instruments import (
    Instrument,
    InstrumentInstance,
    InstrumentRegistry,
    NamedInstrument,
    default_registry,
)
from .logging_utils import configure_logging as _configure_logging
from .playback import PlaybackBackend, available_backends, resolve_backend
from .synth import SynthInstrument, builtin_instruments

__all__ = [
    "INSTRUMENT_UNRESOLVED",
    "Earcon",
    "EarconError",
    "EarconHooks",
    "EarconInstrument",
    "EarconOptions",
    "EarconSettings",
    "Instrument",
    "InstrumentInstance",
    "InstrumentRegistry",
    "InstrumentUnresolvedError",
    "InvalidConfigError",
    "NamedInstrument",
    "PlayOptions",
    "PlaybackBackend",
    "PlaybackError",
    "SynthInstrument",
    "VoicePlayError",
    "available_backends",
    "builtin_instruments",
    "default_registry",
    "merge_options",
    "resolve_backend",
    "unique_key",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
