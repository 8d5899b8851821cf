from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any, Callable

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict

from .errors import PlaybackError

_LOGGER = logging.getLogger("earcon.playback")

FloatArray = NDArray[np.float32]
CHANNELS = 2


class PlaybackBackend(BaseModel):
    """Audio sink for one voice.

    ``play_stream`` blocks until the chunk iterator is exhausted; chunks are
    ``(frames, 2)`` float32 arrays.
    """

    name: str
    play_stream: Callable[[Iterable[FloatArray], int], None]

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


def _to_frames(chunk: FloatArray) -> FloatArray:
    frames: FloatArray = np.asarray(chunk, dtype=np.float32)
    if frames.ndim == 1:
        frames = np.repeat(frames.reshape(-1, 1), CHANNELS, axis=1)
    return np.ascontiguousarray(np.clip(frames, -1.0, 1.0))


def _load_sounddevice() -> PlaybackBackend | None:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        return None
    sd: Any = sd_module

    def _play_stream(chunks: Iterable[FloatArray], sample_rate: int) -> None:
        # One stream per voice so overlapping voices mix in the host mixer.
        with sd.OutputStream(
            samplerate=sample_rate,
            channels=CHANNELS,
            dtype="float32",
        ) as stream:
            for chunk in chunks:
                stream.write(_to_frames(chunk))

    return PlaybackBackend(name="sounddevice", play_stream=_play_stream)


def _load_simpleaudio() -> PlaybackBackend | None:
    try:
        import simpleaudio as sa_module  # type: ignore[import]
    except ImportError as exc:
        _LOGGER.info("simpleaudio not available: %s", exc, exc_info=True)
        return None
    sa: Any = sa_module

    def _play_stream(chunks: Iterable[FloatArray], sample_rate: int) -> None:
        # simpleaudio has no streaming API; a stop request only takes effect
        # while the buffer is still being assembled.
        buffered = [_to_frames(chunk) for chunk in chunks]
        if not buffered:
            return
        audio = (np.concatenate(buffered) * 32_767).astype(np.int16)
        play = sa.play_buffer(audio, CHANNELS, 2, sample_rate)
        play.wait_done()

    return PlaybackBackend(name="simpleaudio", play_stream=_play_stream)


def _load_silent() -> PlaybackBackend:
    def _play_stream(chunks: Iterable[FloatArray], sample_rate: int) -> None:
        for chunk in chunks:
            time.sleep(len(chunk) / sample_rate if sample_rate > 0 else 0.0)

    return PlaybackBackend(name="silent", play_stream=_play_stream)


_LOADERS: dict[str, Callable[[], PlaybackBackend | None]] = {
    "sounddevice": _load_sounddevice,
    "simpleaudio": _load_simpleaudio,
    "silent": _load_silent,
}
_AUTO_ORDER = ("sounddevice", "simpleaudio")


def backend_names() -> list[str]:
    return list(_LOADERS)


def available_backends() -> list[str]:
    return [name for name, loader in _LOADERS.items() if loader() is not None]


def resolve_backend(name: str | None = None) -> PlaybackBackend:
    if name is not None:
        loader = _LOADERS.get(name)
        if loader is None:
            raise PlaybackError(f"Unknown playback backend {name!r}; choose from {backend_names()}")
        backend = loader()
        if backend is None:
            raise PlaybackError(f"Playback backend {name!r} is not installed.")
        return backend

    for candidate in _AUTO_ORDER:
        backend = _LOADERS[candidate]()
        if backend is not None:
            return backend
    raise PlaybackError(
        "Playback requires sounddevice or simpleaudio. "
        "Install one of them, or use the 'silent' backend."
    )
