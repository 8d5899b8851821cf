from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterator
from typing import Literal, get_args

import numpy as np
from numpy.typing import NDArray

from .config import DynamicValue, EarconSettings, PlayOptions, unique_key
from .errors import InvalidConfigError
from .logging_utils import log_failure
from .playback import CHANNELS, FloatArray, PlaybackBackend, resolve_backend

_LOGGER = logging.getLogger("earcon.synth")

Waveform = Literal["sine", "triangle", "square", "sawtooth", "noise"]

# Dynamic frequency/volume callables are sampled at this rate and interpolated.
_CONTROL_RATE = 100.0
_RAMP_SECONDS = 0.005
_CHUNK_FRAMES = 1024
_A4 = 440.0


def _control_curve(
    value: float | DynamicValue,
    *,
    duration: float,
    frames: int,
    sample_rate: int,
) -> NDArray[np.float64]:
    if not callable(value):
        return np.full(frames, float(value), dtype=np.float64)
    control_times = np.arange(0.0, duration + 1.0 / _CONTROL_RATE, 1.0 / _CONTROL_RATE)
    control = np.array([float(value(float(t))) for t in control_times], dtype=np.float64)
    sample_times = np.arange(frames, dtype=np.float64) / sample_rate
    return np.interp(sample_times, control_times, control)


def snap_to_semitone(frequency: NDArray[np.float64]) -> NDArray[np.float64]:
    """Round frequencies to the nearest equal-tempered semitone (A4 = 440 Hz)."""

    safe = np.maximum(frequency, 1e-6)
    return _A4 * 2.0 ** (np.round(12.0 * np.log2(safe / _A4)) / 12.0)


def oscillate(
    waveform: Waveform,
    phase: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    match waveform:
        case "sine":
            return np.sin(phase)
        case "square":
            return np.where(np.sin(phase) >= 0.0, 1.0, -1.0)
        case "sawtooth":
            return 2.0 * np.mod(phase / (2.0 * math.pi), 1.0) - 1.0
        case "triangle":
            saw = 2.0 * np.mod(phase / (2.0 * math.pi), 1.0) - 1.0
            return 2.0 * np.abs(saw) - 1.0
        case "noise":
            return rng.uniform(-1.0, 1.0, size=phase.shape)
        case _:
            raise InvalidConfigError(f"Unknown waveform: {waveform!r}")


def pan_gains(pan: float | None) -> tuple[float, float]:
    """Constant-power left/right gains; ``None`` means centered."""

    position = 0.0 if pan is None else max(-1.0, min(1.0, float(pan)))
    angle = (position + 1.0) * math.pi / 4.0
    return math.cos(angle), math.sin(angle)


class SynthInstrument:
    """Oscillator instrument that renders with numpy and streams to a backend.

    Each ``play`` runs on its own daemon thread and reports completion by
    calling ``options.on_end(reason)`` with ``"ended"``, the stop reason, or
    ``"error"`` when the backend failed.
    """

    def __init__(
        self,
        waveform: Waveform = "sine",
        *,
        musical: bool = False,
        backend: PlaybackBackend | str | None = None,
        sample_rate: int = 44_100,
        fade_duration: float = 0.1,
        seed: int | None = None,
        id: str | None = None,
    ) -> None:
        if waveform not in get_args(Waveform):
            raise InvalidConfigError(f"Unknown waveform: {waveform!r}")
        if sample_rate <= 0:
            raise InvalidConfigError("sample_rate must be positive")
        self.id = id or unique_key()
        self.waveform: Waveform = waveform
        self.musical = musical
        self.sample_rate = sample_rate
        self.fade_duration = fade_duration
        self.seed = seed
        self._backend = backend
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_immediate = False
        self._fade_frames: int | None = None
        self._stop_reason: str | None = None

    def __repr__(self) -> str:
        return f"SynthInstrument(id={self.id!r}, waveform={self.waveform!r}, musical={self.musical})"

    @property
    def is_playing(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def copy(self) -> SynthInstrument:
        return SynthInstrument(
            self.waveform,
            musical=self.musical,
            backend=self._backend,
            sample_rate=self.sample_rate,
            fade_duration=self.fade_duration,
            seed=self.seed,
        )

    def render(self, options: PlayOptions) -> FloatArray:
        sample_rate = self.sample_rate
        frames = max(0, int(round(options.duration * sample_rate)))
        if frames == 0:
            return np.zeros((0, CHANNELS), dtype=np.float32)

        frequency = _control_curve(
            options.frequency, duration=options.duration, frames=frames, sample_rate=sample_rate
        )
        low = options.min_frequency if options.min_frequency is not None else 0.0
        high = options.max_frequency if options.max_frequency is not None else sample_rate / 2.0
        frequency = np.clip(frequency, low, high)
        if self.musical:
            frequency = snap_to_semitone(frequency)

        phase = np.cumsum(2.0 * math.pi * frequency / sample_rate)
        rng = np.random.default_rng(self.seed)
        signal = oscillate(self.waveform, phase, rng)

        volume_value = 1.0 if options.volume is None else options.volume
        volume = _control_curve(
            volume_value, duration=options.duration, frames=frames, sample_rate=sample_rate
        )
        signal = signal * np.clip(volume, 0.0, 1.0)

        ramp = min(int(_RAMP_SECONDS * sample_rate), frames // 2)
        if ramp > 0:
            signal[:ramp] *= np.linspace(0.0, 1.0, ramp)
            signal[-ramp:] *= np.linspace(1.0, 0.0, ramp)

        left, right = pan_gains(options.pan)
        stereo = np.stack([signal * left, signal * right], axis=1)
        return stereo.astype(np.float32)

    def play(self, options: PlayOptions) -> None:
        if self.is_playing:
            self.stop(immediate=True, reason="restarted")
            self.wait()
        samples = self.render(options)
        with self._lock:
            self._stop_immediate = False
            self._fade_frames = None
            self._stop_reason = None
        thread = threading.Thread(
            target=self._run,
            args=(samples, options),
            name=f"earcon-voice-{self.id}",
            daemon=True,
        )
        self._thread = thread
        _LOGGER.debug("Voice %s starting (%d frames)", self.id, len(samples))
        thread.start()

    def stop(
        self,
        immediate: bool = True,
        fade_duration: float | None = None,
        reason: str = "stopped",
    ) -> None:
        with self._lock:
            self._stop_reason = reason
            if immediate:
                self._stop_immediate = True
            elif self._fade_frames is None:
                seconds = self.fade_duration if fade_duration is None else fade_duration
                self._fade_frames = max(1, int(seconds * self.sample_rate))
        _LOGGER.debug("Voice %s stop requested (%s, immediate=%s)", self.id, reason, immediate)

    def wait(self, timeout: float | None = None) -> bool:
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _resolve_backend(self) -> PlaybackBackend:
        if isinstance(self._backend, PlaybackBackend):
            return self._backend
        return resolve_backend(self._backend)

    def _chunks(self, samples: FloatArray) -> Iterator[FloatArray]:
        position = 0
        fade_total: int | None = None
        fade_left = 0
        while position < len(samples):
            with self._lock:
                if self._stop_immediate:
                    return
                if fade_total is None and self._fade_frames is not None:
                    fade_total = self._fade_frames
                    fade_left = fade_total
            chunk = samples[position : position + _CHUNK_FRAMES].copy()
            position += len(chunk)
            if fade_total is not None:
                count = min(len(chunk), fade_left)
                start = fade_left / fade_total
                gains = np.linspace(start, start - count / fade_total, count, endpoint=False)
                chunk = chunk[:count] * gains.reshape(-1, 1).astype(np.float32)
                fade_left -= count
                yield chunk
                if fade_left <= 0:
                    return
                continue
            yield chunk

    def _run(self, samples: FloatArray, options: PlayOptions) -> None:
        reason = "ended"
        try:
            # Resolved per voice so a missing device ends the voice with "error".
            backend = self._resolve_backend()
            _LOGGER.debug("Voice %s streaming to %s", self.id, backend.name)
            backend.play_stream(self._chunks(samples), self.sample_rate)
        except Exception as exc:
            reason = "error"
            log_failure(_LOGGER, f"Voice {self.id} playback", exc)
        with self._lock:
            if reason == "ended" and self._stop_reason is not None:
                reason = self._stop_reason
        _LOGGER.debug("Voice %s finished (%s)", self.id, reason)
        if options.on_end is not None:
            options.on_end(reason)


def builtin_instruments(settings: EarconSettings | None = None) -> dict[str, SynthInstrument]:
    """The stock oscillators plus semitone-snapped ``*Musical`` variants."""

    resolved = settings or EarconSettings.from_env()

    def _make(waveform: Waveform, musical: bool = False) -> SynthInstrument:
        return SynthInstrument(
            waveform,
            musical=musical,
            backend=resolved.backend,
            sample_rate=resolved.sample_rate,
            fade_duration=resolved.fade_duration,
        )

    instruments: dict[str, SynthInstrument] = {}
    waveforms: tuple[Waveform, ...] = ("sine", "triangle", "square", "sawtooth")
    for waveform in waveforms:
        instruments[waveform] = _make(waveform)
        instruments[f"{waveform}Musical"] = _make(waveform, musical=True)
    instruments["noise"] = _make("noise")
    return instruments
