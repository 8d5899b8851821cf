from __future__ import annotations

import time

import numpy as np
import pytest

import earcon.playback as playback
from earcon.errors import PlaybackError


def test_resolve_named_silent_backend() -> None:
    backend = playback.resolve_backend("silent")
    assert backend.name == "silent"


def test_silent_backend_paces_chunks() -> None:
    backend = playback.resolve_backend("silent")
    chunks = [np.zeros((100, 2), dtype=np.float32) for _ in range(3)]
    start = time.monotonic()
    backend.play_stream(chunks, 10_000)
    assert time.monotonic() - start >= 0.025


def test_unknown_backend_rejected() -> None:
    with pytest.raises(PlaybackError, match="Unknown playback backend"):
        playback.resolve_backend("wavetable")


def test_missing_named_backend_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(playback._LOADERS, "sounddevice", lambda: None)
    with pytest.raises(PlaybackError, match="not installed"):
        playback.resolve_backend("sounddevice")


def test_auto_resolution_requires_a_real_device(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(playback._LOADERS, "sounddevice", lambda: None)
    monkeypatch.setitem(playback._LOADERS, "simpleaudio", lambda: None)
    with pytest.raises(PlaybackError):
        playback.resolve_backend()
    assert playback.available_backends() == ["silent"]


def test_auto_resolution_prefers_sounddevice(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = playback.PlaybackBackend(name="sounddevice", play_stream=lambda chunks, sr: None)
    monkeypatch.setitem(playback._LOADERS, "sounddevice", lambda: fake)
    assert playback.resolve_backend() is fake


def test_mono_chunks_are_spread_to_stereo() -> None:
    frames = playback._to_frames(np.array([0.5, -2.0], dtype=np.float32))
    assert frames.shape == (2, 2)
    assert np.allclose(frames[:, 0], [0.5, -1.0])
    assert frames.flags["C_CONTIGUOUS"]
