from __future__ import annotations

from collections.abc import Iterable

import numpy as np
import pytest

from earcon import (
    Earcon,
    EarconHooks,
    EarconSettings,
    Instrument,
    InstrumentRegistry,
    PlaybackBackend,
    PlayOptions,
    SynthInstrument,
)
from earcon import playback
from earcon.errors import InvalidConfigError
from earcon.synth import builtin_instruments, oscillate, pan_gains, snap_to_semitone

SAMPLE_RATE = 8_000


class RecordingBackend:
    def __init__(self) -> None:
        self.chunks: list[np.ndarray] = []
        self.on_chunk = None

    def play_stream(self, chunks: Iterable[np.ndarray], sample_rate: int) -> None:
        assert sample_rate == SAMPLE_RATE
        for index, chunk in enumerate(chunks):
            self.chunks.append(chunk)
            if self.on_chunk is not None:
                self.on_chunk(index)

    def backend(self) -> PlaybackBackend:
        return PlaybackBackend(name="recording", play_stream=self.play_stream)

    @property
    def frames(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)


def _synth(backend: RecordingBackend | None = None, **kwargs: object) -> SynthInstrument:
    return SynthInstrument(
        backend=backend.backend() if backend is not None else "silent",
        sample_rate=SAMPLE_RATE,
        **kwargs,  # type: ignore[arg-type]
    )


def test_synth_satisfies_instrument_protocol() -> None:
    assert isinstance(_synth(), Instrument)


def test_copy_has_fresh_identity_and_same_configuration() -> None:
    synth = _synth(waveform="square", musical=True, seed=3)
    clone = synth.copy()
    assert clone.id != synth.id
    assert (clone.waveform, clone.musical, clone.sample_rate, clone.seed) == ("square", True, SAMPLE_RATE, 3)


def test_render_shape_and_range() -> None:
    samples = _synth().render(PlayOptions(frequency=440.0, duration=0.25))
    assert samples.shape == (2_000, 2)
    assert samples.dtype == np.float32
    assert float(np.max(np.abs(samples))) <= 1.0


def test_render_zero_duration_is_empty() -> None:
    assert _synth().render(PlayOptions(duration=0.0)).shape == (0, 2)


def test_render_hard_left_pan_silences_right_channel() -> None:
    samples = _synth().render(PlayOptions(duration=0.1, pan=-1.0))
    assert float(np.max(np.abs(samples[:, 1]))) < 1e-6
    assert float(np.max(np.abs(samples[:, 0]))) > 0.5


def test_render_scales_by_volume() -> None:
    loud = _synth().render(PlayOptions(duration=0.1, volume=1.0))
    quiet = _synth().render(PlayOptions(duration=0.1, volume=0.25))
    assert np.allclose(quiet, loud * 0.25, atol=1e-6)


def test_render_evaluates_dynamic_volume() -> None:
    samples = _synth().render(PlayOptions(duration=0.5, volume=lambda t: 0.0 if t < 0.25 else 1.0))
    assert float(np.max(np.abs(samples[:1_000]))) < 0.05
    assert float(np.max(np.abs(samples[3_000:]))) > 0.5


def test_snap_to_semitone() -> None:
    snapped = snap_to_semitone(np.array([440.0, 450.0, 460.0]))
    assert snapped[0] == pytest.approx(440.0)
    assert snapped[1] == pytest.approx(440.0)
    assert snapped[2] == pytest.approx(466.1638, rel=1e-4)


@pytest.mark.parametrize("waveform", ["sine", "triangle", "square", "sawtooth", "noise"])
def test_oscillators_stay_in_range(waveform: str) -> None:
    phase = np.linspace(0.0, 8.0 * np.pi, 512)
    signal = oscillate(waveform, phase, np.random.default_rng(0))  # type: ignore[arg-type]
    assert signal.shape == phase.shape
    assert float(np.max(np.abs(signal))) <= 1.0


def test_pan_gains_are_constant_power() -> None:
    for pan in (-1.0, -0.3, 0.0, 0.6, 1.0, None):
        left, right = pan_gains(pan)
        assert left**2 + right**2 == pytest.approx(1.0)


def test_unknown_waveform_rejected() -> None:
    with pytest.raises(InvalidConfigError):
        SynthInstrument("organ")  # type: ignore[arg-type]


def test_play_streams_all_frames_then_reports_end() -> None:
    recording = RecordingBackend()
    ended: list[str] = []
    synth = _synth(recording)
    synth.play(PlayOptions(duration=0.5, on_end=ended.append))
    assert synth.wait(timeout=5.0)
    assert recording.frames == 4_000
    assert ended == ["ended"]


def test_immediate_stop_cuts_after_current_chunk() -> None:
    recording = RecordingBackend()
    ended: list[str] = []
    synth = _synth(recording)
    recording.on_chunk = lambda index: synth.stop(True, None, "cancelled") if index == 0 else None
    synth.play(PlayOptions(duration=1.0, on_end=ended.append))
    assert synth.wait(timeout=5.0)
    assert recording.frames == 1_024
    assert ended == ["cancelled"]


def test_graceful_stop_fades_out() -> None:
    recording = RecordingBackend()
    ended: list[str] = []
    synth = _synth(recording)
    recording.on_chunk = lambda index: synth.stop(False, 0.01, "faded") if index == 0 else None
    synth.play(PlayOptions(duration=1.0, on_end=ended.append))
    assert synth.wait(timeout=5.0)
    assert recording.frames == 1_024 + 80
    fade = recording.chunks[-1]
    assert float(np.max(np.abs(fade[-10:]))) < float(np.max(np.abs(recording.chunks[0])))
    assert ended == ["faded"]


def test_backend_failure_still_reports_end() -> None:
    def _broken(chunks: Iterable[np.ndarray], sample_rate: int) -> None:
        raise RuntimeError("device unplugged")

    ended: list[str] = []
    synth = SynthInstrument(
        backend=PlaybackBackend(name="broken", play_stream=_broken), sample_rate=SAMPLE_RATE
    )
    synth.play(PlayOptions(duration=0.1, on_end=ended.append))
    assert synth.wait(timeout=5.0)
    assert ended == ["error"]


def test_builtin_instruments() -> None:
    instruments = builtin_instruments(EarconSettings(backend="silent", sample_rate=SAMPLE_RATE))
    assert set(instruments) == {
        "sine",
        "sineMusical",
        "triangle",
        "triangleMusical",
        "square",
        "squareMusical",
        "sawtooth",
        "sawtoothMusical",
        "noise",
    }
    assert instruments["squareMusical"].musical is True
    assert instruments["noise"].sample_rate == SAMPLE_RATE


def test_earcon_plays_synth_voices_to_completion() -> None:
    recording = RecordingBackend()
    voices: list[SynthInstrument] = []
    finished: list[tuple[object, ...]] = []
    registry = InstrumentRegistry([("beep", _synth(recording))])
    earcon = Earcon(
        {
            "instruments": [
                {"instrument": "beep", "play_options": {"frequency": 660.0, "duration": 0.2}},
                {"instrument": "beep", "play_options": {"frequency": 880.0, "duration": 0.1}},
            ],
            "on_end": lambda *args: finished.append(args),
        },
        registry=registry,
        hooks=EarconHooks(on_voice_start=lambda _id, voice: voices.append(voice)),  # type: ignore[arg-type]
        settings=EarconSettings(join_mode="episode"),
    )

    earcon.sonify()

    assert len(voices) == 2
    assert all(voice.wait(timeout=5.0) for voice in voices)
    assert finished == [("ended",)]
    assert earcon.instruments_playing == {}
    assert recording.frames == 1_600 + 800


def test_builtin_voices_without_audio_device_end_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(playback._LOADERS, "sounddevice", lambda: None)
    monkeypatch.setitem(playback._LOADERS, "simpleaudio", lambda: None)
    settings = EarconSettings(sample_rate=SAMPLE_RATE, join_mode="episode")
    voices: list[SynthInstrument] = []
    finished: list[tuple[object, ...]] = []
    earcon = Earcon(
        {
            "instruments": [
                {"instrument": "sine", "play_options": {"duration": 0.1}},
                {"instrument": "triangle", "play_options": {"duration": 0.1}},
            ],
            "on_end": lambda *args: finished.append(args),
        },
        registry=InstrumentRegistry(builtin_instruments(settings).items()),
        hooks=EarconHooks(on_voice_start=lambda _id, voice: voices.append(voice)),  # type: ignore[arg-type]
        settings=settings,
    )

    earcon.sonify()

    assert len(voices) == 2
    assert all(voice.wait(timeout=5.0) for voice in voices)
    assert finished == [("error",)]
    assert earcon.instruments_playing == {}
