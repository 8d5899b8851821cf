from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from .config import (
    EarconHooks,
    EarconInstrument,
    EarconOptions,
    EarconSettings,
    EndCallback,
    OptionsInput,
    coerce_options,
    is_dynamic,
    merge_options,
    unique_key,
)
from .errors import EarconError, InstrumentUnresolvedError, VoicePlayError
from .instruments import (
    Instrument,
    InstrumentRegistry,
    default_registry,
    instrument_ref,
    resolve_instrument,
)

_LOGGER = logging.getLogger("earcon.core")

_GUARD = object()


class _EpisodeLatch:
    """Countdown over the voices launched by one ``sonify`` call.

    The latch starts with one extra hold that is released after the launch
    loop, so voices ending synchronously inside ``play`` cannot open it
    before the last voice is launched.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending = 1
        self._launched = 0
        self._released: set[object] = set()
        self.last_args: tuple[Any, ...] = ()
        self.last_kwargs: dict[str, Any] = {}

    def hold(self) -> None:
        with self._lock:
            self._pending += 1
            self._launched += 1

    def release(
        self,
        key: object,
        args: tuple[Any, ...] = (),
        kwargs: dict[str, Any] | None = None,
    ) -> bool:
        """Release ``key`` once; True when this release opened the latch."""

        with self._lock:
            if key in self._released:
                return False
            self._released.add(key)
            if key is not _GUARD:
                self.last_args = args
                self.last_kwargs = dict(kwargs or {})
            self._pending -= 1
            return self._pending == 0 and self._launched > 0

    def drop(self, key: object) -> None:
        """Forget a voice that never started playing."""

        with self._lock:
            if key in self._released:
                return
            self._released.add(key)
            self._pending -= 1
            self._launched -= 1


class Earcon:
    """A named sound cue made of one or more instrument voices.

    Every ``sonify`` call launches a fresh copy of each configured
    instrument. Completion callbacks fire once the voices have ended:

    * ``join_mode="shared"`` (default) fires when ``instruments_playing``
      becomes empty. The map is shared by overlapping ``sonify`` calls, so
      an earlier call's callbacks wait for the union of voices to drain and
      can be fired by another call's last voice.
    * ``join_mode="episode"`` counts down the voices of each call on its own.

    A voice that never reports completion keeps the join from ever firing.
    """

    def __init__(
        self,
        options: OptionsInput | None = None,
        *,
        registry: InstrumentRegistry | None = None,
        hooks: EarconHooks | None = None,
        settings: EarconSettings | None = None,
    ) -> None:
        self.options: EarconOptions = coerce_options(options)
        if not self.options.id:
            self.options.id = unique_key()
        self.id: str = self.options.id
        self.registry = registry if registry is not None else default_registry()
        self.hooks = hooks or EarconHooks()
        self.settings = settings or EarconSettings.from_env()
        self.instruments_playing: dict[str, Instrument] = {}
        self._cancelled: set[str] = set()
        # Reentrant: instrument callbacks may call back into the earcon.
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return (
            f"Earcon(id={self.id!r}, instruments={len(self.options.instruments)}, "
            f"playing={len(self.instruments_playing)})"
        )

    @property
    def is_playing(self) -> bool:
        with self._lock:
            return bool(self.instruments_playing)

    def sonify(self, overrides: OptionsInput | None = None) -> None:
        """Play the earcon, optionally overriding the stored options.

        Returns immediately; unresolvable instruments are reported through
        ``hooks.on_error`` (or logged) and skipped.
        """

        self._sonify(overrides)

    async def asonify(self, overrides: OptionsInput | None = None) -> tuple[Any, ...]:
        """Play the earcon and wait for this call's completion callback.

        Resolves with the arguments of the voice completion that triggered
        it, or with ``()`` right away when nothing could be launched.
        """

        loop = asyncio.get_running_loop()
        future: asyncio.Future[tuple[Any, ...]] = loop.create_future()
        override = coerce_options(overrides) if overrides is not None else EarconOptions()
        caller_on_end = override.on_end

        def _settle(args: tuple[Any, ...]) -> None:
            if not future.done():
                future.set_result(args)

        def _on_end(*args: Any, **kwargs: Any) -> None:
            try:
                if caller_on_end is not None:
                    caller_on_end(*args, **kwargs)
            finally:
                loop.call_soon_threadsafe(_settle, args)

        fields = {name: getattr(override, name) for name in override.model_fields_set}
        fields["on_end"] = _on_end
        launched = self._sonify(EarconOptions(**fields))
        if launched == 0:
            return ()
        return await future

    def cancel_sonify(self, fade_out: bool = False) -> None:
        """Stop every voice of this earcon and reset the playing map.

        Cancelled voices may still report completion afterwards; with the
        default ``cancel_callbacks="propagate"`` that still runs the
        completion callbacks.
        """

        with self._lock:
            playing = dict(self.instruments_playing)
            if not playing:
                return
            if self.settings.cancel_callbacks == "suppress":
                self._cancelled.update(playing)
        # Unlocked: a stop may wait for a voice thread that reports back here.
        for copy_id, instrument in playing.items():
            _LOGGER.debug("Earcon %s cancelling voice %s", self.id, copy_id)
            instrument.stop(not fade_out, None, "cancelled")
        with self._lock:
            self.instruments_playing.clear()
        if self.hooks.on_cancel is not None:
            self.hooks.on_cancel(list(playing))

    def _sonify(self, overrides: OptionsInput | None) -> int:
        override_options = coerce_options(overrides) if overrides is not None else None
        merged = merge_options(self.options, override_options)

        master_volume = 1.0 if merged.volume is None else merged.volume
        master_pan = merged.pan
        episode_on_end = override_options.on_end if override_options is not None else None
        master_on_end = self.options.on_end
        latch = _EpisodeLatch() if self.settings.join_mode == "episode" else None

        launched = 0
        try:
            for index, pair in enumerate(merged.instruments):
                if self._launch(
                    index,
                    pair,
                    master_volume=master_volume,
                    master_pan=master_pan,
                    callbacks=(episode_on_end, master_on_end),
                    latch=latch,
                ):
                    launched += 1
        finally:
            _LOGGER.debug("Earcon %s launched %d voice(s)", self.id, launched)
            if latch is not None and latch.release(_GUARD):
                self._finish(
                    (episode_on_end, master_on_end), latch.last_args, latch.last_kwargs
                )
        return launched

    def _launch(
        self,
        index: int,
        pair: EarconInstrument,
        *,
        master_volume: float,
        master_pan: float | None,
        callbacks: tuple[EndCallback | None, EndCallback | None],
        latch: _EpisodeLatch | None,
    ) -> bool:
        instrument = resolve_instrument(instrument_ref(pair.instrument), self.registry)
        if instrument is None:
            self._report(InstrumentUnresolvedError(pair.instrument, index, "not found in registry"))
            return False
        if pair.play_options is None:
            self._report(InstrumentUnresolvedError(pair.instrument, index, "missing play options"))
            return False

        play_options = pair.play_options
        update: dict[str, Any] = {}
        # Master volume scales static volumes; callables are left to the instrument.
        if not is_dynamic(play_options.volume):
            own_volume = 1.0 if play_options.volume is None else play_options.volume
            update["volume"] = master_volume * own_volume
        if master_pan is not None:
            update["pan"] = master_pan

        voice = instrument.copy()
        copy_id = voice.id
        instrument_on_end = play_options.on_end

        def _on_end(*args: Any, **kwargs: Any) -> None:
            self._voice_ended(copy_id, instrument_on_end, callbacks, latch, args, kwargs)

        update["on_end"] = _on_end
        voice_options = play_options.model_copy(update=update)

        with self._lock:
            self.instruments_playing[copy_id] = voice
        if latch is not None:
            latch.hold()
        try:
            if self.hooks.on_voice_start is not None:
                self.hooks.on_voice_start(copy_id, voice)
        except Exception:
            self._drop(copy_id, latch)
            raise
        try:
            voice.play(voice_options)
        except Exception as exc:
            self._drop(copy_id, latch)
            error = VoicePlayError(pair.instrument, index, copy_id)
            error.__cause__ = exc
            self._report(error)
            return False
        return True

    def _drop(self, copy_id: str, latch: _EpisodeLatch | None) -> None:
        with self._lock:
            self.instruments_playing.pop(copy_id, None)
        if latch is not None:
            latch.drop(copy_id)

    def _voice_ended(
        self,
        copy_id: str,
        instrument_on_end: EndCallback | None,
        callbacks: tuple[EndCallback | None, EndCallback | None],
        latch: _EpisodeLatch | None,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        with self._lock:
            if copy_id in self._cancelled:
                self._cancelled.discard(copy_id)
                _LOGGER.debug("Earcon %s ignoring end of cancelled voice %s", self.id, copy_id)
                return
            self.instruments_playing.pop(copy_id, None)
            if latch is None:
                drained = not self.instruments_playing
            else:
                drained = latch.release(copy_id, args, kwargs)

        _LOGGER.debug("Earcon %s voice %s ended", self.id, copy_id)
        if instrument_on_end is not None:
            instrument_on_end(*args, **kwargs)
        if self.hooks.on_voice_end is not None:
            self.hooks.on_voice_end(copy_id)
        if drained:
            self._finish(callbacks, args, kwargs)

    def _finish(
        self,
        callbacks: tuple[EndCallback | None, EndCallback | None],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        _LOGGER.debug("Earcon %s finished", self.id)
        for callback in callbacks:
            if callback is not None:
                callback(*args, **kwargs)

    def _report(self, error: EarconError) -> None:
        if self.hooks.on_error is not None:
            self.hooks.on_error(error)
            return
        cause = error.__cause__
        if cause is None:
            _LOGGER.warning("Earcon %s: %s", self.id, error)
            return
        _LOGGER.warning("Earcon %s: %s: %s", self.id, error, cause)
        _LOGGER.debug("Earcon %s: traceback of %s", self.id, type(cause).__name__, exc_info=cause)
