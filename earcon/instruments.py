from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .config import PlayOptions

_LOGGER = logging.getLogger("earcon.instruments")


@runtime_checkable
class Instrument(Protocol):
    """Anything an Earcon can play.

    ``copy`` must return an independently playable instance with a fresh
    ``id``; earcons never play the template instance itself.
    """

    id: str

    def play(self, options: PlayOptions) -> None:
        ...

    def stop(
        self,
        immediate: bool = True,
        fade_duration: float | None = None,
        reason: str = "stopped",
    ) -> None:
        ...

    def copy(self) -> Instrument:
        ...


@dataclass(frozen=True, slots=True)
class NamedInstrument:
    name: str


@dataclass(frozen=True, slots=True)
class InstrumentInstance:
    instrument: Instrument


InstrumentRef = NamedInstrument | InstrumentInstance


def instrument_ref(value: str | Instrument) -> InstrumentRef:
    if isinstance(value, str):
        return NamedInstrument(value)
    return InstrumentInstance(value)


class InstrumentRegistry:
    """Name to instrument lookup. Missing names resolve to ``None``."""

    def __init__(self, instruments: Iterable[tuple[str, Instrument]] = ()) -> None:
        self._instruments: dict[str, Instrument] = {}
        self._lock = threading.Lock()
        for name, instrument in instruments:
            self.register(name, instrument)

    def register(self, name: str, instrument: Instrument) -> None:
        key = str(name).strip()
        with self._lock:
            if key in self._instruments:
                _LOGGER.debug("Replacing registered instrument %r", key)
            self._instruments[key] = instrument

    def unregister(self, name: str) -> Instrument | None:
        with self._lock:
            return self._instruments.pop(str(name).strip(), None)

    def get(self, name: str) -> Instrument | None:
        with self._lock:
            return self._instruments.get(str(name).strip())

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._instruments)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._instruments)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())


def resolve_instrument(ref: InstrumentRef, registry: InstrumentRegistry) -> Instrument | None:
    match ref:
        case NamedInstrument(name=name):
            return registry.get(name)
        case InstrumentInstance(instrument=instrument):
            return instrument


_DEFAULT_REGISTRY: InstrumentRegistry | None = None


def default_registry() -> InstrumentRegistry:
    """Shared registry of the built-in oscillator instruments."""

    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        from .synth import builtin_instruments

        _DEFAULT_REGISTRY = InstrumentRegistry(builtin_instruments().items())
    return _DEFAULT_REGISTRY
