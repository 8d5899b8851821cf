from __future__ import annotations

import itertools
import logging
import os
import uuid
from collections.abc import Mapping
from typing import Any, Callable, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import EarconError, InvalidConfigError
from .instruments import Instrument

_LOGGER = logging.getLogger("earcon.config")

DynamicValue = Callable[[float], float]
EndCallback = Callable[..., Any]
JoinMode = Literal["shared", "episode"]
CancelCallbacks = Literal["propagate", "suppress"]

_KEY_PREFIX = f"earcon-{uuid.uuid4().hex[:7]}"
_KEY_COUNTER = itertools.count()


def unique_key() -> str:
    """Return an id that is unique for the lifetime of the process."""

    return f"{_KEY_PREFIX}-{next(_KEY_COUNTER)}"


def is_dynamic(value: object) -> bool:
    return callable(value)


class PlayOptions(BaseModel):
    """Options handed to ``Instrument.play``.

    ``frequency`` and ``volume`` may be callables of the elapsed time in
    seconds; the instrument evaluates them while rendering. Unknown keys are
    kept and passed through to the instrument.
    """

    frequency: float | DynamicValue = 440.0
    duration: float = Field(default=0.5, ge=0.0)
    min_frequency: float | None = Field(default=None, gt=0.0)
    max_frequency: float | None = Field(default=None, gt=0.0)
    volume: float | DynamicValue | None = None
    pan: float | None = Field(default=None, ge=-1.0, le=1.0)
    on_end: EndCallback | None = None

    model_config = ConfigDict(
        extra="allow",
        arbitrary_types_allowed=True,
    )


class EarconInstrument(BaseModel):
    """One (instrument, play options) pair of an earcon.

    ``instrument`` is either a registry name or an instrument instance.
    """

    instrument: str | Instrument
    play_options: PlayOptions | None = None

    model_config = ConfigDict(
        extra="forbid",
        arbitrary_types_allowed=True,
    )


class EarconOptions(BaseModel):
    id: str | None = None
    instruments: list[EarconInstrument] = Field(default_factory=list)
    volume: float | None = Field(default=None, ge=0.0, le=1.0)
    pan: float | None = Field(default=None, ge=-1.0, le=1.0)
    on_end: EndCallback | None = None

    model_config = ConfigDict(
        extra="forbid",
        arbitrary_types_allowed=True,
    )


class EarconHooks(BaseModel):
    on_voice_start: Callable[[str, Instrument], None] | None = None
    on_voice_end: Callable[[str], None] | None = None
    on_cancel: Callable[[list[str]], None] | None = None
    on_error: Callable[[EarconError], None] | None = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


class EarconSettings(BaseModel):
    """Behavioral switches for an Earcon.

    ``join_mode="shared"`` fires completion callbacks when the earcon's
    shared set of playing voices drains, which is the long-standing
    contract. ``"episode"`` counts down the voices of each ``sonify`` call
    on its own.
    """

    join_mode: JoinMode = "shared"
    cancel_callbacks: CancelCallbacks = "propagate"
    sample_rate: int = Field(default=44_100, gt=0)
    backend: str | None = None
    fade_duration: float = Field(default=0.1, ge=0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EarconSettings":
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        join_mode = env.get("EARCON_JOIN_MODE")
        if join_mode:
            if join_mode not in get_args(JoinMode):
                raise InvalidConfigError(f"EARCON_JOIN_MODE must be one of {get_args(JoinMode)}")
            values["join_mode"] = join_mode
        cancel_callbacks = env.get("EARCON_CANCEL_CALLBACKS")
        if cancel_callbacks:
            if cancel_callbacks not in get_args(CancelCallbacks):
                raise InvalidConfigError(
                    f"EARCON_CANCEL_CALLBACKS must be one of {get_args(CancelCallbacks)}"
                )
            values["cancel_callbacks"] = cancel_callbacks
        if env.get("EARCON_SAMPLE_RATE"):
            values["sample_rate"] = env["EARCON_SAMPLE_RATE"]
        if env.get("EARCON_BACKEND"):
            values["backend"] = env["EARCON_BACKEND"].strip()
        if env.get("EARCON_FADE_DURATION"):
            values["fade_duration"] = env["EARCON_FADE_DURATION"]
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise InvalidConfigError(f"Invalid earcon settings in environment: {exc}") from exc


OptionsInput = EarconOptions | Mapping[str, Any]


def coerce_options(value: OptionsInput | None) -> EarconOptions:
    if value is None:
        return EarconOptions()
    if isinstance(value, EarconOptions):
        return value
    if isinstance(value, Mapping):
        try:
            return EarconOptions.model_validate(dict(value))
        except ValidationError as exc:
            raise InvalidConfigError(f"Invalid earcon options: {exc}") from exc
    raise InvalidConfigError(f"Earcon options must be EarconOptions or a mapping, got {type(value)!r}")


def merge_options(base: EarconOptions, overrides: EarconOptions | None) -> EarconOptions:
    """Overlay the fields explicitly set on ``overrides`` onto ``base``.

    An override ``instruments`` list replaces the base list; nothing is
    concatenated.
    """

    if overrides is None:
        return base.model_copy()
    update = {name: getattr(overrides, name) for name in overrides.model_fields_set}
    return base.model_copy(update=update)
