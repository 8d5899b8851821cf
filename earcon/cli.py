from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

import soundfile as sf  # type: ignore[import]
from rich.console import Console
from rich.table import Table

from .config import EarconSettings, PlayOptions
from .core import Earcon
from .errors import InvalidConfigError
from .instruments import InstrumentRegistry
from .logging_utils import configure_logging, log_failure
from .playback import available_backends, backend_names
from .synth import SynthInstrument, builtin_instruments

_LOGGER = logging.getLogger("earcon.cli")
_CONSOLE = Console()


def _add_voice_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("instrument", type=str)
    parser.add_argument("--frequency", type=float, default=440.0)
    parser.add_argument("--duration", type=float, default=0.5)
    parser.add_argument("--volume", type=float, default=None)
    parser.add_argument("--pan", type=float, default=None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="earcon")
    sub = parser.add_subparsers(dest="command", required=True)

    play = sub.add_parser("play", help="Play a single-voice earcon.")
    _add_voice_arguments(play)
    play.add_argument("--backend", choices=backend_names(), default=None)

    render = sub.add_parser("render", help="Render an instrument voice to a wav file.")
    _add_voice_arguments(render)
    render.add_argument("output", type=str)

    sub.add_parser("instruments", help="List the built-in instruments.")
    sub.add_parser("doctor", help="Check playback backends and log paths.")
    return parser


def _registry(settings: EarconSettings) -> InstrumentRegistry:
    return InstrumentRegistry(builtin_instruments(settings).items())


def _play_options(args: argparse.Namespace) -> PlayOptions:
    return PlayOptions(frequency=args.frequency, duration=args.duration, volume=args.volume)


def _play(args: argparse.Namespace, settings: EarconSettings) -> int:
    if args.backend is not None:
        settings = settings.model_copy(update={"backend": args.backend})
    earcon = Earcon(
        {
            "instruments": [{"instrument": args.instrument, "play_options": _play_options(args)}],
            "pan": args.pan,
        },
        registry=_registry(settings),
        settings=settings,
    )
    result = asyncio.run(earcon.asonify())
    if not result:
        _CONSOLE.print(f"[red]Unknown instrument {args.instrument!r}[/red]")
        return 1
    _CONSOLE.print(f"Played {args.instrument} ({result[0]})")
    return 0


def _render(args: argparse.Namespace, settings: EarconSettings) -> int:
    instrument = _registry(settings).get(args.instrument)
    if not isinstance(instrument, SynthInstrument):
        raise InvalidConfigError(f"Unknown instrument {args.instrument!r}")
    options = _play_options(args).model_copy(update={"pan": args.pan})
    samples = instrument.render(options)
    target = Path(args.output)
    sf.write(target, samples, instrument.sample_rate)
    _CONSOLE.print(f"Wrote {len(samples)} frames to {target} (sr={instrument.sample_rate})")
    return 0


def _instruments(settings: EarconSettings) -> int:
    table = Table(title="Instruments")
    table.add_column("Name")
    table.add_column("Waveform")
    table.add_column("Musical")
    for name, instrument in sorted(builtin_instruments(settings).items()):
        table.add_row(name, instrument.waveform, "yes" if instrument.musical else "no")
    _CONSOLE.print(table)
    return 0


def _doctor(settings: EarconSettings, log_path: Path | None) -> int:
    report = [
        f"Available backends: {', '.join(available_backends()) or 'none'}",
        f"Configured backend: {settings.backend or 'auto'}",
        f"Join mode: {settings.join_mode}",
        f"Log file: {log_path or 'disabled'}",
        "Hints:",
        "- Install sounddevice (or simpleaudio) for audible playback.",
        "- Set EARCON_BACKEND=silent to run without an audio device.",
    ]
    for line in report:
        _CONSOLE.print(line)
    return 0


def main(argv: list[str] | None = None) -> int:
    log_path = configure_logging(log_file=True)
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        settings = EarconSettings.from_env()

        if args.command == "play":
            return _play(args, settings)
        if args.command == "render":
            return _render(args, settings)
        if args.command == "instruments":
            return _instruments(settings)
        if args.command == "doctor":
            return _doctor(settings, log_path)

        parser.print_help()
        return 1
    except Exception as exc:
        log_failure(_LOGGER, "earcon CLI", exc)
        _CONSOLE.print(f"[red]earcon failed:[/red] {exc}")
        return 1
