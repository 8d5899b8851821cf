"""Quick demo of the earcon API: a two-voice chime played twice, then cancelled."""

import asyncio

import earcon as ec

chime = ec.Earcon(
    {
        "instruments": [
            # Named instruments come from the built-in registry
            {"instrument": "sineMusical", "play_options": {"frequency": 660.0, "duration": 0.3}},
            {
                "instrument": "triangle",
                "play_options": {
                    "frequency": lambda t: 880.0 + 400.0 * t,
                    "duration": 0.4,
                    "volume": 0.6,
                },
            },
        ],
        "volume": 0.5,
        "on_end": lambda reason: print(f"chime finished ({reason})"),
    },
    settings=ec.EarconSettings(join_mode="episode"),
)


async def main() -> None:
    # Await one full playback
    await chime.asonify()

    # Pan hard left for a single call, then cut it short
    chime.sonify({"pan": -1.0})
    await asyncio.sleep(0.1)
    chime.cancel_sonify(fade_out=True)


asyncio.run(main())
