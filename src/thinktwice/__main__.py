"""Entry point: python -m thinktwice [serve|summary|pause <preset>|resume]

- "serve":          Daemon mode (restore wake-ups, scheduler, store watch)
- "summary":        Print pending reminders, pause state and history stats
- "pause <preset>": close | 30s | 1hour | 1day
- "resume":         Clear any snooze and re-enable prompts
"""

from __future__ import annotations

import asyncio
import logging
import sys

from thinktwice.config import ThinkTwiceConfig, load_config
from thinktwice.timeutil import PAUSE_PRESETS


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_serve(config: ThinkTwiceConfig) -> None:
    from thinktwice.daemon import ThinkTwiceDaemon

    daemon = ThinkTwiceDaemon(config)
    asyncio.run(daemon.run())


async def _summary(config: ThinkTwiceConfig) -> str:
    from thinktwice.core import ThinkTwice, render_summary

    app = ThinkTwice(config)
    return render_summary(await app.summary(), app.now())


async def _pause(config: ThinkTwiceConfig, preset: str | None) -> None:
    from thinktwice.core import ThinkTwice

    app = ThinkTwice(config)
    if preset is None:
        await app.resume()
    else:
        await app.pause(preset)


def _usage() -> None:
    print("Usage: python -m thinktwice [serve|summary|pause <preset>|resume]")
    print("  serve           Background daemon (wake-ups, sweep, badge)")
    print("  summary         Pending reminders and history")
    print(f"  pause <preset>  One of: {', '.join(PAUSE_PRESETS)}")
    print("  resume          Re-enable prompts")


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "summary"
    config = load_config()
    _setup_logging(config.log_level)

    if cmd == "serve":
        _run_serve(config)
    elif cmd == "summary":
        print(asyncio.run(_summary(config)))
    elif cmd == "pause" and len(sys.argv) > 2 and sys.argv[2] in PAUSE_PRESETS:
        asyncio.run(_pause(config, sys.argv[2]))
        print(f"Prompts paused ({sys.argv[2]})")
    elif cmd == "resume":
        asyncio.run(_pause(config, None))
        print("Prompts resumed")
    else:
        _usage()
        sys.exit(1)


if __name__ == "__main__":
    main()
