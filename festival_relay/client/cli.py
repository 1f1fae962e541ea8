"""
Command-line entry point for the device sync agent.

    festival-relay-client run --base-url http://localhost:3000 --session s1 \
        --overlay-file overlay.json
    festival-relay-client sessions --base-url http://localhost:3000
    festival-relay-client alert --base-url http://localhost:3000 --keyword banana
    festival-relay-client song --base-url http://localhost:3000 --session s1 \
        --title "Strobe" --artist "deadmau5"
"""

from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path
from typing import Optional

from festival_relay.client.settings import ClientSettings
from festival_relay.client.sources import JsonFileOverlaySource, QueuedTriggerSource
from festival_relay.client.sync_agent import ClientSyncAgent
from festival_relay.core.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Festival relay device sync agent")
    parser.add_argument("--base-url", default=os.environ.get("RELAY_CLIENT_BASE_URL", ""))
    parser.add_argument("--session", default=os.environ.get("RELAY_CLIENT_SESSION_ID", ""))
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run push/poll/scan loops until interrupted")
    run.add_argument("--overlay-file", type=Path, help="JSON file with hearing + friends")
    run.add_argument("--event-mode", action="store_true", help="Faster overlay push cadence")
    run.add_argument("--duration", type=float, default=0.0, help="Stop after N seconds (0 = forever)")

    sub.add_parser("sessions", help="List active relay sessions")

    alert = sub.add_parser("alert", help="Originate a safety alert")
    alert.add_argument("--keyword", default="manual")

    song = sub.add_parser("song", help="Send an identified song to the glasses")
    song.add_argument("--title", required=True)
    song.add_argument("--artist", required=True)
    song.add_argument("--provider", default="shazamkit")

    return parser


def _make_agent(args: argparse.Namespace, overlay_file: Optional[Path] = None) -> ClientSyncAgent:
    settings = ClientSettings(BASE_URL=args.base_url, SESSION_ID=args.session)
    return ClientSyncAgent(
        settings,
        overlay_source=JsonFileOverlaySource(overlay_file) if overlay_file else None,
        trigger_source=QueuedTriggerSource(),
    )


async def _run(agent: ClientSyncAgent, duration: float) -> None:
    await agent.start()
    try:
        if duration > 0:
            await asyncio.sleep(duration)
        else:
            await asyncio.Event().wait()
    finally:
        await agent.stop()


async def _amain() -> int:
    args = build_parser().parse_args()
    setup_logging(args.log_level)

    if args.command == "run":
        agent = _make_agent(args, args.overlay_file)
        agent.event_mode = args.event_mode
        await _run(agent, args.duration)
        return 0

    agent = _make_agent(args)
    try:
        if args.command == "sessions":
            sessions = await agent.refresh_sessions()
            for session_id in sessions:
                print(session_id)
            ok = bool(sessions)
        elif args.command == "alert":
            await agent.refresh_sessions()
            ok = await agent.trigger_safety_alert(args.keyword)
        else:
            ok = await agent.post_song_result(args.title, args.artist, args.provider)
    finally:
        await agent.stop()

    logger.info("Status: %s", agent.status)
    return 0 if ok else 1


def main() -> None:
    try:
        raise SystemExit(asyncio.run(_amain()))
    except KeyboardInterrupt:
        raise SystemExit(130)


if __name__ == "__main__":
    main()
