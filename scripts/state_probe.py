#!/usr/bin/env python3
"""Live probe for the unified observatory state.

This script runs :class:`pynina.ObservatoryStateSystem` against a NINA
instance configured through ``NINA_*`` environment variables and:
1) seeds state from ``/v2/api/event-history``,
2) connects to the ``/v2/socket`` event stream,
3) prints every broadcast envelope (update kind, reason, change summary),
4) prints a status summary on exit.

Use this to verify how a real session maps onto the state widgets.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pynina import NinaConfig, NinaError, ObservatoryStateSystem, StateEnvelope  # noqa: E402


@dataclass
class ProbeStats:
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    envelopes: int = 0
    by_kind: dict[str, int] = field(default_factory=dict)

    def on_envelope(self, envelope: StateEnvelope) -> None:
        self.envelopes += 1
        kind = str(envelope.update_kind)
        self.by_kind[kind] = self.by_kind.get(kind, 0) + 1


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the unified observatory state against a live NINA.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Override NINA_BASE_URL.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override NINA_API_PORT.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print the full state with every envelope.",
    )
    parser.add_argument(
        "--no-heartbeat",
        action="store_true",
        help="Disable periodic heartbeat broadcasts.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_envelope(envelope: StateEnvelope, *, full: bool) -> None:
    changed = envelope.changed.summary if envelope.changed is not None else "-"
    print(f"[probe] {envelope.update_kind}/{envelope.update_reason}: {changed}")
    if full:
        print(json.dumps(envelope.state.to_wire(), indent=2, ensure_ascii=False))


def _print_summary(system: ObservatoryStateSystem, stats: ProbeStats) -> None:
    runtime = (datetime.now(UTC) - stats.started_at).total_seconds()
    status = system.get_status()
    print("[probe] Summary")
    print(f"[probe]   runtime_s        : {runtime:.1f}")
    print(f"[probe]   envelopes        : {stats.envelopes}")
    for kind, count in sorted(stats.by_kind.items()):
        print(f"[probe]     {kind:<14} : {count}")
    print(f"[probe]   seeded           : {status.seeded}")
    print(f"[probe]   connection       : {status.connection}")
    print(f"[probe]   events_processed : {status.events_processed}")
    print(f"[probe]   events_ignored   : {status.events_ignored}")
    print(f"[probe]   events_failed    : {status.events_failed}")
    print(f"[probe]   equipment        : {status.equipment_count}")
    print(f"[probe]   session_active   : {status.session_active}")


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    if args.host:
        overrides["base_url"] = args.host
    if args.port:
        overrides["api_port"] = args.port
    if args.no_heartbeat:
        overrides["heartbeat_interval"] = 0.0

    try:
        config = NinaConfig.from_env(**overrides)
    except NinaError as exc:
        print(f"[probe] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)

    stats = ProbeStats()

    def on_envelope(envelope: StateEnvelope) -> None:
        stats.on_envelope(envelope)
        _print_envelope(envelope, full=args.json)

    print(f"[probe] Connecting to {config.websocket_url}")
    async with ObservatoryStateSystem(config) as system:
        print(json.dumps(system.get_snapshot(), indent=2, ensure_ascii=False))
        unsubscribe = system.subscribe(on_envelope)
        try:
            if args.duration > 0:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(stop.wait(), timeout=args.duration)
                if not stop.is_set():
                    print(f"[probe] Reached --duration={args.duration}s, stopping.")
            else:
                await stop.wait()
        finally:
            unsubscribe()
            _print_summary(system, stats)
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(_main())
