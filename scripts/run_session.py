#!/usr/bin/env python3
"""Run several operator clients against one in-process shared store.

One client runs the simulator; the others only observe and issue commands.
After a short scripted session every client prints its local snapshot so
convergence can be checked by eye.

Usage::

    python scripts/run_session.py --clients 3 --seconds 3 --seed 7
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pydrone import (  # noqa: E402
    Direction,
    DroneClient,
    DroneConfig,
    FlightMode,
    InMemoryBackend,
    InMemoryStore,
    ThrottleStep,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Multi-client pydrone session on an in-memory store")
    parser.add_argument("--clients", type=int, default=3, help="number of operator clients (default: 3)")
    parser.add_argument("--seconds", type=float, default=3.0, help="how long to let the simulator run")
    parser.add_argument("--tick", type=float, default=0.25, help="simulator tick interval in seconds")
    parser.add_argument("--seed", type=int, default=None, help="seed for the simulator noise")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable DEBUG logging")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    backend = InMemoryBackend()
    clients: list[DroneClient] = []
    for index in range(max(1, args.clients)):
        config = DroneConfig(
            client_id=f"operator-{index}",
            simulate=index == 0,
            tick_interval=args.tick,
            connect_delay=0.1,
        )
        clients.append(
            DroneClient(
                config,
                store=InMemoryStore(backend),
                noise=random.Random(args.seed) if index == 0 else None,
            )
        )

    try:
        for client in clients:
            await client.start()
        await asyncio.sleep(0.3)

        pilot = clients[-1]
        await pilot.dispatcher.toggle_arm()
        await pilot.dispatcher.set_flight_mode(FlightMode.LOITER)
        for _ in range(3):
            await pilot.dispatcher.nudge(Direction.FORWARD)
        await clients[0].dispatcher.throttle_step(ThrottleStep.UP)

        await asyncio.sleep(args.seconds)
        await pilot.dispatcher.toggle_arm()
        await asyncio.sleep(0.2)

        for client in clients:
            print(f"== {client.config.client_id}")
            print(json.dumps(client.snapshot(), indent=2, sort_keys=True))
    finally:
        for client in clients:
            await client.close()
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
