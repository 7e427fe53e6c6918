#!/usr/bin/env python3
"""SafeGuard journey simulator.

Walks simulated users around a city and streams their location updates to
the server, so the risk engine, cooldown and alert pipeline can be exercised
end to end. A share of the walkers panic partway through and start running.

Usage:
    # 5 walkers around Delhi for 2 minutes
    python -m tools.simulator.simulate --server http://localhost:8000 --walkers 5 --duration 120

    # Late-night journeys in Mumbai, half of them in distress
    python -m tools.simulator.simulate --center 19.076,72.8777 --time-of-day 23:30 --distress-ratio 0.5

    # Load test: 100 walkers, one update per second each
    python -m tools.simulator.simulate --walkers 100 --updates-per-minute 60
"""

from __future__ import annotations

import argparse
import asyncio
import math
import random
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field

import httpx


@dataclass
class SimWalker:
    session_id: str
    lat: float
    lon: float
    bearing: float
    speed_kmh: float
    distressed: bool = False
    panic_after: int = 0
    updates_sent: int = 0
    errors: int = 0
    actions: Counter = field(default_factory=Counter)


def move_walker(walker: SimWalker, dt_seconds: float) -> None:
    """Move a walker along its bearing. Panicked walkers run and change direction more."""
    panicking = walker.distressed and walker.updates_sent >= walker.panic_after
    turn = 40 if panicking else 10
    walker.bearing = (walker.bearing + random.uniform(-turn, turn)) % 360
    if panicking:
        walker.speed_kmh = random.uniform(15, 22)
    else:
        walker.speed_kmh = max(2.0, min(6.0, walker.speed_kmh + random.uniform(-0.5, 0.5)))

    distance_m = walker.speed_kmh / 3.6 * dt_seconds
    bearing_rad = math.radians(walker.bearing)
    walker.lat += (distance_m * math.cos(bearing_rad)) / 111_000
    walker.lon += (distance_m * math.sin(bearing_rad)) / (111_000 * math.cos(math.radians(walker.lat)))


def make_context(walker: SimWalker, time_of_day: str | None) -> dict:
    panicking = walker.distressed and walker.updates_sent >= walker.panic_after
    context = {
        "speed_kmh": round(walker.speed_kmh, 1),
        "timestamp_ms": int(time.time() * 1000),
        "voice_emotion": random.choice(["panic", "fear"]) if panicking else "neutral",
        "ambient_light": random.choices(["normal", "low"], weights=[80, 20])[0],
        "location_zone": random.choices(["urban", "remote", "isolated"], weights=[85, 10, 5])[0],
    }
    if time_of_day:
        context["time_of_day"] = time_of_day
    return context


async def create_session(client: httpx.AsyncClient, server_url: str, walker: SimWalker) -> None:
    contacts = [
        {"id": f"{walker.session_id[:6]}-{i}", "name": f"Contact {i}",
         "phone": f"98{random.randint(10_000_000, 99_999_999)}",
         "email": f"contact{i}@example.com"}
        for i in range(2)
    ]
    resp = await client.post(f"{server_url}/api/v1/sessions",
                             json={"session_id": walker.session_id, "contacts": contacts})
    resp.raise_for_status()


async def run_walker(
    client: httpx.AsyncClient,
    walker: SimWalker,
    server_url: str,
    updates_per_minute: float,
    duration_seconds: float,
    time_of_day: str | None,
) -> None:
    """Simulate a single walker streaming location updates."""
    interval = 60.0 / updates_per_minute
    end_time = time.monotonic() + duration_seconds

    try:
        await create_session(client, server_url, walker)
    except httpx.HTTPError:
        walker.errors += 1
        return

    while time.monotonic() < end_time:
        move_walker(walker, interval)
        payload = {
            "lat": round(walker.lat, 6),
            "lng": round(walker.lon, 6),
            "context": make_context(walker, time_of_day),
        }
        try:
            resp = await client.post(
                f"{server_url}/api/v1/sessions/{walker.session_id}/location", json=payload,
            )
            if resp.status_code == 200:
                walker.updates_sent += 1
                data = resp.json()
                walker.actions[data["assessment"]["action"]] += 1
                walker.actions[f"emergency:{data['emergency']['status']}"] += 1
            else:
                walker.errors += 1
        except httpx.RequestError:
            walker.errors += 1

        await asyncio.sleep(interval)

    try:
        await client.post(f"{server_url}/api/v1/sessions/{walker.session_id}/stop")
    except httpx.RequestError:
        walker.errors += 1


async def run_simulation(args: argparse.Namespace) -> None:
    """Run the full simulation."""
    center_lat, center_lon = args.center
    walkers = []
    for _ in range(args.walkers):
        angle = random.uniform(0, 2 * math.pi)
        dist_km = random.uniform(0, args.radius_km)
        lat = center_lat + (dist_km / 111.0) * math.cos(angle)
        lon = center_lon + (dist_km / (111.0 * math.cos(math.radians(center_lat)))) * math.sin(angle)
        walkers.append(SimWalker(
            session_id=uuid.uuid4().hex,
            lat=lat,
            lon=lon,
            bearing=random.uniform(0, 360),
            speed_kmh=random.uniform(3, 5),
            distressed=random.random() < args.distress_ratio,
            panic_after=random.randint(2, 6),
        ))

    print(f"Starting simulation: {args.walkers} walkers, {args.updates_per_minute} updates/min each")
    print(f"  Center: {center_lat:.4f}, {center_lon:.4f}")
    print(f"  Radius: {args.radius_km} km")
    print(f"  Duration: {args.duration}s")
    print(f"  Distressed walkers: {sum(w.distressed for w in walkers)}")
    print(f"  Server: {args.server}")
    print()

    start = time.monotonic()

    async with httpx.AsyncClient(timeout=30.0) as client:
        await asyncio.gather(*(
            run_walker(client, walker, args.server, args.updates_per_minute,
                       args.duration, args.time_of_day)
            for walker in walkers
        ))

        elapsed = time.monotonic() - start
        totals: Counter = Counter()
        for walker in walkers:
            totals.update(walker.actions)

        print(f"\nSimulation complete in {elapsed:.1f}s")
        print(f"  Updates sent: {sum(w.updates_sent for w in walkers)}")
        print(f"  Errors: {sum(w.errors for w in walkers)}")
        for key in sorted(totals):
            print(f"  {key}: {totals[key]}")

        try:
            resp = await client.get(f"{args.server}/api/v1/stats")
        except httpx.RequestError as exc:
            print(f"\nCould not fetch server stats: {exc}")
            return
        if resp.status_code == 200:
            stats = resp.json()
            print("\nServer stats:")
            print(f"  Location updates: {stats['location_updates']}")
            print(f"  Emergencies triggered: {stats['emergencies_triggered']}")
            print(f"  Triggers suppressed: {stats['triggers_suppressed']}")
            print(f"  Contacts notified: {stats['contacts_notified']}")
            print(f"  Contacts failed: {stats['contacts_failed']}")
            print(f"  Events stored: {stats['events_stored']}")
            print(f"  Queue depth: {stats['queue_depth']}")


def main():
    parser = argparse.ArgumentParser(description="SafeGuard journey simulator")
    parser.add_argument("--server", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--walkers", type=int, default=5, help="Number of simulated walkers")
    parser.add_argument("--duration", type=int, default=60, help="Simulation duration in seconds")
    parser.add_argument("--updates-per-minute", type=float, default=6,
                        help="Location updates per minute per walker")
    parser.add_argument("--center", type=str, default="28.6139,77.2090",
                        help="Center lat,lon (default: Delhi)")
    parser.add_argument("--radius-km", type=float, default=5.0, help="Scatter radius in km")
    parser.add_argument("--distress-ratio", type=float, default=0.2,
                        help="Share of walkers that panic partway through")
    parser.add_argument("--time-of-day", type=str, default=None,
                        help="Force the reported local time (HH:MM); server local time otherwise")

    args = parser.parse_args()

    lat, lon = args.center.split(",")
    args.center = (float(lat), float(lon))

    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
