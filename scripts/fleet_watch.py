#!/usr/bin/env python3
"""Watch a buoy fleet from the terminal.

Connects to the telemetry broker configured by ``BUOY_*`` environment
variables, optionally scans or connects devices through the control
plane, then prints the projected vehicle list once per second.

Usage::

    BUOY_MQTT_URL=ws://10.8.0.1:9001/mqtt python scripts/fleet_watch.py --scan
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_src = Path(__file__).resolve().parent.parent / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from buoyfleet import FleetConfig, FleetSession, Vehicle, format_duration  # noqa: E402


def _section(title: str) -> str:
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}"


def _fmt(value: float | int | None, spec: str = ".6f") -> str:
    return "--" if value is None else format(value, spec)


def _render(fleet: FleetSession, now: int) -> list[str]:
    manager = fleet.manager
    status = manager.status()
    out = [_section(f"fleet broker={'up' if fleet.connected else 'down'} online={status.online_count}")]
    if status.scanned_ips:
        out.append(f"  scanned   : {', '.join(status.scanned_ips)}")
    if status.connect_error:
        out.append(f"  error     : {status.connect_error}")
    for vehicle in fleet.vehicles:
        out.append(_vehicle_line(vehicle, manager.disconnected_for(vehicle.id, now)))
    return out


def _vehicle_line(vehicle: Vehicle, offline_s: float | None) -> str:
    state = "online" if vehicle.isonline else "offline"
    if offline_s is not None:
        state = f"offline {format_duration(offline_s * 1000)}"
    return (
        f"  {vehicle.id:<22} lat={_fmt(vehicle.lat)} lon={_fmt(vehicle.lon)} "
        f"batt={_fmt(vehicle.battery_voltage, '.2f')}V {state}"
    )


async def run(args: argparse.Namespace) -> None:
    overrides = {}
    if args.registry:
        overrides["registry_path"] = Path(args.registry)
    config = FleetConfig.from_env(**overrides)

    async with FleetSession(config) as fleet:
        if args.scan:
            found = await fleet.manager.scan()
            print(f"scan: {', '.join(found) or 'nothing found'}")
        for ip in args.connect:
            outcome = await fleet.connect(ip)
            print(f"connect {ip}: {'ok' if outcome.ok else outcome.error_message('failed')}")
        if args.auto_retry:
            fleet.manager.set_auto_retry(True)

        def _on_tick(now: int) -> None:
            if args.json_mode:
                rows = [vehicle.model_dump(mode="json", by_alias=True) for vehicle in fleet.vehicles]
                print(json.dumps(rows, default=str, ensure_ascii=False))
            else:
                print("\n".join(_render(fleet, now)))

        unsubscribe = fleet.manager.on_tick(_on_tick)
        try:
            if args.duration > 0:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
        finally:
            unsubscribe()


def main() -> None:
    parser = argparse.ArgumentParser(description="Print live buoy positions and connection state.")
    parser.add_argument("--duration", type=int, default=0, help="Maximum runtime in seconds (0 = run until Ctrl+C).")
    parser.add_argument("--scan", action="store_true", help="Run one discovery scan on start")
    parser.add_argument("--connect", action="append", default=[], metavar="IP", help="Connect the buoy at IP")
    parser.add_argument("--auto-retry", action="store_true", help="Re-scan every 5 seconds")
    parser.add_argument("--registry", help="Registry JSON file (default: ~/.buoyfleet/registry.json)")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Print vehicles as JSON lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
