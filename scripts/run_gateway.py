#!/usr/bin/env python3
"""Run the telemetry gateway against in-memory storage.

Registers the simulated wireless roster as known devices, runs the service
for a fixed duration and prints connection status, sync status and the
stored sessions as JSON. MQTT is enabled when ``--broker-url`` (or
``MYOZEN_BROKER_URL``) is set.

Example::

    python scripts/run_gateway.py --duration 30 --emit-interval 1 --verbose
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pymyozen import (  # noqa: E402
    DeviceRecord,
    InMemoryStorage,
    MyozenConfig,
    SessionKind,
    TelemetryService,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the pymyozen telemetry gateway")
    parser.add_argument("--duration", type=float, default=20.0, help="Seconds to run before shutting down")
    parser.add_argument("--broker-url", default=None, help="MQTT broker URL (overrides MYOZEN_BROKER_URL)")
    parser.add_argument("--emit-interval", type=float, default=None, help="Seconds between simulated frames")
    parser.add_argument("--sync-interval-ms", type=int, default=None, help="Sync period in milliseconds")
    parser.add_argument("--no-wireless", action="store_true", help="Disable the simulated wireless transport")
    parser.add_argument("--force-sync", action="store_true", help="Force-sync every stored session before exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logging")
    return parser.parse_args()


def _build_config(args: argparse.Namespace) -> MyozenConfig:
    overrides: dict[str, Any] = {}
    if args.broker_url:
        overrides["broker_url"] = args.broker_url
    if args.emit_interval is not None:
        overrides["wireless_emit_interval"] = args.emit_interval
    if args.sync_interval_ms is not None:
        overrides["sync_interval_ms"] = args.sync_interval_ms
    if args.no_wireless:
        overrides["wireless_enabled"] = False
    return MyozenConfig.from_env(**overrides)


def _register_roster(storage: InMemoryStorage, config: MyozenConfig) -> None:
    for index, device in enumerate(config.simulated_devices, start=1):
        storage.register_device(
            DeviceRecord(
                id=f"dev-{index}",
                external_id=device.id,
                name=device.name,
                assigned_patient=f"patient-{index}",
            )
        )


async def _run(args: argparse.Namespace) -> int:
    config = _build_config(args)
    storage = InMemoryStorage()
    _register_roster(storage, config)

    async with TelemetryService(config, storage) as service:
        await asyncio.sleep(args.duration)
        if args.force_sync:
            for kind in SessionKind:
                ids = [record.id for record in storage.sessions(kind) if record.id]
                summary = await service.force_sync(ids, kind)
                print(f"force_sync {kind}: {summary.model_dump_json()}")
        status = {name: view.model_dump(mode="json", by_alias=True) for name, view in service.get_status().items()}
        sync_state = service.get_sync_status().model_dump(mode="json", by_alias=True)

    sessions = [
        {
            "kind": record.kind,
            "sessionId": record.session_id,
            "deviceRef": record.device_ref,
            "samples": record.sample_count,
            "synced": record.is_synced,
        }
        for record in storage.sessions()
    ]
    print(json.dumps({"connections": status, "sync": sync_state, "sessions": sessions}, indent=2))
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
