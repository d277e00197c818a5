"""Quick checks against a wearable: list nearby devices or print decoded notifications."""

import argparse
import asyncio

from bleak import BleakClient, BleakScanner

from wearbridge.config import IngestConfig
from wearbridge.gatt import CHARACTERISTICS
from wearbridge.logs import setup_logging
from wearbridge.session import WearableSession


async def scan(timeout=5.0):
    devices = await BleakScanner.discover(timeout=timeout)
    for d in devices:
        print(f"{d.address}  {d.name or '-'}")
    return devices


async def watch(address, seconds=30.0, names=("heart_rate",)):
    config = IngestConfig(device_address=address, characteristics=list(names), log_file=None)
    session = WearableSession(config)

    def handle(sender, data):
        for sample in session.handle_notification(sender, data):
            extra = f" [{sample.channel}]" if sample.channel else ""
            print(f"{sample.kind}{extra}: {sample.value:g} {sample.unit}")

    async with BleakClient(address) as client:
        for uuid in config.characteristic_uuids:
            await client.start_notify(uuid, handle)
        print(f"Subscribed to {', '.join(names)} notifications.")
        await asyncio.sleep(seconds)
        for uuid in config.characteristic_uuids:
            await client.stop_notify(uuid)
    return session


def main(argv=None):
    parser = argparse.ArgumentParser(prog="wearbridge-probe")
    sub = parser.add_subparsers(dest="command", required=True)

    p_scan = sub.add_parser("scan", help="list nearby BLE devices")
    p_scan.add_argument("--timeout", type=float, default=5.0)

    p_watch = sub.add_parser("watch", help="print decoded notifications")
    p_watch.add_argument("address")
    p_watch.add_argument("--seconds", type=float, default=30.0)
    p_watch.add_argument("--char", dest="chars", action="append", choices=sorted(CHARACTERISTICS),
                         help="characteristic to subscribe to (repeatable, default heart_rate)")

    args = parser.parse_args(argv)
    setup_logging("WARNING")
    if args.command == "scan":
        asyncio.run(scan(args.timeout))
    else:
        asyncio.run(watch(args.address, args.seconds, args.chars or ["heart_rate"]))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
