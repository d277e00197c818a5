"""
Connection loop and sample buffering for one wearable.

Notifications are decoded on the bleak callback, filtered, and appended to a
bounded buffer. The loop ticks once a second: it watches for stale data,
flushes batches to the uploader and reconnects with back-off when the link
drops.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from wearbridge import decoders, gatt, stress
from wearbridge.errors import DecodeError, DeviceNotFoundError, StaleDataError
from wearbridge.frames import FrameAssembler
from wearbridge.models import Batch

logger = logging.getLogger(__name__)

HEARTBEAT_TICKS = 10
CONNECTION_ERRORS = (BleakError, StaleDataError, DeviceNotFoundError, asyncio.TimeoutError, OSError)


def utcnow():
    return datetime.now(timezone.utc)


class WearableSession:
    tick_s = 1.0

    def __init__(self, config, uploader=None, clock=utcnow):
        self.config = config
        self.uploader = uploader
        self.clock = clock
        self.device = config.device_address or config.device_name
        self.buffer = deque(maxlen=config.buffer_size)
        self.latest = {}
        self.assembler = FrameAssembler()
        self.ranges = dict(decoders.DEFAULT_RANGES, heart_rate=(config.hr_min, config.hr_max))
        self.stats = {
            "notifications": 0,
            "samples": 0,
            "rejected": 0,
            "decode_errors": 0,
            "overflow": 0,
            "batches": 0,
        }
        self.connected = False
        self.last_data_time = None
        self._handles = {}
        self._sequence = 0
        self._stopping = False
        self._had_connection = False

    # BLE notification handler
    def handle_notification(self, sender, data):
        received_at = self.clock()
        uuid = self._resolve_uuid(sender)
        self.stats["notifications"] += 1
        try:
            samples = self.decode(uuid, data, received_at)
        except DecodeError as e:
            self.stats["decode_errors"] += 1
            logger.warning("Dropping notification from %s: %s", uuid, e)
            return []

        accepted = []
        for sample in samples:
            if not decoders.is_plausible(sample, self.ranges):
                self.stats["rejected"] += 1
                logger.info("Invalid %s value %s %s, skipping", sample.kind, sample.value, sample.unit)
                continue
            if len(self.buffer) == self.buffer.maxlen:
                self.stats["overflow"] += 1
            self.buffer.append(sample)
            self.latest[sample.kind] = sample
            accepted.append(sample)

        if accepted:
            self.stats["samples"] += len(accepted)
            self.last_data_time = received_at
        return accepted

    def _resolve_uuid(self, sender):
        if isinstance(sender, int):
            return self._handles.get(sender, str(sender))
        return gatt.normalize(getattr(sender, "uuid", sender))

    def decode(self, uuid, data, received_at):
        if uuid == gatt.VENDOR_NOTIFY:
            samples = []
            for frame in self.assembler.feed(data):
                try:
                    samples.extend(decoders.decode_frame(frame, self.device, received_at))
                except DecodeError as e:
                    self.stats["decode_errors"] += 1
                    logger.warning("Dropping frame type 0x%02x seq %d: %s", frame.type, frame.seq, e)
            return samples

        decoder = decoders.DECODERS.get(uuid)
        if decoder is None:
            logger.debug("No decoder for characteristic %s", uuid)
            return []
        return decoder(data, self.device, received_at)

    def drain(self, max_size=None):
        """Pop up to ``batch_size`` samples, oldest first, into a Batch."""
        size = max_size or self.config.batch_size
        if not self.buffer:
            return None
        samples = [self.buffer.popleft() for _ in range(min(size, len(self.buffer)))]
        self._sequence += 1
        batch = Batch(self.device, self._sequence, self.clock(), samples)

        if any(s.kind == "heart_rate" for s in samples):
            summary = stress.summarize(samples, self.config.min_summary_samples)
            if summary.get("status") == "error":
                logger.info("No stress summary for batch %d: %s", batch.sequence, summary["message"])
            else:
                batch.summary = summary
        self.stats["batches"] += 1
        return batch

    async def flush(self):
        if self.uploader is not None and self.uploader.pending:
            await self.uploader.retry_pending()

        sent = 0
        while self.buffer:
            batch = self.drain()
            if self.uploader is None:
                logger.info("Batch %d: %d samples, summary=%s", batch.sequence, len(batch), batch.summary)
            elif self.uploader.pending:
                # Backend still down for older batches: keep delivery ordered
                self.uploader.enqueue(batch)
            else:
                await self.uploader.send(batch)
            sent += 1
        return sent

    def is_stale(self, now=None):
        if self.last_data_time is None:
            return False
        now = now or self.clock()
        return (now - self.last_data_time).total_seconds() > self.config.stale_after_s

    def stop(self):
        self._stopping = True

    async def resolve_address(self):
        if self.config.device_address:
            self.device = self.config.device_address
            return self.device

        logger.info("Scanning for devices...")
        devices = await BleakScanner.discover(timeout=self.config.scan_timeout_s)
        wanted = self.config.device_name.lower()
        for d in devices:
            if d.name and wanted in d.name.lower():
                logger.info("Found: %s %s", d.name, d.address)
                self.device = d.address
                return d.address
        raise DeviceNotFoundError(f"No device matching {self.config.device_name!r} found")

    async def _subscribe(self, client):
        subscribed = []
        for uuid in self.config.characteristic_uuids:
            char = client.services.get_characteristic(uuid)
            if char is None:
                logger.warning("Device does not expose %s, skipping", uuid)
                continue
            self._handles[char.handle] = uuid
            if "notify" not in char.properties and "indicate" not in char.properties:
                # Read-only characteristic (battery on some straps): take one reading
                self.handle_notification(char, await client.read_gatt_char(char))
                continue
            await client.start_notify(char, self.handle_notification)
            subscribed.append(char)
        return subscribed

    async def _unsubscribe(self, client, chars):
        for char in chars:
            try:
                await client.stop_notify(char)
            except BleakError as e:
                logger.debug("stop_notify(%s) failed: %s", char.uuid, e)

    async def _stream(self):
        address = await self.resolve_address()
        logger.info("Connecting to %s ...", address)
        self.assembler.reset()

        async with BleakClient(address) as client:
            self.connected = True
            subscribed = await self._subscribe(client)
            if not subscribed:
                raise DeviceNotFoundError(f"{address} exposes none of the configured characteristics")
            self._had_connection = True
            logger.info("Connected and receiving data...")

            self.last_data_time = self.clock()
            last_flush = self.last_data_time
            ticks = 0
            try:
                while not self._stopping:
                    await asyncio.sleep(self.tick_s)
                    ticks += 1
                    if ticks % HEARTBEAT_TICKS == 0:
                        logger.info("Health check OK, %d samples buffered", len(self.buffer))

                    now = self.clock()
                    if self.is_stale(now):
                        raise StaleDataError(f"No data received in {self.config.stale_after_s:g} seconds")

                    due = (now - last_flush).total_seconds() >= self.config.flush_interval_s
                    if due or len(self.buffer) >= self.config.batch_size:
                        await self.flush()
                        last_flush = now
            finally:
                self.connected = False
                await self._unsubscribe(client, subscribed)

    async def run(self):
        """Stream until stop() is called, reconnecting after any link failure."""
        delay = self.config.reconnect_delay_s
        try:
            while not self._stopping:
                try:
                    await self._stream()
                except CONNECTION_ERRORS as e:
                    logger.error("BLE connection error: %s", e)
                finally:
                    self.connected = False
                if self._stopping:
                    break

                if self._had_connection:
                    delay = self.config.reconnect_delay_s
                    self._had_connection = False
                logger.info("Reconnecting in %g seconds...", delay)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.config.reconnect_max_delay_s)
        finally:
            await self.flush()
            if self.uploader is not None:
                await self.uploader.aclose()
            self._stopping = False
