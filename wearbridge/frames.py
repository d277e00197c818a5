"""
Reassembly of vendor frames carried over the notify characteristic.

Frame layout::

    0xA5 | type u8 | seq u8 | len u8 | payload[len] | checksum u8

The checksum is the XOR of type, seq, len and the payload. Frames can be
split across notifications and a single notification may hold several.
"""

import logging
from dataclasses import dataclass
from functools import reduce
from operator import xor

logger = logging.getLogger(__name__)

SYNC = 0xA5
HEADER_LEN = 4
MAX_PAYLOAD = 244

PPG = 0x01
ACCEL = 0x02
SPO2 = 0x03
SKIN_TEMP = 0x04
BATTERY = 0x05


@dataclass(frozen=True)
class Frame:
    type: int
    seq: int
    payload: bytes


def checksum(body):
    return reduce(xor, body, 0)


def encode_frame(frame_type, seq, payload):
    payload = bytes(payload)
    if len(payload) > MAX_PAYLOAD:
        raise ValueError(f"payload too long: {len(payload)} > {MAX_PAYLOAD}")
    body = bytes([frame_type & 0xFF, seq & 0xFF, len(payload)]) + payload
    return bytes([SYNC]) + body + bytes([checksum(body)])


class FrameAssembler:
    def __init__(self):
        self._buf = bytearray()
        self._last_seq = None
        self.frames = 0
        self.dropped_bytes = 0
        self.bad_frames = 0
        self.lost_frames = 0

    def reset(self):
        self._buf.clear()
        self._last_seq = None

    def feed(self, data):
        """Append a notification fragment and return all complete frames."""
        self._buf.extend(data)
        out = []
        while True:
            frame = self._next_frame()
            if frame is None:
                break
            self._track_sequence(frame.seq)
            self.frames += 1
            out.append(frame)
        return out

    def _next_frame(self):
        buf = self._buf
        while buf:
            start = buf.find(SYNC)
            if start < 0:
                self.dropped_bytes += len(buf)
                buf.clear()
                return None
            if start:
                self.dropped_bytes += start
                del buf[:start]

            if len(buf) < HEADER_LEN:
                return None
            length = buf[3]
            if length > MAX_PAYLOAD:
                self._discard_sync("oversized length %d" % length)
                continue
            total = HEADER_LEN + length + 1
            if len(buf) < total:
                return None

            body = bytes(buf[1:HEADER_LEN + length])
            if checksum(body) != buf[total - 1]:
                self._discard_sync("checksum mismatch")
                continue

            del buf[:total]
            return Frame(type=body[0], seq=body[1], payload=body[3:])
        return None

    def _discard_sync(self, reason):
        logger.debug("Dropping sync byte: %s", reason)
        self.bad_frames += 1
        self.dropped_bytes += 1
        del self._buf[:1]

    def _track_sequence(self, seq):
        if self._last_seq is not None and seq != self._last_seq:
            gap = (seq - self._last_seq - 1) % 256
            if gap:
                logger.warning("Frame sequence gap: %d frame(s) lost before seq %d", gap, seq)
                self.lost_frames += gap
        self._last_seq = seq
