from __future__ import annotations

import pytest

from wearbridge import frames
from wearbridge.frames import Frame, FrameAssembler, encode_frame


def test_frame_split_across_notifications() -> None:
    raw = encode_frame(frames.SPO2, 7, bytes([97, 80]))
    asm = FrameAssembler()

    assert asm.feed(raw[:2]) == []
    assert asm.feed(raw[2:5]) == []
    assert asm.feed(raw[5:]) == [Frame(type=frames.SPO2, seq=7, payload=bytes([97, 80]))]
    assert asm.dropped_bytes == 0


def test_several_frames_in_one_notification_with_leading_garbage() -> None:
    data = b"\x01\x02\x03" + encode_frame(frames.BATTERY, 1, b"\x50") + encode_frame(frames.BATTERY, 2, b"\x51")
    asm = FrameAssembler()

    out = asm.feed(data)

    assert [f.payload for f in out] == [b"\x50", b"\x51"]
    assert asm.dropped_bytes == 3
    assert asm.frames == 2


def test_checksum_mismatch_resyncs_on_next_frame() -> None:
    bad = bytearray(encode_frame(frames.SKIN_TEMP, 1, b"\x10\x0e"))
    bad[-1] ^= 0xFF
    good = encode_frame(frames.SKIN_TEMP, 2, b"\x11\x0e")
    asm = FrameAssembler()

    out = asm.feed(bytes(bad) + good)

    assert out == [Frame(type=frames.SKIN_TEMP, seq=2, payload=b"\x11\x0e")]
    assert asm.bad_frames == 1
    assert asm.dropped_bytes == len(bad)


def test_oversized_length_is_rejected() -> None:
    asm = FrameAssembler()
    out = asm.feed(bytes([frames.SYNC, frames.PPG, 0, 250]) + encode_frame(frames.BATTERY, 0, b"\x10"))

    assert len(out) == 1
    assert out[0].type == frames.BATTERY
    assert asm.bad_frames == 1


def test_sequence_gaps_are_counted_and_wrap() -> None:
    asm = FrameAssembler()
    for seq in (1, 2, 5, 255, 0):
        asm.feed(encode_frame(frames.BATTERY, seq, b"\x10"))

    # 3 and 4 are missing, then 6..254
    assert asm.lost_frames == 2 + 249


def test_reset_clears_partial_frame_and_sequence_state() -> None:
    asm = FrameAssembler()
    asm.feed(encode_frame(frames.BATTERY, 10, b"\x10"))
    asm.feed(encode_frame(frames.BATTERY, 11, b"\x10")[:3])

    asm.reset()
    out = asm.feed(encode_frame(frames.BATTERY, 40, b"\x11"))

    assert [f.seq for f in out] == [40]
    assert asm.lost_frames == 0


def test_encode_frame_rejects_long_payload() -> None:
    with pytest.raises(ValueError):
        encode_frame(frames.PPG, 0, bytes(frames.MAX_PAYLOAD + 1))
