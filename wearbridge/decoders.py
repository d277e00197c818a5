"""
Decoders turning characteristic values and vendor frames into SensorSample rows.

Every decoder has the signature ``decoder(data, device, received_at)`` and
returns a list of samples. Truncated or inconsistent payloads raise
DecodeError so the session can count them.
"""

import logging
import math
import struct

from wearbridge import frames, gatt
from wearbridge.errors import DecodeError
from wearbridge.models import SensorSample

logger = logging.getLogger(__name__)

# IEEE-11073 special values
_SFLOAT_SPECIAL = {
    0x07FF: None,  # NaN
    0x0800: None,  # NRes
    0x0801: None,  # reserved
    0x07FE: math.inf,
    0x0802: -math.inf,
}
_FLOAT_SPECIAL = {
    0x007FFFFF: None,
    0x00800000: None,
    0x00800001: None,
    0x007FFFFE: math.inf,
    0x00800002: -math.inf,
}

DEFAULT_RANGES = {
    "heart_rate": (40, 220),
    "rr_interval": (200, 2500),
    "spo2": (50, 100),
    "pulse_rate": (20, 300),
    "temperature": (25.0, 45.0),
    "skin_temperature": (20.0, 45.0),
    "battery": (0, 100),
}


def _scale(mantissa, exponent):
    if exponent < 0:
        return mantissa / 10 ** -exponent
    return float(mantissa * 10 ** exponent)


def sfloat(raw):
    if raw in _SFLOAT_SPECIAL:
        return _SFLOAT_SPECIAL[raw]
    mantissa = raw & 0x0FFF
    if mantissa >= 0x0800:
        mantissa -= 0x1000
    exponent = raw >> 12
    if exponent >= 0x8:
        exponent -= 0x10
    return _scale(mantissa, exponent)


def float32(raw):
    if raw in _FLOAT_SPECIAL:
        return _FLOAT_SPECIAL[raw]
    mantissa = raw & 0xFFFFFF
    if mantissa >= 0x800000:
        mantissa -= 0x1000000
    exponent = raw >> 24
    if exponent >= 0x80:
        exponent -= 0x100
    return _scale(mantissa, exponent)


def _need(data, size, what):
    if len(data) < size:
        raise DecodeError(f"{what}: expected at least {size} bytes, got {len(data)}")


def decode_heart_rate(data, device, received_at):
    data = bytes(data)
    _need(data, 2, "heart rate")
    flags = data[0]
    if flags & 0x01:
        _need(data, 3, "heart rate (uint16)")
        bpm = struct.unpack_from("<H", data, 1)[0]
        offset = 3
    else:
        bpm = data[1]
        offset = 2

    contact = bool(flags & 0x02) if flags & 0x04 else None
    samples = [SensorSample(device, "heart_rate", float(bpm), "bpm", received_at, contact=contact)]

    if flags & 0x08:
        _need(data, offset + 2, "energy expended")
        energy = struct.unpack_from("<H", data, offset)[0]
        offset += 2
        samples.append(SensorSample(device, "energy_expended", float(energy), "kJ", received_at))

    if flags & 0x10:
        rest = data[offset:]
        if len(rest) % 2:
            raise DecodeError(f"heart rate: odd RR interval field length {len(rest)}")
        for (raw,) in struct.iter_unpack("<H", rest):
            # RR resolution is 1/1024 s
            ms = round(raw * 1000.0 / 1024.0, 1)
            samples.append(SensorSample(device, "rr_interval", ms, "ms", received_at))
    return samples


def decode_battery(data, device, received_at):
    data = bytes(data)
    _need(data, 1, "battery level")
    level = data[0]
    if level > 100:
        raise DecodeError(f"battery level out of range: {level}")
    return [SensorSample(device, "battery", float(level), "%", received_at)]


def _spo2_pr(data, offset, device, received_at):
    spo2, pr = struct.unpack_from("<HH", data, offset)
    out = []
    value = sfloat(spo2)
    if value is not None:
        out.append(SensorSample(device, "spo2", value, "%", received_at))
    value = sfloat(pr)
    if value is not None:
        out.append(SensorSample(device, "pulse_rate", value, "bpm", received_at))
    return out


def decode_plx_spot_check(data, device, received_at):
    data = bytes(data)
    _need(data, 5, "PLX spot-check")
    flags = data[0]
    samples = _spo2_pr(data, 1, device, received_at)

    # Timestamp, measurement status, device and sensor status
    offset = 5
    for bit, size in ((0x01, 7), (0x02, 2), (0x04, 3)):
        if flags & bit:
            offset += size
    if flags & 0x08:
        samples.extend(_pulse_amplitude(data, offset, device, received_at))
    return samples


def _pulse_amplitude(data, offset, device, received_at):
    _need(data, offset + 2, "PLX pulse amplitude index")
    pai = sfloat(struct.unpack_from("<H", data, offset)[0])
    if pai is None:
        return []
    return [SensorSample(device, "perfusion_index", pai, "%", received_at)]


def decode_plx_continuous(data, device, received_at):
    data = bytes(data)
    _need(data, 5, "PLX continuous")
    flags = data[0]
    samples = _spo2_pr(data, 1, device, received_at)

    # Fast/slow SpO2PR blocks, measurement status, device and sensor status
    offset = 5
    for bit, size in ((0x01, 4), (0x02, 4), (0x04, 2), (0x08, 3)):
        if flags & bit:
            offset += size
    if flags & 0x10:
        samples.extend(_pulse_amplitude(data, offset, device, received_at))
    return samples


def decode_temperature(data, device, received_at):
    data = bytes(data)
    _need(data, 5, "temperature measurement")
    flags = data[0]
    value = float32(struct.unpack_from("<I", data, 1)[0])
    if value is None:
        return []
    if flags & 0x01:
        value = (value - 32.0) * 5.0 / 9.0
    return [SensorSample(device, "temperature", round(value, 2), "degC", received_at)]


def _block_header(frame, what):
    _need(frame.payload, 6, what)
    tick_ms, interval_ms = struct.unpack_from("<IH", frame.payload, 0)
    return tick_ms, interval_ms, frame.payload[6:]


def _decode_ppg(frame, device, received_at):
    tick_ms, interval_ms, body = _block_header(frame, "PPG block")
    if len(body) % 2:
        raise DecodeError(f"PPG block: odd sample field length {len(body)}")
    return [
        SensorSample(device, "ppg", float(raw), "counts", received_at,
                     device_ms=tick_ms + i * interval_ms)
        for i, (raw,) in enumerate(struct.iter_unpack("<H", body))
    ]


def _decode_accel(frame, device, received_at):
    tick_ms, interval_ms, body = _block_header(frame, "accel block")
    if len(body) % 6:
        raise DecodeError(f"accel block: {len(body)} bytes is not a whole number of xyz triples")
    samples = []
    for i, xyz in enumerate(struct.iter_unpack("<hhh", body)):
        t = tick_ms + i * interval_ms
        for axis, value in zip("xyz", xyz):
            samples.append(SensorSample(device, "accel", float(value), "mg", received_at,
                                        device_ms=t, channel=axis))
    return samples


def _decode_spo2(frame, device, received_at):
    _need(frame.payload, 2, "SpO2 frame")
    spo2, confidence = frame.payload[0], frame.payload[1]
    if confidence == 0:
        logger.debug("SpO2 reading without confidence skipped")
        return []
    return [SensorSample(device, "spo2", float(spo2), "%", received_at)]


def _decode_skin_temp(frame, device, received_at):
    _need(frame.payload, 2, "skin temperature frame")
    centi = struct.unpack_from("<h", frame.payload, 0)[0]
    return [SensorSample(device, "skin_temperature", centi / 100.0, "degC", received_at)]


def _decode_battery_frame(frame, device, received_at):
    return decode_battery(frame.payload, device, received_at)


FRAME_DECODERS = {
    frames.PPG: _decode_ppg,
    frames.ACCEL: _decode_accel,
    frames.SPO2: _decode_spo2,
    frames.SKIN_TEMP: _decode_skin_temp,
    frames.BATTERY: _decode_battery_frame,
}


def decode_frame(frame, device, received_at):
    decoder = FRAME_DECODERS.get(frame.type)
    if decoder is None:
        logger.debug("Skipping unknown frame type 0x%02x", frame.type)
        return []
    return decoder(frame, device, received_at)


DECODERS = {
    gatt.HR_MEASUREMENT: decode_heart_rate,
    gatt.BATTERY_LEVEL: decode_battery,
    gatt.PLX_SPOT_CHECK: decode_plx_spot_check,
    gatt.PLX_CONTINUOUS: decode_plx_continuous,
    gatt.TEMPERATURE_MEASUREMENT: decode_temperature,
}


def is_plausible(sample, ranges=None):
    bounds = (ranges or DEFAULT_RANGES).get(sample.kind)
    if bounds is None:
        return not math.isinf(sample.value)
    low, high = bounds
    return low <= sample.value <= high
