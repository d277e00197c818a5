from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from wearbridge import stress
from wearbridge.models import SensorSample

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def _hr(values, start=T0):
    return [
        SensorSample("dev", "heart_rate", float(v), "bpm", start + timedelta(seconds=i))
        for i, v in enumerate(values)
    ]


def _rr(values):
    return [SensorSample("dev", "rr_interval", float(v), "ms", T0) for v in values]


def test_calculate_rmssd() -> None:
    assert stress.calculate_rmssd([1000, 1010, 1000]) == pytest.approx(10.0)


@pytest.mark.parametrize(
    "value, expected",
    [(20.0, "Stressed"), (38.0, "Aroused"), (50.0, "Stable"), (60.0, "Relaxed")],
)
def test_classify_stress_hierarchy(value, expected) -> None:
    # mean 50, std 20: thresholds at 36, 40 and 55
    assert stress.classify_stress_hierarchy(value, 50.0, 20.0) == expected


def test_flat_rmssd_is_stable() -> None:
    assert stress.classify_stress_hierarchy(5.0, 5.0, 0.0) == "Stable"


def test_outliers_are_interpolated() -> None:
    rr = pd.Series([800.0, 5000.0, 1000.0, 100.0, 1000.0])
    cleaned = stress.remove_outliers_and_interpolate(rr)
    assert cleaned.tolist() == [800.0, 900.0, 1000.0, 1000.0, 1000.0]


def test_build_dataframe_ignores_other_kinds() -> None:
    samples = _hr([60, 62]) + _rr([1000.0])
    df = stress.build_dataframe(samples)

    assert df[stress.HR_COLUMN].tolist() == [60.0, 62.0]
    assert df.index[0] == T0


def test_summarize_needs_minimum_samples() -> None:
    result = stress.summarize(_hr([60, 61, 62]), min_samples=5)
    assert result["status"] == "error"


def test_summarize_needs_enough_rmssd_windows() -> None:
    result = stress.summarize(_hr([60] * 10))
    assert result == {"status": "error", "message": "Not enough valid RMSSD data (found 0)"}


def test_summarize_constant_heart_rate() -> None:
    result = stress.summarize(_hr([75] * 40))
    assert result == {"stress_flag": "Stable", "heart_rate": 75, "rmssd": 0.0}


def test_summarize_prefers_measured_rr_intervals() -> None:
    samples = _hr([60, 60, 60, 60, 60]) + _rr([800, 1200] * 10)

    result = stress.summarize(samples)

    assert result["rmssd"] == pytest.approx(400.0)
    assert result["stress_flag"] == "Stable"
