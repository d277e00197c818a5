import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

HR_COLUMN = "HR (bpm)"


def build_dataframe(samples):
    rows = [{"timestamp": s.received_at, HR_COLUMN: s.value} for s in samples if s.kind == "heart_rate"]
    df = pd.DataFrame(rows, columns=["timestamp", HR_COLUMN])
    df.set_index("timestamp", inplace=True)
    return df


def remove_outliers_and_interpolate(rr, low_rri=300, high_rri=2000):
    rr = rr.mask((rr < low_rri) | (rr > high_rri), np.nan)
    return rr.interpolate(method="linear")


def rr_series(samples, df=None, min_intervals=15):
    """RR intervals in ms: measured ones when the strap sends them, else derived from HR."""
    measured = [s.value for s in samples if s.kind == "rr_interval"]
    if len(measured) >= min_intervals:
        rr = pd.Series(measured, dtype=float)
    else:
        if df is None:
            df = build_dataframe(samples)
        resampled = df.resample("1s").mean().ffill()
        hr = resampled[HR_COLUMN].interpolate(method="linear")
        rr = 60000 / hr
    return remove_outliers_and_interpolate(rr)


def calculate_rmssd(rr_intervals):
    diff = np.diff(rr_intervals)
    squared_diff = np.square(diff)
    mean_squared_diff = np.mean(squared_diff)
    return np.sqrt(mean_squared_diff)


def compute_rmssd_series(rr, window_size=15, step_size=5):
    rmssd_values = []
    for start in range(0, len(rr) - window_size + 1, step_size):
        end = start + window_size
        window = rr.iloc[start:end].dropna()
        if len(window) >= 5:
            rmssd = calculate_rmssd(window)
            rmssd_values.extend([rmssd] * step_size)
    while len(rmssd_values) < len(rr):
        rmssd_values.append(rmssd_values[-1] if rmssd_values else np.nan)
    return rmssd_values[:len(rr)]


def classify_stress_hierarchy(rmssd_value, mean_rmssd, std_rmssd):
    if std_rmssd < 0.001:
        return "Stable"
    if rmssd_value <= mean_rmssd - 0.7 * std_rmssd:
        return "Stressed"
    elif rmssd_value <= mean_rmssd - 0.5 * std_rmssd:
        return "Aroused"
    elif rmssd_value <= mean_rmssd + 0.25 * std_rmssd:
        return "Stable"
    else:
        return "Relaxed"


def summarize(samples, min_samples=5):
    """HRV summary for one batch, or an error dict when there is too little data."""
    df = build_dataframe(samples)
    if len(df) < min_samples:
        return {"status": "error", "message": f"Not enough heart rate data (found {len(df)})"}

    rr = rr_series(samples, df)
    rmssd = pd.Series(compute_rmssd_series(rr), index=rr.index, dtype=float)
    valid_rmssd = rmssd.dropna()

    if len(valid_rmssd) < 5:
        return {"status": "error", "message": f"Not enough valid RMSSD data (found {len(valid_rmssd)})"}

    rmssd_mean = np.nanmean(valid_rmssd)
    rmssd_std = np.nanstd(valid_rmssd)
    logger.debug("RMSSD mean=%.2f std=%.2f n=%d", rmssd_mean, rmssd_std, len(valid_rmssd))

    last_window = valid_rmssd.iloc[-15:]
    classifications = last_window.apply(lambda x: classify_stress_hierarchy(x, rmssd_mean, rmssd_std))
    logger.debug("Classifications=%s", classifications.value_counts().to_dict())

    if "Stressed" in classifications.values:
        status = "Stressed"
    elif "Aroused" in classifications.values:
        status = "Aroused"
    elif "Stable" in classifications.values:
        status = "Stable"
    else:
        status = "Relaxed"

    return {
        "stress_flag": status,
        "heart_rate": int(round(df[HR_COLUMN].mean())),
        "rmssd": round(float(valid_rmssd.iloc[-1]), 2),
    }
