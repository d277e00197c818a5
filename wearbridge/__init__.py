"""BLE wearable ingestion: notifications in, sensor batches out."""

from wearbridge.models import Batch, SensorSample
from wearbridge.session import WearableSession

__all__ = ["Batch", "SensorSample", "WearableSession"]

__version__ = "0.3.0"
