from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class SensorSample:
    device: str
    kind: str
    value: float
    unit: str
    received_at: datetime
    device_ms: Optional[int] = None
    channel: Optional[str] = None
    contact: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        row = {
            "device": self.device,
            "kind": self.kind,
            "value": self.value,
            "unit": self.unit,
            "time": self.received_at.isoformat(),
        }
        if self.device_ms is not None:
            row["device_ms"] = self.device_ms
        if self.channel is not None:
            row["channel"] = self.channel
        if self.contact is not None:
            row["contact"] = self.contact
        return row


@dataclass
class Batch:
    device: str
    sequence: int
    created_at: datetime
    samples: List[SensorSample] = field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None

    def __len__(self):
        return len(self.samples)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.device,
            "time": self.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            "batch": self.sequence,
            "count": len(self.samples),
            "samples": [s.to_dict() for s in self.samples],
            "summary": self.summary,
        }
