"""Metric data types"""

from dataclasses import asdict, dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Sample:
    """One timestamped (cpu, ram, disk) measurement, percentages 0-100"""
    timestamp: int  # ms since epoch
    cpu: float
    ram: float
    disk: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Sample":
        return cls(
            timestamp=int(row["ts"]),
            cpu=float(row["cpu"]),
            ram=float(row["ram"]),
            disk=float(row["disk"]),
        )
