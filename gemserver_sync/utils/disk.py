"""Disk usage statistics for the volume hosting the sync root."""

import shutil
from dataclasses import dataclass
from pathlib import Path


@dataclass
class DiskUsage:
    """Volume usage statistics.

    Attributes:
        total_bytes: Total capacity in bytes
        used_bytes: Used space in bytes
        free_bytes: Available space in bytes
        percent_used: Usage percentage (0-100)
    """
    total_bytes: int
    used_bytes: int
    free_bytes: int
    percent_used: float

    @property
    def ratio(self) -> float:
        """Used bytes divided by total bytes (0.0 for an empty volume)."""
        if self.total_bytes <= 0:
            return 0.0
        return self.used_bytes / self.total_bytes

    @property
    def total_mb(self) -> float:
        """Total capacity in megabytes."""
        return self.total_bytes / (1024 * 1024)

    @property
    def used_mb(self) -> float:
        """Used space in megabytes."""
        return self.used_bytes / (1024 * 1024)

    @property
    def free_mb(self) -> float:
        """Free space in megabytes."""
        return self.free_bytes / (1024 * 1024)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "total_bytes": self.total_bytes,
            "used_bytes": self.used_bytes,
            "free_bytes": self.free_bytes,
            "percent_used": self.percent_used,
            "ratio": round(self.ratio, 5),
            "total_mb": round(self.total_mb, 2),
            "used_mb": round(self.used_mb, 2),
            "free_mb": round(self.free_mb, 2),
        }


def get_disk_usage(volume_root: Path) -> DiskUsage:
    """Read usage of the volume containing ``volume_root``.

    Args:
        volume_root: Any path on the volume (usually ``/``)

    Returns:
        DiskUsage for that volume

    Raises:
        OSError: If the path cannot be stat'ed
    """
    usage = shutil.disk_usage(str(volume_root))
    percent = (usage.used / usage.total * 100) if usage.total else 0.0
    return DiskUsage(
        total_bytes=usage.total,
        used_bytes=usage.used,
        free_bytes=usage.free,
        percent_used=round(percent, 2),
    )
