"""Digest and size helpers used by the file cache."""

import hashlib
import re
import time
from pathlib import Path
from typing import Optional, Union

SUPPORTED_ALGORITHMS = ("sha1", "sha256")

# Binary multipliers, matching the suffixes accepted in config files
_SIZE_UNITS = {
    "": 1,
    "b": 1,
    "k": 1024,
    "kb": 1024,
    "kib": 1024,
    "m": 1024**2,
    "mb": 1024**2,
    "mib": 1024**2,
    "g": 1024**3,
    "gb": 1024**3,
    "gib": 1024**3,
}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-z]*)\s*$", re.IGNORECASE)


def _new_hasher(algorithm: str):
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported algorithm: {algorithm}")
    return hashlib.new(algorithm)


def compute_checksum(file_path: Union[str, Path], algorithm: str = "sha256") -> str:
    """Compute checksum for a file.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm ('sha1', 'sha256')

    Returns:
        Hex digest of checksum

    Raises:
        ValueError: If algorithm not supported
        OSError: If the file cannot be read
    """
    hasher = _new_hasher(algorithm)

    # Read file in chunks to handle large files
    with open(file_path, "rb") as f:
        while chunk := f.read(8192):
            hasher.update(chunk)

    return hasher.hexdigest()


def expiry_cutoff(ttl_seconds: float, now: Optional[float] = None) -> float:
    """Return the timestamp at or before which an entry counts as expired.

    Args:
        ttl_seconds: Time-to-live in seconds (may be ``float('inf')``)
        now: Reference time, defaults to ``time.time()``

    Returns:
        POSIX timestamp ``now - ttl_seconds``
    """
    if now is None:
        now = time.time()
    return now - ttl_seconds


def parse_size(value: Union[int, float, str]) -> Union[int, float]:
    """Parse a human readable size into bytes.

    Accepts plain numbers and strings such as ``"300MiB"``, ``"1G"`` or
    ``"512k"``. Units are binary.

    Examples:
        >>> parse_size("300MiB")
        314572800
        >>> parse_size(1024)
        1024

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid size: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Size must be non-negative: {value}")
        return value

    match = _SIZE_RE.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")

    number, unit = match.groups()
    unit = unit.lower()
    if unit not in _SIZE_UNITS:
        raise ValueError(f"Unknown size unit {unit!r} in {value!r}")

    return int(float(number) * _SIZE_UNITS[unit])


def format_size(num_bytes: Union[int, float]) -> str:
    """Format a byte count for display (e.g. ``'1.50 MiB'``)."""
    if num_bytes == float("inf"):
        return "unlimited"
    for unit in ("B", "KiB", "MiB"):
        if abs(num_bytes) < 1024:
            return f"{num_bytes:.0f} {unit}" if unit == "B" else f"{num_bytes:.2f} {unit}"
        num_bytes /= 1024
    return f"{num_bytes:.2f} GiB"
