"""File and directory digest utilities.

Digests are MD5, base64-encoded, which is the encoding Google Cloud Storage
reports in an object's ``md5Hash`` field. Matching the store's encoding lets
local and remote copies be compared without any conversion.
"""

import base64
import hashlib
from pathlib import Path
from typing import Dict, Optional

import google_crc32c

# Buffer size for file reading (64KB is good for most filesystems)
BUFFER_SIZE = 65536


def md5_base64_file(file_path: Path) -> str:
    """Compute the base64-encoded MD5 digest of a file.

    Args:
        file_path: Path to the file to hash

    Returns:
        Base64 string of the raw 16-byte MD5 digest (24 characters)

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the path is not a regular file
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if not file_path.is_file():
        raise ValueError(f"Not a file: {file_path}")

    hasher = hashlib.md5()
    with open(file_path, "rb") as f:
        while True:
            data = f.read(BUFFER_SIZE)
            if not data:
                break
            hasher.update(data)

    return base64.b64encode(hasher.digest()).decode("ascii")


def md5_base64_bytes(data: bytes) -> str:
    """Base64 MD5 of an in-memory byte string."""
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


def crc32c_base64_file(file_path: Path) -> str:
    """Base64 CRC32C of a file, big-endian, as Cloud Storage reports ``crc32c``.

    Composite objects carry no MD5, so this is the only checksum to compare
    them against.
    """
    checksum = google_crc32c.Checksum()
    with open(file_path, "rb") as f:
        while True:
            data = f.read(BUFFER_SIZE)
            if not data:
                break
            checksum.update(data)
    return base64.b64encode(checksum.digest()).decode("ascii")


def hash_directory(
    directory: Path,
    exclude_marker: Optional[str] = None,
) -> Dict[str, str]:
    """Hash all files in a directory, returning relative path -> digest mapping.

    Args:
        directory: Directory to hash
        exclude_marker: Skip files whose relative path contains this substring

    Returns:
        Dict mapping relative POSIX paths to base64 MD5 digests

    Raises:
        FileNotFoundError: If directory doesn't exist
    """
    directory = Path(directory)

    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    if not directory.is_dir():
        raise ValueError(f"Not a directory: {directory}")

    result: Dict[str, str] = {}

    for file_path in sorted(directory.rglob("*")):
        if not file_path.is_file():
            continue
        key = file_path.relative_to(directory).as_posix()
        if exclude_marker and exclude_marker in key:
            continue
        try:
            result[key] = md5_base64_file(file_path)
        except OSError:
            # Files removed or unreadable mid-walk are picked up next pass
            pass

    return result


def compare_hashes(
    source_hashes: Dict[str, str],
    target_hashes: Dict[str, str]
) -> Dict[str, list]:
    """Compare two hash dictionaries to find differences.

    Args:
        source_hashes: Digests on the source side (local tree)
        target_hashes: Digests on the target side (object store)

    Returns:
        Dict with keys:
            - "added": Keys in source but not target
            - "removed": Keys in target but not source
            - "modified": Keys in both but with different digests
            - "unchanged": Keys identical in both
    """
    source_keys = set(source_hashes.keys())
    target_keys = set(target_hashes.keys())

    added = list(source_keys - target_keys)
    removed = list(target_keys - source_keys)

    common = source_keys & target_keys
    modified = []
    unchanged = []

    for key in common:
        if source_hashes[key] != target_hashes[key]:
            modified.append(key)
        else:
            unchanged.append(key)

    return {
        "added": sorted(added),
        "removed": sorted(removed),
        "modified": sorted(modified),
        "unchanged": sorted(unchanged),
    }
