"""Utility modules for gemserver-sync.

This package provides:
- hashing: Base64 MD5 and CRC32C file digests, directory digests
- disk: Disk usage statistics for the volume hosting the sync root
- logging: Configured logging with JSON/text output support
"""

from gemserver_sync.utils.hashing import (
    md5_base64_file,
    crc32c_base64_file,
    hash_directory,
    compare_hashes,
)
from gemserver_sync.utils.disk import DiskUsage, get_disk_usage
from gemserver_sync.utils.logging import JsonFormatter, configure_root_logger

__all__ = [
    "md5_base64_file",
    "crc32c_base64_file",
    "hash_directory",
    "compare_hashes",
    "DiskUsage",
    "get_disk_usage",
    "JsonFormatter",
    "configure_root_logger",
]
