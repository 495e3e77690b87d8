"""Stable string hashing for rollout buckets.

Python's builtin ``hash()`` is salted per process, so every algorithm here is
computed from the encoded identifier: UTF-8 bytes for the digests, UTF-16
code units for the legacy string hash.
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Union

BUCKET_COUNT = 100


class HashAlgorithm(Enum):
    """Supported rollout hash algorithms."""

    MD5 = "md5"
    SHA256 = "sha256"
    STRING31 = "string31"  # Legacy dashboard hash: h = h * 31 + ch, 32-bit signed


def _string31(value: str) -> int:
    # Hashes UTF-16 code units, so astral characters count as surrogate pairs
    data = value.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    # Reinterpret as signed 32-bit
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def stable_hash(
    value: str,
    algorithm: Union[HashAlgorithm, str] = HashAlgorithm.MD5,
) -> int:
    """Return a deterministic integer hash of ``value``.

    MD5 and SHA256 use the first 32 bits of the digest. STRING31 may return a
    negative number; callers reduce with ``abs``.
    """
    algorithm = HashAlgorithm(algorithm)
    if algorithm is HashAlgorithm.STRING31:
        return _string31(value)

    data = value.encode("utf-8")
    if algorithm is HashAlgorithm.SHA256:
        digest = hashlib.sha256(data).hexdigest()
    else:
        digest = hashlib.md5(data).hexdigest()  # nosec B324 - stable rollout hashing
    return int(digest[:8], 16)


def rollout_bucket(
    value: str,
    algorithm: Union[HashAlgorithm, str] = HashAlgorithm.MD5,
) -> int:
    """Get bucket (0-99) for percentage rollouts."""
    return abs(stable_hash(value, algorithm)) % BUCKET_COUNT


__all__ = ["BUCKET_COUNT", "HashAlgorithm", "stable_hash", "rollout_bucket"]
