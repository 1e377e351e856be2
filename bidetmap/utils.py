"""Shared helpers: deterministic hashing and run metadata."""

import hashlib
from datetime import date
from typing import Optional

_HASH_DIGITS = 12
_HASH_SPACE = 16 ** _HASH_DIGITS


def stable_hash(value: str, salt: str = "") -> int:
    """
    Deterministic integer hash of `value`, independent of process and platform.

    Python's built-in hash() is salted per process, so it cannot drive values
    that must be identical across runs.
    """
    digest = hashlib.sha256(f"{salt}:{value}".encode("utf-8")).hexdigest()
    return int(digest[:_HASH_DIGITS], 16)


def hash_fraction(value: str, salt: str = "") -> float:
    """stable_hash scaled into [0, 1)."""
    return stable_hash(value, salt) / _HASH_SPACE


def short_digest(value: str, length: int = 12) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:length]


def run_date(today: Optional[date] = None) -> str:
    """ISO date stamped on every location of a run."""
    return (today or date.today()).isoformat()
