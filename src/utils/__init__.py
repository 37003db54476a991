"""Shared utilities for targetflow."""

from utils.env_utils import env_int, env_path, env_value
from utils.hashing import (
    DEFAULT_LONG_HASH,
    DEFAULT_SHORT_HASH,
    CacheKeyBuilder,
    hash_file,
    long_hash,
    short_hash,
    short_hash_text,
)

__all__ = [
    "DEFAULT_LONG_HASH",
    "DEFAULT_SHORT_HASH",
    "CacheKeyBuilder",
    "env_int",
    "env_path",
    "env_value",
    "hash_file",
    "long_hash",
    "short_hash",
    "short_hash_text",
]
