"""
Runtime configuration for blockcrack.

Every value is a module-level constant with an environment override.
CLI flags take precedence over both.
"""

from __future__ import annotations

import os


def _int(name: str, default: int) -> int:
    """Read integer environment variables with graceful fallback."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float(name: str, default: float) -> float:
    """Read float environment variables with graceful fallback."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _str(name: str, default: str) -> str:
    """Read string environment variables with stripping."""
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw if raw else default


# =============================================================================
# CONFIGURATION CONSTANTS
# =============================================================================

# Persistence
DATABASE_FILE = _str("BLOCKCRACK_DATABASE", "database.json")
NAMESPACE = _str("BLOCKCRACK_NAMESPACE", "mastodon-blocks")

# Brute force
WORKERS = _int("BLOCKCRACK_WORKERS", os.cpu_count() or 1)
# 36**6 is roughly two billion candidates
MAX_CANDIDATES = _int("BLOCKCRACK_MAX_CANDIDATES", 36 ** 6)

# Block-list fetching
HTTP_TIMEOUT = _float("BLOCKCRACK_HTTP_TIMEOUT", 20.0)
# mstdn.jp serves a 404 without a browser user agent
USER_AGENT = _str(
    "BLOCKCRACK_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/112.0.0.0 Safari/537.36",
)

DEFAULT_SEED_DOMAINS = (
    "mastodon.social",
    "mstdn.jp",
    "mastodon.cloud",
    "mastodon.online",
    "mstdn.social",
    "mas.to",
    "home.social",
)

SEED_DOMAINS = tuple(
    d.strip().lower()
    for d in _str("BLOCKCRACK_SEED_DOMAINS", ",".join(DEFAULT_SEED_DOMAINS)).split(",")
    if d.strip()
)

# Logging
LOG_DIR = os.getenv("BLOCKCRACK_LOG_DIR", "").strip()
