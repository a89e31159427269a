"""
Validation helpers for blockcrack.

Digest decoding and mask inspection shared by the record builder, the
brute-force search and the reporting layer. All checks are binary: a
value is either usable or raises ValidationError.
"""

from __future__ import annotations

import binascii
import hashlib
from typing import Optional

from .domain import (
    DIGEST_SIZE,
    WILDCARD,
    RejectionRule,
    ValidationError,
)


# =============================================================================
# DIGESTS
# =============================================================================

def compute_digest(domain: str) -> bytes:
    """SHA-256 of the domain's UTF-8 bytes, as published by Mastodon."""
    return hashlib.sha256(domain.encode("utf-8")).digest()


def decode_digest(digest_hex: str, source: Optional[str] = None) -> bytes:
    """
    Decode a hex digest into exactly DIGEST_SIZE bytes.

    Raises:
        ValidationError: R1 if not hex, R2 if the length is wrong
    """
    try:
        digest = binascii.unhexlify(digest_hex.strip())
    except (binascii.Error, ValueError):
        raise ValidationError(
            RejectionRule.R1_MALFORMED_DIGEST,
            f"Digest is not valid hex: {digest_hex[:80]!r}",
            source,
        )

    if len(digest) != DIGEST_SIZE:
        raise ValidationError(
            RejectionRule.R2_DIGEST_LENGTH,
            f"Digest must be {DIGEST_SIZE} bytes, got {len(digest)}",
            source,
        )

    return digest


def matches_digest(domain: str, digest: bytes) -> bool:
    """Check a plaintext domain against a digest."""
    return compute_digest(domain) == digest


# =============================================================================
# MASKS
# =============================================================================

def is_masked(domain: str) -> bool:
    """True when the domain still contains wildcard positions."""
    return WILDCARD in domain


def count_wildcards(mask: str) -> int:
    return mask.count(WILDCARD)


def mask_matches(mask: str, domain: str) -> bool:
    """
    Positional match: same length, identical at every non-wildcard position.
    """
    if len(mask) != len(domain):
        return False
    return all(m == WILDCARD or m == d for m, d in zip(mask, domain))
