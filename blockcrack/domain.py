"""
Core Domain Objects for blockcrack.

Domain Objects:
    BlockEntry    — One published line of a Mastodon domain block-list
    BlockList     — A source instance and the entries it publishes
    DomainRecord  — Everything known about one digest across all sources
    Rejection     — An explicit discard of a malformed entry, with reason

A DomainRecord is keyed by its SHA-256 digest. The plaintext domain is
either disclosed directly by some source or recovered later by brute force
over one of the masks (e.g. "ma*todon.social") other sources published.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


WILDCARD = "*"
DIGEST_SIZE = 32


# =============================================================================
# REJECTION SYSTEM
# =============================================================================

class RejectionRule(Enum):
    """
    Reasons a block-list entry cannot become a DomainRecord.

    R1: Digest is not valid hex
    R2: Digest decodes to the wrong number of bytes
    R3: Domain string is empty
    R4: Severity is not one Mastodon publishes
    R5: Entry is missing a required field
    R6: Plain domain does not hash to the published digest
    """
    R1_MALFORMED_DIGEST = "malformed_digest"
    R2_DIGEST_LENGTH = "digest_length"
    R3_EMPTY_DOMAIN = "empty_domain"
    R4_UNKNOWN_SEVERITY = "unknown_severity"
    R5_MISSING_FIELD = "missing_field"
    R6_DIGEST_MISMATCH = "digest_mismatch"


class ValidationError(Exception):
    """Raised when a block-list entry fails validation and must be rejected."""

    def __init__(self, rule: RejectionRule, reason: str, source: Optional[str] = None):
        self.rule = rule
        self.reason = reason
        self.source = source
        super().__init__(f"[{rule.value}] {reason}")


@dataclass(frozen=True)
class Rejection:
    """
    An entry that was skipped, kept for the audit trail.

    Rejections are never stored; they only explain why a batch produced
    fewer records than it had entries.
    """
    source: str
    rule: RejectionRule
    reason: str
    raw_entry: str  # First 200 chars for debugging
    timestamp: datetime

    @classmethod
    def from_error(
        cls,
        error: ValidationError,
        raw_entry: str,
        timestamp: Optional[datetime] = None,
    ) -> Rejection:
        """Create a Rejection from a ValidationError."""
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        return cls(
            source=error.source or "unknown",
            rule=error.rule,
            reason=error.reason,
            raw_entry=raw_entry[:200],
            timestamp=timestamp,
        )


# =============================================================================
# BLOCK-LIST OBSERVATIONS
# =============================================================================

class Severity(Enum):
    """Block levels from https://docs.joinmastodon.org/methods/instance/#domain_blocks"""
    SILENCE = "silence"
    SUSPEND = "suspend"


@dataclass(frozen=True)
class BlockEntry:
    """
    One entry of an instance's public block-list.

    `domain` may be obfuscated with "*" wildcards; `digest` is the hex
    SHA-256 of the real domain string.
    """
    domain: str
    digest: str
    severity: Severity
    comment: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "digest": self.digest,
            "severity": self.severity.value,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: Optional[str] = None) -> BlockEntry:
        """
        Parse an entry as served by the Mastodon API.

        Raises:
            ValidationError: If a field is missing, not a string, or the
                severity is unknown
        """
        for name in ("domain", "digest", "severity"):
            if name not in data:
                raise ValidationError(
                    RejectionRule.R5_MISSING_FIELD,
                    f"Block-list entry is missing '{name}'",
                    source,
                )

        # null or non-string values count as missing
        for name in ("domain", "digest"):
            if not isinstance(data[name], str):
                raise ValidationError(
                    RejectionRule.R5_MISSING_FIELD,
                    f"Block-list entry has no usable '{name}': {data[name]!r}",
                    source,
                )

        try:
            severity = Severity(data["severity"])
        except ValueError:
            raise ValidationError(
                RejectionRule.R4_UNKNOWN_SEVERITY,
                f"Unknown severity: {data['severity']!r}",
                source,
            )

        return cls(
            domain=data["domain"],
            digest=data["digest"],
            severity=severity,
            comment=data.get("comment"),
        )


@dataclass
class BlockList:
    """
    The block-list published by one instance.

    Stored as-is so records can be rebuilt and attributed offline.
    """
    KEY_NAME = "blocklist"

    domain: str
    entries: list[BlockEntry] = field(default_factory=list)

    def get_id(self) -> str:
        return self.domain

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "list": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockList:
        # Entries were validated when fetched; stored lists are trusted.
        return cls(
            domain=data["domain"],
            entries=[
                BlockEntry(
                    domain=item["domain"],
                    digest=item["digest"],
                    severity=Severity(item["severity"]),
                    comment=item.get("comment"),
                )
                for item in data.get("list", [])
            ],
        )

    def find_entry(self, digest_hex: str) -> Optional[BlockEntry]:
        """Return the first entry referencing the digest, if any."""
        digest_hex = digest_hex.lower()
        for entry in self.entries:
            if entry.digest.lower() == digest_hex:
                return entry
        return None


# =============================================================================
# DOMAIN RECORD
# =============================================================================

@dataclass
class DomainRecord:
    """
    All partial knowledge about one digest.

    INVARIANTS:
        - digest is exactly 32 bytes
        - sha256(known_domain) == digest whenever known_domain is set
        - every mask has the true domain's length and agrees with it at
          every non-wildcard position
    """
    KEY_NAME = "domain"

    digest: bytes
    known_domain: Optional[str] = None
    partial_domains: set[str] = field(default_factory=set)

    def __post_init__(self):
        if len(self.digest) != DIGEST_SIZE:
            raise ValidationError(
                RejectionRule.R2_DIGEST_LENGTH,
                f"Digest must be {DIGEST_SIZE} bytes, got {len(self.digest)}",
            )
        self.digest = bytes(self.digest)
        self.partial_domains = set(self.partial_domains)

    def get_id(self) -> str:
        return self.digest.hex()

    @property
    def is_resolved(self) -> bool:
        return self.known_domain is not None

    def merge(self, other: DomainRecord) -> DomainRecord:
        """
        Combine two records for the same digest.

        The mask sets are unioned, which is associative and commutative.
        known_domain takes this record's value first and falls back to
        the other's, so merge is NOT commutative when both sides carry
        different known domains. Callers that care must order arguments.
        """
        assert self.digest == other.digest, "merge requires equal digests"

        if (
            self.known_domain is not None
            and other.known_domain is not None
            and self.known_domain != other.known_domain
        ):
            logger.warning(
                "Conflicting known domains for %s: keeping %r over %r",
                self.get_id(), self.known_domain, other.known_domain,
            )

        known = self.known_domain if self.known_domain is not None else other.known_domain
        return DomainRecord(
            digest=self.digest,
            known_domain=known,
            partial_domains=self.partial_domains | other.partial_domains,
        )

    def min_wildcard_count(self) -> Optional[int]:
        """Smallest number of wildcards over all masks (None without masks)."""
        if not self.partial_domains:
            return None
        return min(mask.count(WILDCARD) for mask in self.partial_domains)

    def sorted_masks(self) -> list[str]:
        """Masks cheapest first, then alphabetically."""
        return sorted(self.partial_domains, key=lambda m: (m.count(WILDCARD), m))

    def display_domain(self) -> str:
        """The known domain if resolved, otherwise the first mask."""
        if self.known_domain is not None:
            return self.known_domain
        if self.partial_domains:
            return sorted(self.partial_domains)[0]
        return self.get_id()

    def to_dict(self) -> dict[str, Any]:
        return {
            "digest": self.digest.hex(),
            "known_domain": self.known_domain,
            "partial_domains": sorted(self.partial_domains),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomainRecord:
        return cls(
            digest=bytes.fromhex(data["digest"]),
            known_domain=data.get("known_domain"),
            partial_domains=set(data.get("partial_domains", [])),
        )
