"""
Record Resolver for blockcrack.

Converts block-list entries into DomainRecords and merges every record
that shares a digest.

Design principles:
- One entry produces exactly one record, or one Rejection
- A malformed entry never stops the rest of its list
- A digest that no entry references never produces a record
- Merging never drops a mask; known domains keep first-seen precedence
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import reduce
from typing import Iterable, Optional

from ..domain import (
    BlockEntry,
    BlockList,
    DomainRecord,
    Rejection,
    RejectionRule,
    ValidationError,
)
from ..validation import decode_digest, is_masked, matches_digest

logger = logging.getLogger(__name__)


# =============================================================================
# RECORD BUILDER
# =============================================================================

def build_record(entry: BlockEntry, source: Optional[str] = None) -> DomainRecord:
    """
    Build a DomainRecord from a single block-list entry.

    An unmasked domain is taken as the known domain; a masked one becomes
    the only element of partial_domains.

    Raises:
        ValidationError: If the digest is malformed, the domain is empty,
            or a plain domain does not hash to the digest
    """
    digest = decode_digest(entry.digest, source)

    if not entry.domain:
        raise ValidationError(
            RejectionRule.R3_EMPTY_DOMAIN,
            f"Entry for digest {entry.digest[:16]}... has an empty domain",
            source,
        )

    if is_masked(entry.domain):
        return DomainRecord(digest=digest, partial_domains={entry.domain})

    if not matches_digest(entry.domain, digest):
        raise ValidationError(
            RejectionRule.R6_DIGEST_MISMATCH,
            f"Domain {entry.domain!r} does not hash to {entry.digest[:16]}...",
            source,
        )

    return DomainRecord(digest=digest, known_domain=entry.domain)


def merge_records(records: Iterable[DomainRecord]) -> DomainRecord:
    """
    Fold records for one digest, left to right.

    The earliest record carrying a known domain wins.
    """
    return reduce(lambda acc, record: acc.merge(record), records)


# =============================================================================
# BATCH RESOLUTION
# =============================================================================

@dataclass
class BatchResolutionResult:
    """Result of resolving one or more block-lists."""
    total_entries: int
    records: dict[str, DomainRecord] = field(default_factory=dict)
    rejected: list[Rejection] = field(default_factory=list)

    @property
    def resolution_rate(self) -> float:
        if self.total_entries == 0:
            return 0.0
        return (self.total_entries - len(self.rejected)) / self.total_entries

    def absorb(self, record: DomainRecord) -> None:
        """Merge a record into the result, existing knowledge first."""
        key = record.get_id()
        existing = self.records.get(key)
        self.records[key] = merge_records([existing, record]) if existing else record


def resolve_blocklists(blocklists: Iterable[BlockList]) -> BatchResolutionResult:
    """
    Resolve block-lists into one record per digest.

    Each entry is processed independently. Failures do not affect
    other entries or other lists.
    """
    result = BatchResolutionResult(total_entries=0)

    for blocklist in blocklists:
        for entry in blocklist.entries:
            result.total_entries += 1
            try:
                record = build_record(entry, blocklist.domain)
            except ValidationError as e:
                logger.warning("Skipping entry from %s: %s", blocklist.domain, e)
                result.rejected.append(
                    Rejection.from_error(e, raw_entry=f"{entry.domain} {entry.digest}")
                )
                continue
            result.absorb(record)

    return result
