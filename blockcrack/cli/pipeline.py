"""
Pipeline Orchestrator for blockcrack.

Stages, each runnable on its own from the CLI:
    1. fetch   — download block-lists from seed instances into the store
    2. process — fold every stored entry into per-digest DomainRecords
    3. crack   — brute-force unresolved records, checkpointing each success
    4. report  — attribute every record to the instances that block it

Every stage takes an explicit NamespaceView; nothing is global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import httpx

from ..domain import BlockList, DomainRecord, Rejection, Severity
from ..ingestion.mastodon import BlockListFormatError, create_client, fetch_blocklist
from ..resolution.record_resolver import resolve_blocklists
from ..search.brute_force import SearchOutcome, SearchResult, brute_force
from ..search.cancel import CancelToken
from ..storage.store import NamespaceView
from ..validation import mask_matches, matches_digest

logger = logging.getLogger(__name__)


# =============================================================================
# STAGE 1: FETCH
# =============================================================================

@dataclass
class FetchSummary:
    """Outcome of fetching several block-lists."""
    loaded: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    rejected: list[Rejection] = field(default_factory=list)


def fetch_blocklists(
    view: NamespaceView,
    domains: Iterable[str],
    client: Optional[httpx.Client] = None,
) -> FetchSummary:
    """
    Fetch each instance's block-list and store it.

    A failing instance is logged and skipped; the others still load.
    """
    summary = FetchSummary()
    owns_client = client is None
    if client is None:
        client = create_client()

    try:
        for domain in domains:
            try:
                result = fetch_blocklist(domain, client=client)
            except (httpx.HTTPError, BlockListFormatError, ValueError) as e:
                logger.error("Error while trying to load blocklist from %s: %s", domain, e)
                summary.failed[domain] = str(e)
                continue

            view.set(result.blocklist)
            summary.loaded[domain] = len(result.blocklist.entries)
            summary.rejected.extend(result.rejected)
    finally:
        if owns_client:
            client.close()

    return summary


# =============================================================================
# STAGE 2: PROCESS
# =============================================================================

@dataclass
class ProcessSummary:
    """Outcome of folding stored block-lists into records."""
    total_entries: int = 0
    created: int = 0
    updated: int = 0
    rejected: list[Rejection] = field(default_factory=list)


def process_blocklists(view: NamespaceView) -> ProcessSummary:
    """
    Merge every stored block-list entry into the stored records.

    Records already in the store go first in each merge, so a domain
    recovered by an earlier crack run is never replaced.
    """
    blocklists = list(view.iter_objects(BlockList))
    resolution = resolve_blocklists(blocklists)

    summary = ProcessSummary(
        total_entries=resolution.total_entries,
        rejected=list(resolution.rejected),
    )

    for key in sorted(resolution.records):
        record = resolution.records[key]
        existing = view.get(DomainRecord, key)
        if existing is not None:
            record = existing.merge(record)
        if view.set(record):
            summary.updated += 1
        else:
            summary.created += 1

    logger.info(
        "Processed %d entries: %d new records, %d updated, %d rejected",
        summary.total_entries, summary.created, summary.updated, len(summary.rejected),
    )
    return summary


# =============================================================================
# STAGE 3: CRACK
# =============================================================================

def crack_queue(records: Iterable[DomainRecord]) -> list[DomainRecord]:
    """
    Unresolved records with at least one mask, cheapest search first.

    Cost is the smallest wildcard count over a record's masks; ties are
    broken by digest so the order is stable between runs.
    """
    pending = [r for r in records if not r.is_resolved and r.partial_domains]
    return sorted(pending, key=lambda r: (r.min_wildcard_count(), r.get_id()))


@dataclass
class CrackSummary:
    """Outcome of a crack run."""
    total_records: int = 0
    attempted: int = 0
    results: list[tuple[str, SearchResult]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def cracked(self) -> list[tuple[str, SearchResult]]:
        return [(key, r) for key, r in self.results if r.found]


Searcher = Callable[..., SearchResult]


def crack_records(
    view: NamespaceView,
    *,
    workers: Optional[int] = None,
    max_candidates: Optional[int] = None,
    cancel: Optional[CancelToken] = None,
    checkpoint: Optional[Callable[[], None]] = None,
    searcher: Searcher = brute_force,
) -> CrackSummary:
    """
    Brute-force every unresolved record, cheapest first.

    Each success is written to the store and checkpointed before the next
    record starts, so an interrupted run loses nothing it already found.

    Raises:
        ConfigurationError: If a mask is too long to search
    """
    if checkpoint is None:
        checkpoint = view.save

    records = list(view.iter_objects(DomainRecord))
    queue = crack_queue(records)
    summary = CrackSummary(total_records=len(records))
    logger.info(
        "Found %d/%d entries with no fully known domain", len(queue), len(records)
    )

    for record in queue:
        key = record.get_id()
        for mask in record.sorted_masks():
            if cancel is not None and cancel.is_cancelled():
                summary.cancelled = True
                return summary

            summary.attempted += 1
            result = searcher(
                mask,
                record.digest,
                workers=workers,
                max_candidates=max_candidates,
                cancel=cancel,
            )
            summary.results.append((key, result))
            logger.info("%s: %s -> %s in %.2fs", key, mask, result.outcome.value, result.elapsed)

            if result.outcome is SearchOutcome.CANCELLED:
                summary.cancelled = True
                return summary

            if result.found:
                if not (
                    mask_matches(mask, result.domain)
                    and matches_digest(result.domain, record.digest)
                ):
                    logger.error("Discarding inconsistent match %r for %s", result.domain, key)
                    continue
                record.known_domain = result.domain
                view.set(record)
                checkpoint()
                break

    return summary


# =============================================================================
# STAGE 4: REPORT
# =============================================================================

@dataclass(frozen=True)
class Attribution:
    """One instance blocking a record, with its stated reason."""
    source: str
    severity: Severity
    comment: Optional[str] = None


@dataclass
class ReportRow:
    record: DomainRecord
    attributions: list[Attribution]

    @property
    def display_domain(self) -> str:
        return self.record.display_domain()


def find_attributions(
    record: DomainRecord,
    blocklists: Iterable[BlockList],
) -> list[Attribution]:
    """Every block-list whose entries reference the record's digest."""
    attributions = []
    for blocklist in blocklists:
        entry = blocklist.find_entry(record.get_id())
        if entry is not None:
            attributions.append(
                Attribution(
                    source=blocklist.domain,
                    severity=entry.severity,
                    comment=entry.comment,
                )
            )
    return attributions


def build_report(view: NamespaceView) -> list[ReportRow]:
    """One row per stored record, in digest order."""
    blocklists = list(view.iter_objects(BlockList))
    return [
        ReportRow(record=record, attributions=find_attributions(record, blocklists))
        for record in view.iter_objects(DomainRecord)
    ]
