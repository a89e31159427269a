"""
Brute-force Search for blockcrack.

Recovers the domain behind a mask such as "ma*todon.social" given the
SHA-256 digest the instance published for it.

Search space:
    Every "*" is replaced by one of 36 symbols (a-z, 0-9). Candidates are
    numbered by a mixed-radix counter with one digit per wildcard, the
    leftmost wildcard being the least significant digit. Index 0 fills all
    wildcards with "a".

Known limitation:
    A masked "." or "-" can never be recovered because separators are not
    part of the wildcard alphabet. Such searches end EXHAUSTED.

Parallelism:
    The index space is cut into one contiguous range per worker process.
    The first worker to find a match sets a shared stop event; the others
    notice it within CANCEL_CHECK_INTERVAL candidates and return.
"""

from __future__ import annotations

import hashlib
import logging
import multiprocessing
import time
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from .. import config
from ..domain import DIGEST_SIZE, WILDCARD
from ..validation import count_wildcards
from .cancel import CancelToken

logger = logging.getLogger(__name__)


# =============================================================================
# SEARCH CONSTANTS
# =============================================================================

ALPHABET = b"abcdefghijklmnopqrstuvwxyz0123456789"
ALPHABET_SIZE = len(ALPHABET)

# Masks are built in a fixed-size scratch buffer
MAX_MASK_LENGTH = 32

# How often a worker polls the stop event
CANCEL_CHECK_INTERVAL = 4096

# Spaces smaller than this are searched in-process
PARALLEL_THRESHOLD = ALPHABET_SIZE ** 3

# How often the coordinator polls the session cancel token (seconds)
POLL_INTERVAL = 0.2

_WILDCARD_BYTE = WILDCARD.encode("ascii")[0]


class ConfigurationError(Exception):
    """Raised when a search cannot be set up (e.g. the mask is too long)."""
    pass


class SearchOutcome(Enum):
    """How a search ended. Only FOUND carries a domain."""
    FOUND = "found"
    EXHAUSTED = "exhausted"
    INFEASIBLE = "infeasible"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SearchResult:
    """Result of brute-forcing one mask."""
    mask: str
    outcome: SearchOutcome
    domain: Optional[str] = None
    space_size: int = 0
    elapsed: float = 0.0

    @property
    def found(self) -> bool:
        return self.outcome is SearchOutcome.FOUND


# =============================================================================
# CANDIDATE GENERATOR
# =============================================================================

def encode_mask(mask: str) -> bytes:
    """
    Encode a mask into its byte template.

    Raises:
        ConfigurationError: If the mask does not fit the scratch buffer
    """
    template = mask.encode("utf-8")
    if len(template) > MAX_MASK_LENGTH:
        raise ConfigurationError(
            f"Mask {mask!r} is {len(template)} bytes, maximum is {MAX_MASK_LENGTH}"
        )
    return template


def wildcard_positions(template: bytes) -> tuple[int, ...]:
    """Byte offsets of every wildcard, left to right."""
    return tuple(i for i, b in enumerate(template) if b == _WILDCARD_BYTE)


def search_space_size(mask: str) -> int:
    return ALPHABET_SIZE ** count_wildcards(mask)


def _index_to_digits(index: int, width: int) -> list[int]:
    digits = []
    for _ in range(width):
        index, digit = divmod(index, ALPHABET_SIZE)
        digits.append(digit)
    return digits


def build_candidate(mask: str, index: int) -> str:
    """
    Return the candidate with the given counter index.

    Raises:
        ConfigurationError: If the mask is too long
        IndexError: If index is outside the search space
    """
    template = encode_mask(mask)
    positions = wildcard_positions(template)
    if not 0 <= index < ALPHABET_SIZE ** len(positions):
        raise IndexError(f"Candidate index {index} out of range for {mask!r}")

    buffer = bytearray(template)
    for pos, digit in zip(positions, _index_to_digits(index, len(positions))):
        buffer[pos] = ALPHABET[digit]
    return buffer.decode("utf-8")


def iter_candidates(mask: str) -> Iterator[str]:
    """Yield every candidate for the mask in counter order."""
    template = encode_mask(mask)
    positions = wildcard_positions(template)
    buffer = bytearray(template)
    for _ in _walk(buffer, positions, 0, ALPHABET_SIZE ** len(positions)):
        yield buffer.decode("utf-8")


def _walk(
    buffer: bytearray,
    positions: tuple[int, ...],
    start: int,
    stop: int,
) -> Iterator[int]:
    """
    Fill buffer with candidate `start`, then advance it in place.

    Yields each index after the buffer holds that candidate. Incrementing
    the counter touches only the digits that carry, so most steps rewrite
    a single byte.
    """
    digits = _index_to_digits(start, len(positions))
    for pos, digit in zip(positions, digits):
        buffer[pos] = ALPHABET[digit]

    for index in range(start, stop):
        yield index
        for k, pos in enumerate(positions):
            digit = digits[k] + 1
            if digit < ALPHABET_SIZE:
                digits[k] = digit
                buffer[pos] = ALPHABET[digit]
                break
            digits[k] = 0
            buffer[pos] = ALPHABET[0]


# =============================================================================
# DIGEST VERIFIER
# =============================================================================

def verify_candidate(candidate: bytes, digest: bytes) -> bool:
    """True when the candidate's SHA-256 equals the target digest."""
    return hashlib.sha256(candidate).digest() == digest


def search_range(
    template: bytes,
    positions: tuple[int, ...],
    digest: bytes,
    start: int,
    stop: int,
    stop_event=None,
) -> Optional[str]:
    """
    Test candidates [start, stop) and return the first match.

    Each call owns its scratch buffer. Returns None when the range holds
    no match or the stop event was set.
    """
    buffer = bytearray(template)
    checked = 0
    for _ in _walk(buffer, positions, start, stop):
        if stop_event is not None and checked % CANCEL_CHECK_INTERVAL == 0:
            if stop_event.is_set():
                return None
        checked += 1
        if verify_candidate(buffer, digest):
            return buffer.decode("utf-8")
    return None


# =============================================================================
# PARALLEL SEARCH COORDINATOR
# =============================================================================

# Set in each worker process by the pool initializer
_worker_stop_event = None


def _install_stop_event(event) -> None:
    global _worker_stop_event
    _worker_stop_event = event


def _search_range_worker(
    template: bytes,
    positions: tuple[int, ...],
    digest: bytes,
    start: int,
    stop: int,
) -> Optional[str]:
    return search_range(template, positions, digest, start, stop, _worker_stop_event)


def split_ranges(total: int, parts: int) -> list[tuple[int, int]]:
    """
    Cut [0, total) into at most `parts` disjoint, contiguous, non-empty ranges.

    Range sizes differ by at most one.
    """
    parts = max(1, min(parts, total))
    base, extra = divmod(total, parts)
    ranges = []
    start = 0
    for i in range(parts):
        end = start + base + (1 if i < extra else 0)
        ranges.append((start, end))
        start = end
    return ranges


def _search_parallel(
    template: bytes,
    positions: tuple[int, ...],
    digest: bytes,
    total: int,
    workers: int,
    cancel: Optional[CancelToken],
) -> Optional[str]:
    """
    Run one worker per range and return the first match reported.

    All workers are joined before returning.
    """
    stop = multiprocessing.Event()
    ranges = split_ranges(total, workers)
    found: Optional[str] = None

    with ProcessPoolExecutor(
        max_workers=len(ranges),
        initializer=_install_stop_event,
        initargs=(stop,),
    ) as executor:
        pending = {
            executor.submit(_search_range_worker, template, positions, digest, start, end)
            for start, end in ranges
        }
        try:
            while pending:
                done, pending = wait(
                    pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED
                )
                for future in done:
                    result = future.result()
                    if result is not None and found is None:
                        found = result
                        stop.set()
                if cancel is not None and cancel.is_cancelled():
                    stop.set()
        finally:
            stop.set()

    return found


def brute_force(
    mask: str,
    digest: bytes,
    *,
    workers: Optional[int] = None,
    max_candidates: Optional[int] = None,
    cancel: Optional[CancelToken] = None,
    parallel_threshold: int = PARALLEL_THRESHOLD,
) -> SearchResult:
    """
    Recover the domain behind `mask` whose SHA-256 is `digest`.

    Args:
        mask: Domain with "*" at every unknown position
        digest: 32-byte target digest
        workers: Worker processes (defaults to config.WORKERS)
        max_candidates: Refuse spaces larger than this (config.MAX_CANDIDATES)
        cancel: Session token; cancelling it stops the search early
        parallel_threshold: Spaces below this are searched in-process

    Returns:
        SearchResult; FOUND carries the domain. EXHAUSTED, INFEASIBLE and
        CANCELLED are ordinary outcomes, not errors.

    Raises:
        ConfigurationError: If the mask is too long or the digest malformed
    """
    if len(digest) != DIGEST_SIZE:
        raise ConfigurationError(
            f"Target digest must be {DIGEST_SIZE} bytes, got {len(digest)}"
        )
    if workers is None:
        workers = config.WORKERS
    if max_candidates is None:
        max_candidates = config.MAX_CANDIDATES

    template = encode_mask(mask)
    positions = wildcard_positions(template)
    total = ALPHABET_SIZE ** len(positions)

    if total > max_candidates:
        logger.info(
            "Skipping %s: %d candidates exceed the limit of %d",
            mask, total, max_candidates,
        )
        return SearchResult(mask=mask, outcome=SearchOutcome.INFEASIBLE, space_size=total)

    if cancel is not None and cancel.is_cancelled():
        return SearchResult(mask=mask, outcome=SearchOutcome.CANCELLED, space_size=total)

    started = time.monotonic()
    if workers <= 1 or total < parallel_threshold:
        stop_event = cancel.event if cancel is not None else None
        found = search_range(template, positions, digest, 0, total, stop_event)
    else:
        found = _search_parallel(template, positions, digest, total, workers, cancel)
    elapsed = time.monotonic() - started

    if found is not None:
        outcome = SearchOutcome.FOUND
    elif cancel is not None and cancel.is_cancelled():
        outcome = SearchOutcome.CANCELLED
    else:
        outcome = SearchOutcome.EXHAUSTED
        if any(sep in mask for sep in ".-"):
            logger.debug(
                "No match for %s; masked separators cannot be recovered", mask
            )

    logger.debug("%s: %s after %.2fs", mask, outcome.value, elapsed)
    return SearchResult(
        mask=mask,
        outcome=outcome,
        domain=found,
        space_size=total,
        elapsed=elapsed,
    )
