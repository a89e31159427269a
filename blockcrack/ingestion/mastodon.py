"""
Mastodon Block-list Ingestion for blockcrack.

Fetches the public domain block-list of an instance:

    GET https://{domain}/api/v1/instance/domain_blocks

Each returned item carries the (possibly obfuscated) domain, the SHA-256
digest of the real domain, a severity and an optional comment.

Design principles:
- HTTP errors are raised to the caller unchanged; no retries here
- Malformed items are rejected one by one, never the whole list
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from .. import config
from ..domain import BlockEntry, BlockList, Rejection, ValidationError

logger = logging.getLogger(__name__)

DOMAIN_BLOCKS_PATH = "/api/v1/instance/domain_blocks"


class BlockListFormatError(Exception):
    """Raised when an instance answers with something other than a list."""
    pass


def blocklist_url(domain: str) -> str:
    return f"https://{domain}{DOMAIN_BLOCKS_PATH}"


# =============================================================================
# PARSING
# =============================================================================

@dataclass
class FetchResult:
    """A parsed block-list plus the items that could not be parsed."""
    blocklist: BlockList
    rejected: list[Rejection] = field(default_factory=list)


def parse_blocklist(domain: str, payload: Any) -> FetchResult:
    """
    Convert the JSON payload of the domain_blocks endpoint.

    Raises:
        BlockListFormatError: If the payload is not a JSON array
    """
    if not isinstance(payload, list):
        raise BlockListFormatError(
            f"Expected a list of domain blocks from {domain}, got {type(payload).__name__}"
        )

    entries: list[BlockEntry] = []
    rejected: list[Rejection] = []
    for item in payload:
        if not isinstance(item, dict):
            logger.warning("Ignoring non-object block from %s: %r", domain, item)
            continue
        try:
            entries.append(BlockEntry.from_dict(item, source=domain))
        except ValidationError as e:
            logger.warning("Skipping block from %s: %s", domain, e)
            rejected.append(Rejection.from_error(e, raw_entry=repr(item)))

    return FetchResult(blocklist=BlockList(domain=domain, entries=entries), rejected=rejected)


# =============================================================================
# FETCHING
# =============================================================================

def create_client(
    timeout: Optional[float] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """HTTP client with the user agent instances expect."""
    return httpx.Client(
        transport=transport,
        timeout=httpx.Timeout(timeout if timeout is not None else config.HTTP_TIMEOUT),
        headers={"user-agent": config.USER_AGENT},
        follow_redirects=True,
    )


def fetch_blocklist(domain: str, client: Optional[httpx.Client] = None) -> FetchResult:
    """
    Download and parse one instance's block-list.

    Raises:
        httpx.HTTPError: On transport failures and non-2xx responses
        BlockListFormatError: If the body is not a list
    """
    owns_client = client is None
    if client is None:
        client = create_client()

    try:
        response = client.get(blocklist_url(domain))
        response.raise_for_status()
        payload = response.json()
    finally:
        if owns_client:
            client.close()

    result = parse_blocklist(domain, payload)
    logger.info(
        "Loaded %d blocklist items from %s", len(result.blocklist.entries), domain
    )
    return result
