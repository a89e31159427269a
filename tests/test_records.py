"""
Tests for record building and merging.

These tests verify:
1. Entries become records with the right known/partial split
2. Malformed entries are rejected per entry, not per batch
3. A plain domain must hash to its digest
4. Mask union is associative and commutative
5. known_domain merging is first-argument-wins
6. No record exists for a digest no entry mentions
"""

import hashlib

import pytest

from blockcrack.domain import (
    BlockEntry,
    BlockList,
    DomainRecord,
    RejectionRule,
    Severity,
    ValidationError,
)
from blockcrack.validation import (
    compute_digest,
    count_wildcards,
    decode_digest,
    mask_matches,
    matches_digest,
)
from blockcrack.resolution.record_resolver import (
    build_record,
    merge_records,
    resolve_blocklists,
)


# =============================================================================
# TEST FIXTURES
# =============================================================================

def sha(domain: str) -> bytes:
    return hashlib.sha256(domain.encode()).digest()


def make_entry(
    domain: str,
    digest_of: str = None,
    severity: Severity = Severity.SUSPEND,
    comment: str = None,
) -> BlockEntry:
    """Helper to create a BlockEntry whose digest is the sha256 of digest_of."""
    if digest_of is None:
        digest_of = domain
    return BlockEntry(
        domain=domain,
        digest=sha(digest_of).hex(),
        severity=severity,
        comment=comment,
    )


DIGEST = sha("example.com")


# =============================================================================
# VALIDATION TESTS
# =============================================================================

class TestDigestValidation:
    """Test digest decoding."""

    def test_valid_digest_decodes(self):
        assert decode_digest(DIGEST.hex()) == DIGEST

    def test_uppercase_hex_accepted(self):
        assert decode_digest(DIGEST.hex().upper()) == DIGEST

    def test_non_hex_rejected(self):
        """A digest that is not hex is rule R1."""
        with pytest.raises(ValidationError) as exc_info:
            decode_digest("not-a-digest", source="a.example")
        assert exc_info.value.rule == RejectionRule.R1_MALFORMED_DIGEST
        assert exc_info.value.source == "a.example"

    def test_odd_length_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            decode_digest("abc")
        assert exc_info.value.rule == RejectionRule.R1_MALFORMED_DIGEST

    def test_short_digest_rejected(self):
        """A 16-byte digest is rule R2."""
        with pytest.raises(ValidationError) as exc_info:
            decode_digest("00" * 16)
        assert exc_info.value.rule == RejectionRule.R2_DIGEST_LENGTH

    def test_compute_digest_is_sha256(self):
        assert compute_digest("mastodon.social") == sha("mastodon.social")
        assert matches_digest("mastodon.social", sha("mastodon.social"))
        assert not matches_digest("mastodon.online", sha("mastodon.social"))

    def test_mask_matching(self):
        assert mask_matches("ma*todon.social", "mastodon.social")
        assert not mask_matches("ma*todon.social", "mastodon.online")
        assert not mask_matches("ma*", "mastodon")
        assert count_wildcards("*a*b*") == 3


class TestRecordModel:
    """Test DomainRecord invariants and helpers."""

    def test_wrong_digest_length_rejected(self):
        with pytest.raises(ValidationError):
            DomainRecord(digest=b"\x00" * 31)

    def test_id_is_hex_digest(self):
        assert DomainRecord(digest=DIGEST).get_id() == DIGEST.hex()

    def test_display_domain_prefers_known(self):
        record = DomainRecord(
            digest=DIGEST,
            known_domain="example.com",
            partial_domains={"ex*mple.com"},
        )
        assert record.display_domain() == "example.com"

    def test_display_domain_falls_back_to_first_mask(self):
        record = DomainRecord(digest=DIGEST, partial_domains={"ex*mple.com", "*xample.com"})
        assert record.display_domain() == "*xample.com"

    def test_min_wildcard_count(self):
        record = DomainRecord(digest=DIGEST, partial_domains={"e**mple.com", "ex*mple.com"})
        assert record.min_wildcard_count() == 1
        assert DomainRecord(digest=DIGEST).min_wildcard_count() is None

    def test_sorted_masks_cheapest_first(self):
        record = DomainRecord(digest=DIGEST, partial_domains={"e**mple.com", "exa*ple.com"})
        assert record.sorted_masks() == ["exa*ple.com", "e**mple.com"]

    def test_dict_round_trip(self):
        record = DomainRecord(
            digest=DIGEST,
            known_domain="example.com",
            partial_domains={"ex*mple.com", "*xample.com"},
        )
        assert DomainRecord.from_dict(record.to_dict()) == record


class TestBlockEntryParsing:
    """Test API payload parsing."""

    def test_parse_full_entry(self):
        entry = BlockEntry.from_dict({
            "domain": "ma*todon.social",
            "digest": DIGEST.hex(),
            "severity": "silence",
            "comment": "spam",
        })
        assert entry.severity == Severity.SILENCE
        assert entry.comment == "spam"

    def test_comment_optional(self):
        entry = BlockEntry.from_dict({
            "domain": "example.com",
            "digest": DIGEST.hex(),
            "severity": "suspend",
        })
        assert entry.comment is None

    def test_unknown_severity_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            BlockEntry.from_dict({
                "domain": "example.com",
                "digest": DIGEST.hex(),
                "severity": "noop",
            })
        assert exc_info.value.rule == RejectionRule.R4_UNKNOWN_SEVERITY

    def test_missing_digest_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            BlockEntry.from_dict({"domain": "example.com", "severity": "suspend"})
        assert exc_info.value.rule == RejectionRule.R5_MISSING_FIELD

    def test_null_domain_rejected(self):
        """A JSON null domain is missing, not the string 'None'."""
        with pytest.raises(ValidationError) as exc_info:
            BlockEntry.from_dict({
                "domain": None,
                "digest": sha("secret.example").hex(),
                "severity": "suspend",
            })
        assert exc_info.value.rule == RejectionRule.R5_MISSING_FIELD

    def test_non_string_digest_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            BlockEntry.from_dict({"domain": "example.com", "digest": 42, "severity": "suspend"})
        assert exc_info.value.rule == RejectionRule.R5_MISSING_FIELD

    def test_blocklist_find_entry(self):
        blocklist = BlockList(domain="a.example", entries=[make_entry("example.com")])
        assert blocklist.find_entry(DIGEST.hex()) is not None
        assert blocklist.find_entry(DIGEST.hex().upper()) is not None
        assert blocklist.find_entry(sha("other.com").hex()) is None


# =============================================================================
# RECORD BUILDER TESTS
# =============================================================================

class TestRecordBuilder:
    """Test entry → record conversion."""

    @pytest.mark.parametrize("domain", ["example.com", "mastodon.social", "a.b-c.d0"])
    def test_unmasked_domain_becomes_known(self, domain):
        """Looking up a record by its digest gives back the plain domain."""
        result = resolve_blocklists([BlockList("src.example", [make_entry(domain)])])
        record = result.records[sha(domain).hex()]
        assert record.known_domain == domain
        assert record.partial_domains == set()

    def test_masked_domain_becomes_partial(self):
        record = build_record(make_entry("ma*todon.social", digest_of="mastodon.social"))
        assert record.known_domain is None
        assert record.partial_domains == {"ma*todon.social"}
        assert record.digest == sha("mastodon.social")

    def test_empty_domain_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            build_record(make_entry("", digest_of="example.com"))
        assert exc_info.value.rule == RejectionRule.R3_EMPTY_DOMAIN

    def test_bad_digest_rejected(self):
        entry = BlockEntry(domain="example.com", digest="zz", severity=Severity.SUSPEND)
        with pytest.raises(ValidationError):
            build_record(entry, source="a.example")

    def test_plain_domain_must_hash_to_digest(self):
        """A known domain is only accepted when sha256(domain) == digest."""
        entry = make_entry("example.org", digest_of="example.com")
        with pytest.raises(ValidationError) as exc_info:
            build_record(entry, source="a.example")
        assert exc_info.value.rule == RejectionRule.R6_DIGEST_MISMATCH
        assert exc_info.value.source == "a.example"

    def test_masked_domain_not_hash_checked(self):
        record = build_record(make_entry("ex*mple.org", digest_of="example.com"))
        assert record.partial_domains == {"ex*mple.org"}


# =============================================================================
# MERGE TESTS
# =============================================================================

class TestMerge:
    """Test the merge reducer."""

    def test_mask_union(self):
        a = DomainRecord(digest=DIGEST, partial_domains={"ex*mple.com"})
        b = DomainRecord(digest=DIGEST, partial_domains={"*xample.com", "ex*mple.com"})
        assert a.merge(b).partial_domains == {"ex*mple.com", "*xample.com"}

    def test_mask_union_commutative(self):
        a = DomainRecord(digest=DIGEST, partial_domains={"ex*mple.com"})
        b = DomainRecord(digest=DIGEST, partial_domains={"*xample.com"})
        assert a.merge(b).partial_domains == b.merge(a).partial_domains

    def test_mask_union_associative(self):
        a = DomainRecord(digest=DIGEST, partial_domains={"ex*mple.com"})
        b = DomainRecord(digest=DIGEST, partial_domains={"*xample.com"})
        c = DomainRecord(digest=DIGEST, partial_domains={"exampl*.com", "ex*mple.com"})
        left = a.merge(b).merge(c).partial_domains
        right = a.merge(b.merge(c)).partial_domains
        assert left == right == {"ex*mple.com", "*xample.com", "exampl*.com"}

    def test_known_domain_from_either_side(self):
        known = DomainRecord(digest=DIGEST, known_domain="example.com")
        masked = DomainRecord(digest=DIGEST, partial_domains={"ex*mple.com"})
        assert known.merge(masked).known_domain == "example.com"
        assert masked.merge(known).known_domain == "example.com"

    def test_conflicting_known_domain_first_argument_wins(self):
        """Not commutative: each ordering keeps its own first argument."""
        a = DomainRecord(digest=DIGEST, known_domain="example.com")
        b = DomainRecord(digest=DIGEST, known_domain="example.org")
        assert a.merge(b).known_domain == "example.com"

    def test_conflicting_known_domain_reverse_order(self):
        a = DomainRecord(digest=DIGEST, known_domain="example.com")
        b = DomainRecord(digest=DIGEST, known_domain="example.org")
        assert b.merge(a).known_domain == "example.org"

    def test_merge_does_not_mutate_inputs(self):
        a = DomainRecord(digest=DIGEST, partial_domains={"ex*mple.com"})
        b = DomainRecord(digest=DIGEST, partial_domains={"*xample.com"})
        a.merge(b)
        assert a.partial_domains == {"ex*mple.com"}
        assert b.partial_domains == {"*xample.com"}

    def test_merge_requires_same_digest(self):
        a = DomainRecord(digest=DIGEST)
        b = DomainRecord(digest=sha("other.com"))
        with pytest.raises(AssertionError):
            a.merge(b)

    def test_merge_records_folds_left(self):
        records = [
            DomainRecord(digest=DIGEST, partial_domains={"ex*mple.com"}),
            DomainRecord(digest=DIGEST, known_domain="example.com"),
            DomainRecord(digest=DIGEST, partial_domains={"*xample.com"}),
        ]
        merged = merge_records(records)
        assert merged.known_domain == "example.com"
        assert merged.partial_domains == {"ex*mple.com", "*xample.com"}


# =============================================================================
# BATCH RESOLUTION TESTS
# =============================================================================

class TestBatchResolution:
    """Test resolving whole block-lists."""

    def test_two_sources_same_digest(self):
        """A discloses the domain, B only a mask: one merged record."""
        source_a = BlockList("a.example", [make_entry("example.com")])
        source_b = BlockList("b.example", [make_entry("ex*mple.com", digest_of="example.com")])

        result = resolve_blocklists([source_a, source_b])

        assert len(result.records) == 1
        record = result.records[DIGEST.hex()]
        assert record.known_domain == "example.com"
        assert record.partial_domains == {"ex*mple.com"}

    def test_bad_entry_isolated(self):
        """One malformed digest does not stop the rest of the list."""
        bad = BlockEntry(domain="bad.example", digest="1234", severity=Severity.SUSPEND)
        blocklist = BlockList("a.example", [bad, make_entry("example.com")])

        result = resolve_blocklists([blocklist])

        assert result.total_entries == 2
        assert list(result.records) == [DIGEST.hex()]
        assert len(result.rejected) == 1
        assert result.rejected[0].rule == RejectionRule.R2_DIGEST_LENGTH
        assert result.rejected[0].source == "a.example"
        assert result.resolution_rate == 0.5

    def test_mismatched_domain_isolated(self):
        """A wrong plain domain is rejected; a mask for the same digest survives."""
        wrong = make_entry("wrong.example", digest_of="secret.example")
        masked = make_entry("s*cret.example", digest_of="secret.example")
        blocklist = BlockList("a.example", [wrong, masked])

        result = resolve_blocklists([blocklist])

        record = result.records[sha("secret.example").hex()]
        assert record.known_domain is None
        assert record.partial_domains == {"s*cret.example"}
        assert [r.rule for r in result.rejected] == [RejectionRule.R6_DIGEST_MISMATCH]

    def test_no_orphan_records(self):
        """Only digests referenced by some entry get a record."""
        result = resolve_blocklists([BlockList("a.example", [make_entry("example.com")])])
        assert sha("unreferenced.example").hex() not in result.records

    def test_empty_input(self):
        result = resolve_blocklists([])
        assert result.records == {}
        assert result.resolution_rate == 0.0
