# blockcrack
# Mastodon domain block-list de-obfuscation

"""
Recovers the plaintext of domains that instances publish in their block-lists
as wildcard masks (e.g. "ma*todon.social") together with a SHA-256 digest.

Evidence for a digest is combined across every fetched block-list, then
the masked positions are brute-forced until the digest matches.
"""

__version__ = "0.1.0"
