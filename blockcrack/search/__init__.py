# Search package for blockcrack
"""
Brute-force recovery of masked domains.

Enumerates every candidate consistent with a mask, checks it against
the target digest, and spreads the work over a pool of worker processes.
"""
