# CLI package for blockcrack
"""
Command-line interface for running blockcrack locally.

Commands:
    blockcrack fetch    — Download block-lists and update records
    blockcrack process  — Merge stored block-lists into records
    blockcrack crack    — Brute-force masked domains
    blockcrack show     — List records and who blocks them
"""
