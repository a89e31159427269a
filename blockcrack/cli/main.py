"""
blockcrack CLI — De-obfuscate Mastodon domain block-lists.

Commands:
    blockcrack fetch [DOMAIN ...]  — Download block-lists from seed instances
    blockcrack process             — Merge stored block-lists into records
    blockcrack crack               — Brute-force masked domains
    blockcrack show                — List records and who blocks them

Every command loads the database at start and saves it at exit. crack
also saves after each recovered domain, so Ctrl-C never loses results.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Optional

from .. import config
from ..logging_setup import setup_logging
from ..search.brute_force import ConfigurationError
from ..search.cancel import CancelToken
from ..storage.store import NamespaceView, ObjectStore, StoreError
from .pipeline import (
    ReportRow,
    build_report,
    crack_records,
    fetch_blocklists,
    process_blocklists,
)


# =============================================================================
# OUTPUT FORMATTING
# =============================================================================

def format_report_row(row: ReportRow) -> str:
    """Format one record and the instances blocking it."""
    lines = [row.display_domain]
    for attribution in row.attributions:
        if attribution.comment:
            lines.append(
                f"- Blocked by {attribution.source} for reason: {attribution.comment}"
            )
        else:
            lines.append(f"- Blocked by {attribution.source}")
    return "\n".join(lines)


def print_rejections(rejections) -> None:
    if not rejections:
        return
    print("REJECTIONS (for audit):")
    for rejection in rejections[:5]:
        print(f"  • [{rejection.rule.value}] {rejection.source}: {rejection.reason[:60]}")
    if len(rejections) > 5:
        print(f"  ... and {len(rejections) - 5} more")
    print()


# =============================================================================
# CLI COMMANDS
# =============================================================================

def cmd_fetch(args: argparse.Namespace, view: NamespaceView) -> int:
    """Fetch block-lists, then process them."""
    domains = args.domains or list(config.SEED_DOMAINS)
    print("Loading blocklist from seed domains")

    summary = fetch_blocklists(view, domains)
    for domain, count in summary.loaded.items():
        print(f"  {domain}: {count} entries")
    for domain, reason in summary.failed.items():
        print(f"  {domain}: FAILED ({reason})")
    print()
    print_rejections(summary.rejected)

    print("Updating database")
    return cmd_process(args, view)


def cmd_process(args: argparse.Namespace, view: NamespaceView) -> int:
    """Merge stored block-lists into records."""
    summary = process_blocklists(view)

    print("STATISTICS:")
    print(f"  Entries processed: {summary.total_entries}")
    print(f"  Records created:   {summary.created}")
    print(f"  Records updated:   {summary.updated}")
    print(f"  Entries rejected:  {len(summary.rejected)}")
    print()
    print_rejections(summary.rejected)
    return 0


def cmd_crack(args: argparse.Namespace, view: NamespaceView) -> int:
    """Brute-force unresolved records."""
    cancel = CancelToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.cancel())

    try:
        summary = crack_records(
            view,
            workers=args.workers,
            max_candidates=args.max_candidates,
            cancel=cancel,
        )
    except KeyboardInterrupt:
        print("Interrupted; recovered domains were already saved.")
        return 130
    finally:
        signal.signal(signal.SIGINT, previous)

    for key, result in summary.results:
        status = result.domain if result.found else result.outcome.value
        print(f"{key}: {result.mask} -> {status} ({result.elapsed:.2f}s)")

    print()
    print(f"Cracked {len(summary.cracked)} of {summary.attempted} attempted masks")
    if summary.cancelled:
        print("Cancelled; recovered domains were already saved.")
        return 130
    return 0


def cmd_show(args: argparse.Namespace, view: NamespaceView) -> int:
    """Show every record and the instances that block it."""
    rows = build_report(view)
    if args.unresolved:
        rows = [row for row in rows if not row.record.is_resolved]

    if not rows:
        print("No records found.")
        print("Run 'blockcrack fetch' first.")
        return 0

    for row in rows:
        print(format_report_row(row))
        print()

    resolved = sum(1 for row in rows if row.record.is_resolved)
    print(f"Total: {len(rows)} records, {resolved} resolved")
    return 0


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="blockcrack",
        description="Recover obfuscated domains from Mastodon block-lists",
    )
    parser.add_argument(
        "--database",
        default=config.DATABASE_FILE,
        help=f"Database file (default: {config.DATABASE_FILE})",
    )
    parser.add_argument(
        "--namespace",
        default=config.NAMESPACE,
        help=argparse.SUPPRESS,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    # Fetch command
    fetch_parser = subparsers.add_parser(
        "fetch",
        help="Download block-lists and update records",
    )
    fetch_parser.add_argument(
        "domains",
        nargs="*",
        help="Instances to fetch (default: built-in seed list)",
    )
    fetch_parser.set_defaults(func=cmd_fetch, writes=True)

    # Process command
    process_parser = subparsers.add_parser(
        "process",
        help="Merge stored block-lists into records",
    )
    process_parser.set_defaults(func=cmd_process, writes=True)

    # Crack command
    crack_parser = subparsers.add_parser(
        "crack",
        help="Brute-force masked domains",
    )
    crack_parser.add_argument(
        "--workers",
        type=int,
        default=config.WORKERS,
        help=f"Worker processes (default: {config.WORKERS})",
    )
    crack_parser.add_argument(
        "--max-candidates",
        type=int,
        default=config.MAX_CANDIDATES,
        help="Skip masks with more candidates than this",
    )
    crack_parser.set_defaults(func=cmd_crack, writes=True)

    # Show command
    show_parser = subparsers.add_parser(
        "show",
        help="List records and who blocks them",
    )
    show_parser.add_argument(
        "--unresolved",
        action="store_true",
        help="Only show records whose domain is still masked",
    )
    show_parser.set_defaults(func=cmd_show, writes=False)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        store = ObjectStore.load(args.database)
    except StoreError as e:
        print("ERROR: Cannot open database")
        print(f"Reason: {e}")
        return 1

    view = store.use_namespace(args.namespace)

    try:
        status = args.func(args, view)
    except ConfigurationError as e:
        print("ERROR: Search aborted")
        print(f"Reason: {e}")
        status = 1
    except StoreError as e:
        print("ERROR: Damaged database")
        print(f"Reason: {e}")
        return 1

    if args.writes:
        try:
            store.save()
        except (StoreError, OSError) as e:
            print("ERROR: Cannot save database")
            print(f"Reason: {e}")
            return 1

    return status


if __name__ == "__main__":
    sys.exit(main())
