"""
KDP Insights - Command line front end
Import KDP reports, manage the book catalog, and print portfolio analytics.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .analytics_engine import PortfolioAnalyzer
from .catalog import delete_book, portfolio_stats, upsert_book
from .database import StateStore, export_backup, load_backup
from .errors import KdpInsightsError
from .importer import import_report
from .models import Book
from .reconciler import CreateNewPrompter, ImportDefaults, UnmatchedTitle

logger = logging.getLogger("kdp_insights")

LOG_LEVEL = os.getenv("KDP_INSIGHTS_LOG_LEVEL", "INFO")


class ConsolePrompter:
    """Asks on the terminal how each unmatched report title should be booked."""

    def __init__(self, input_func=input):
        self._input = input_func

    async def _ask(self, prompt: str) -> str:
        return (await asyncio.to_thread(self._input, prompt)).strip()

    async def resolve(self, unmatched: Sequence[UnmatchedTitle], books: Sequence[Book]) -> Optional[Dict[str, str]]:
        print(f"{len(unmatched)} report titles are not in your catalog.")
        for idx, book in enumerate(books, start=1):
            print(f"  [{idx}] {book.title}")

        mappings: Dict[str, str] = {}
        for u in unmatched:
            answer = await self._ask(
                f'"{u.source_title}": Enter = create new book, number = map to existing, q = cancel: '
            )
            if answer.lower() == "q":
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(books):
                mappings[u.title_key] = books[int(answer) - 1].title
            else:
                mappings[u.title_key] = u.source_title
        return mappings


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_import(store: StateStore, args) -> int:
    state = store.load()
    path = Path(args.file)
    prompter = CreateNewPrompter() if args.auto_create else ConsolePrompter()
    defaults = ImportDefaults(niche=args.niche, format=args.format)

    outcome = asyncio.run(import_report(state, path.read_bytes(), path.name, prompter, defaults))
    message = outcome.message
    store.save(outcome.state)
    print(message)
    return 0


def cmd_books(store: StateStore, args) -> int:
    state = store.load()
    if not state.books:
        print("No books yet. Add your first title to start tracking.")
        return 0
    for book in sorted(state.books, key=lambda b: b.title.lower()):
        series = f" ({book.series})" if book.series else ""
        print(f"{book.id}  {book.title}{series} | {book.niche} | {book.format} | {book.publish_date or '-'} "
              f"| design ${book.design_cost:,.2f} | marketing ${book.marketing_cost:,.2f}")
    stats = portfolio_stats(state)
    niches = ", ".join(f"{n['niche']}: {n['count']}" for n in stats["by_niche"])
    print(f"Total books: {stats['total_books']}  {niches}")
    return 0


def cmd_add_book(store: StateStore, args) -> int:
    state = store.load()
    upsert_book(state, {
        "id": args.id,
        "title": args.title,
        "series": args.series,
        "niche": args.niche,
        "format": args.format,
        "publishDate": args.publish_date,
        "designCost": args.design_cost,
        "marketingCost": args.marketing_cost,
    })
    store.save(state)
    print("Book saved.")
    return 0


def cmd_delete_book(store: StateStore, args) -> int:
    state = store.load()
    if state.find_book(args.id) is None:
        print(f"No book with id {args.id}.")
        return 1
    store.save(delete_book(state, args.id))
    print("Book deleted.")
    return 0


def cmd_analytics(store: StateStore, args) -> int:
    state = store.load()
    _print_json(PortfolioAnalyzer(state.books, state.sales).get_full_analysis())
    return 0


def cmd_export_backup(store: StateStore, args) -> int:
    target = export_backup(store.load(), args.directory)
    print(f"Backup exported to {target}.")
    return 0


def cmd_restore_backup(store: StateStore, args) -> int:
    state = load_backup(Path(args.file).read_bytes())
    store.save(state)
    print("Backup restored successfully.")
    return 0


def cmd_reset(store: StateStore, args) -> int:
    if not args.yes:
        print("Refusing to delete all books, imports, and analytics data without --yes.")
        return 1
    store.reset()
    print("All local data reset.")
    return 0


def cmd_dismiss_notice(store: StateStore, args) -> int:
    state = store.load()
    state.settings["firstRunNoticeDismissed"] = True
    store.save(state)
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="kdp-insights", description="Self-publishing portfolio analytics")
    p.add_argument("--state", help="Path to the state file (default: KDP_INSIGHTS_STATE_PATH)")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import a KDP sales report (CSV/XLSX)")
    imp.add_argument("file")
    imp.add_argument("--niche", default="Uncategorized", help="Niche for books created during import")
    imp.add_argument("--format", default="Paperback", choices=["Paperback", "eBook", "Hardcover"])
    imp.add_argument("--auto-create", action="store_true", help="Create a new book for every unmatched title")
    imp.set_defaults(func=cmd_import)

    sub.add_parser("books", help="List the catalog").set_defaults(func=cmd_books)

    add = sub.add_parser("add-book", help="Add or edit a book")
    add.add_argument("--id", default="")
    add.add_argument("--title", required=True)
    add.add_argument("--series", default="")
    add.add_argument("--niche", required=True)
    add.add_argument("--format", default="Paperback")
    add.add_argument("--publish-date", required=True)
    add.add_argument("--design-cost", default="0")
    add.add_argument("--marketing-cost", default="0")
    add.set_defaults(func=cmd_add_book)

    delete = sub.add_parser("delete-book", help="Delete a book and its sales")
    delete.add_argument("id")
    delete.set_defaults(func=cmd_delete_book)

    sub.add_parser("analytics", help="Print portfolio analytics as JSON").set_defaults(func=cmd_analytics)

    exp = sub.add_parser("export-backup", help="Write a backup file")
    exp.add_argument("directory")
    exp.set_defaults(func=cmd_export_backup)

    restore = sub.add_parser("restore-backup", help="Replace all data with a backup file")
    restore.add_argument("file")
    restore.set_defaults(func=cmd_restore_backup)

    reset = sub.add_parser("reset", help="Delete all local data")
    reset.add_argument("--yes", action="store_true")
    reset.set_defaults(func=cmd_reset)

    sub.add_parser("dismiss-notice", help="Hide the first-run notice").set_defaults(func=cmd_dismiss_notice)

    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
    args = parse_args(argv)
    store = StateStore(args.state)

    try:
        return args.func(store, args)
    except KdpInsightsError as e:
        print(e.message, file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Error running {args.command}: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
