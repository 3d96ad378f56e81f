"""
KDP Insights - Import pipeline

parse -> duplicate check -> reconcile -> aggregate -> merge -> import log.

Works on a deep copy of the portfolio state and hands back a new state, so a
failure at any step leaves the caller's state exactly as it was.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .errors import DuplicateImport, UnsupportedFileType
from .ledger import ImportSummary, aggregate_sales_rows, merge_aggregated_sales, summarize_import
from .models import Book, ImportRecord, PortfolioState, new_id
from .reconciler import ImportDefaults, TitlePrompter, reconcile
from .report_parser import month_label, parse_report

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE_MB", "50")) * 1024 * 1024


@dataclass
class ImportOutcome:
    state: PortfolioState
    summary: ImportSummary
    import_record: ImportRecord
    created_books: List[Book] = field(default_factory=list)

    @property
    def message(self) -> str:
        period = month_label(self.summary.latest_month) if self.summary.latest_month else "Unknown period"
        return f"{period} imported - {self.summary.affected_books} books updated"


def detect_duplicate_import(state: PortfolioState, import_hash: str) -> bool:
    return any(entry.import_hash == import_hash for entry in state.imports)


async def import_report(
    state: PortfolioState,
    content: bytes,
    file_name: str,
    prompter: TitlePrompter,
    defaults: Optional[ImportDefaults] = None,
    content_type: str = "",
) -> ImportOutcome:
    """Run one report through the whole pipeline and return the new state."""
    if len(content) > MAX_FILE_SIZE:
        raise UnsupportedFileType(
            f"File too large ({len(content) / 1024 / 1024:.1f} MB). "
            f"Maximum size is {MAX_FILE_SIZE // 1024 // 1024} MB."
        )

    logger.info(f"Import started: {file_name} ({len(content) / 1024:.1f} KB)")
    parsed = parse_report(content, file_name, content_type)

    if detect_duplicate_import(state, parsed.import_hash):
        raise DuplicateImport()

    reconciliation = await reconcile(parsed.rows, state.books, prompter, defaults)

    new_state = state.model_copy(deep=True)
    new_state.books.extend(reconciliation.pending_books)

    aggregated = aggregate_sales_rows(reconciliation.rows, new_state.books)
    merge_aggregated_sales(new_state.sales, aggregated, parsed.import_hash)

    summary = summarize_import(reconciliation.rows)
    record = ImportRecord(
        id=new_id(),
        import_hash=parsed.import_hash,
        file_name=parsed.file_name,
        imported_at=datetime.now(timezone.utc).isoformat(),
        latest_month=summary.latest_month,
        affected_books=summary.affected_books,
        rows_count=summary.rows_count,
    )
    new_state.imports.append(record)

    logger.info(
        f"Import complete for {file_name}: {len(aggregated)} buckets, "
        f"{len(reconciliation.pending_books)} new books"
    )
    return ImportOutcome(
        state=new_state,
        summary=summary,
        import_record=record,
        created_books=list(reconciliation.pending_books),
    )


class ReportImporter:
    """Serializes imports against one live state; only one runs at a time."""

    def __init__(self, state: PortfolioState, defaults: Optional[ImportDefaults] = None):
        self.state = state
        self.defaults = defaults or ImportDefaults()
        self._lock = asyncio.Lock()

    async def run(self, content: bytes, file_name: str, prompter: TitlePrompter, content_type: str = "") -> ImportOutcome:
        async with self._lock:
            outcome = await import_report(
                self.state, content, file_name, prompter, self.defaults, content_type
            )
            self.state = outcome.state
            return outcome
