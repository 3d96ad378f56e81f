"""
KDP Insights - Sales ledger

Groups reconciled rows into (book, month) buckets and folds them into the
cumulative ledger. The ledger holds at most one record per (book, month).
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import NoMatchingRows
from .models import Book, ParsedRow, SalesRecord, new_id
from .report_parser import normalize_title

logger = logging.getLogger(__name__)


@dataclass
class AggregatedSales:
    book_id: str
    month: str
    units: int = 0
    royalty: float = 0.0


@dataclass
class ImportSummary:
    latest_month: Optional[str]
    affected_books: int
    rows_count: int


def aggregate_sales_rows(rows: Sequence[ParsedRow], books: Sequence[Book]) -> List[AggregatedSales]:
    """Sum units/royalty per (book, month). Rows naming no catalog book are dropped."""
    title_to_book = {normalize_title(b.title): b.id for b in books}

    grouped: Dict[Tuple[str, str], AggregatedSales] = {}
    for row in rows:
        book_id = title_to_book.get(row.title_key)
        if not book_id:
            continue
        key = (book_id, row.month)
        bucket = grouped.get(key)
        if bucket is None:
            bucket = grouped[key] = AggregatedSales(book_id=book_id, month=row.month)
        bucket.units += row.units
        bucket.royalty += row.royalty

    if not grouped:
        raise NoMatchingRows()

    return list(grouped.values())


def merge_aggregated_sales(
    sales: List[SalesRecord], aggregated: Sequence[AggregatedSales], import_hash: str
) -> List[SalesRecord]:
    """Add each bucket into the matching ledger record, or append a new one.

    Totals are additive; the contributor list only ever gains new hashes.
    """
    by_key = {(s.book_id, s.month): s for s in sales}
    created = updated = 0

    for bucket in aggregated:
        existing = by_key.get((bucket.book_id, bucket.month))
        if existing is not None:
            existing.units += bucket.units
            existing.royalty += bucket.royalty
            if import_hash not in existing.source_imports:
                existing.source_imports = [*existing.source_imports, import_hash]
            updated += 1
        else:
            record = SalesRecord(
                id=new_id(),
                book_id=bucket.book_id,
                month=bucket.month,
                units=bucket.units,
                royalty=bucket.royalty,
                source_imports=[import_hash],
            )
            sales.append(record)
            by_key[(record.book_id, record.month)] = record
            created += 1

    logger.info(f"Merged import {import_hash}: {created} new buckets, {updated} updated")
    return sales


def summarize_import(rows: Sequence[ParsedRow]) -> ImportSummary:
    months = sorted({r.month for r in rows})
    return ImportSummary(
        latest_month=months[-1] if months else None,
        affected_books=len({r.title_key for r in rows}),
        rows_count=len(rows),
    )
