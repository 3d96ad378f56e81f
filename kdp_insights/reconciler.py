"""
KDP Insights - Title Reconciler

Report titles rarely match the catalog spelling exactly. Titles whose key is
not in the catalog are handed to a prompter (a person, or a scripted resolver)
which answers with the display title each key should be booked under. Answers
naming a catalog title map onto that book; anything else becomes a new book.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Protocol, Sequence

from .errors import ImportCancelled
from .models import Book, ParsedRow, new_id
from .report_parser import normalize_title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnmatchedTitle:
    title_key: str
    source_title: str


@dataclass
class ImportDefaults:
    """Niche and format given to books created during reconciliation."""

    niche: str = "Uncategorized"
    format: str = "Paperback"


@dataclass
class Reconciliation:
    rows: List[ParsedRow]
    mappings: Dict[str, str] = field(default_factory=dict)
    # not yet in the catalog; committed with the rest of the import
    pending_books: List[Book] = field(default_factory=list)


class TitlePrompter(Protocol):
    async def resolve(
        self, unmatched: Sequence[UnmatchedTitle], books: Sequence[Book]
    ) -> Optional[Dict[str, str]]:
        """Return {title_key: display title}, or None to cancel the import."""
        ...


class CreateNewPrompter:
    """Answers every unmatched title with its own spelling, i.e. 'create new'."""

    async def resolve(self, unmatched, books):
        return {u.title_key: u.source_title for u in unmatched}


class MappingPrompter:
    """Fixed answers keyed by title key; unknown keys fall back to 'create new'."""

    def __init__(self, answers: Dict[str, str], cancel: bool = False):
        self.answers = {normalize_title(k): v for k, v in answers.items()}
        self.cancel = cancel

    async def resolve(self, unmatched, books):
        if self.cancel:
            return None
        return {u.title_key: self.answers.get(u.title_key, u.source_title) for u in unmatched}


def find_unmatched_titles(rows: Sequence[ParsedRow], books: Sequence[Book]) -> List[UnmatchedTitle]:
    """Distinct title keys missing from the catalog, first-seen spelling kept."""
    known = {normalize_title(b.title) for b in books}
    unmatched: Dict[str, str] = {}
    for row in rows:
        if row.title_key not in known and row.title_key not in unmatched:
            unmatched[row.title_key] = row.source_title
    return [UnmatchedTitle(title_key=k, source_title=v) for k, v in unmatched.items()]


def apply_title_mappings(rows: Sequence[ParsedRow], mappings: Dict[str, str]) -> List[ParsedRow]:
    result = []
    for row in rows:
        mapped = (mappings or {}).get(row.title_key)
        if mapped and str(mapped).strip():
            mapped = str(mapped).strip()
            row = ParsedRow(
                source_title=mapped,
                title_key=normalize_title(mapped),
                units=row.units,
                royalty=row.royalty,
                month=row.month,
            )
        result.append(row)
    return result


def pending_books_for(
    mappings: Dict[str, str],
    books: Sequence[Book],
    defaults: ImportDefaults,
    today: Optional[date] = None,
) -> List[Book]:
    """Books to create for mapped titles that name nothing in the catalog."""
    known = {normalize_title(b.title) for b in books}
    publish_date = (today or date.today()).isoformat()

    created = []
    for title in mappings.values():
        title = str(title or "").strip()
        key = normalize_title(title)
        if not key or key in known:
            continue
        known.add(key)
        created.append(Book(
            id=new_id(),
            title=title,
            series="",
            niche=defaults.niche,
            format=defaults.format,
            publish_date=publish_date,
            design_cost=0,
            marketing_cost=0,
        ))
    return created


async def reconcile(
    rows: Sequence[ParsedRow],
    books: Sequence[Book],
    prompter: TitlePrompter,
    defaults: Optional[ImportDefaults] = None,
) -> Reconciliation:
    """Resolve unmatched titles through the prompter. Never touches the catalog."""
    unmatched = find_unmatched_titles(rows, books)
    if not unmatched:
        return Reconciliation(rows=list(rows))

    logger.info(f"{len(unmatched)} unmatched titles, awaiting resolution")
    mappings = await prompter.resolve(unmatched, list(books))
    if mappings is None:
        raise ImportCancelled()

    pending = pending_books_for(mappings, books, defaults or ImportDefaults())
    logger.info(f"Resolved {len(mappings)} titles ({len(pending)} new books pending)")
    return Reconciliation(
        rows=apply_title_mappings(rows, mappings),
        mappings=dict(mappings),
        pending_books=pending,
    )
