"""
KDP Insights - Catalog management
Add, edit and delete tracked books.
"""

import logging
from collections import Counter
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import Book, PortfolioState, new_id

logger = logging.getLogger(__name__)

REQUIRED_BOOK_FIELDS = ("title", "niche", "publishDate")


def _clean_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    data = {k: (v.strip() if isinstance(v, str) else v) for k, v in payload.items()}
    if "publish_date" in data and "publishDate" not in data:
        data["publishDate"] = data.pop("publish_date")
    data["id"] = data.get("id") or new_id()
    data.setdefault("format", "Paperback")
    return data


def upsert_book(state: PortfolioState, payload: Dict[str, Any]) -> PortfolioState:
    """Validate a book payload (camelCase keys) and insert or replace it by id."""
    data = _clean_payload(payload)

    missing = [f for f in REQUIRED_BOOK_FIELDS if not data.get(f)]
    if missing:
        raise ValidationError(f"Please complete all required book fields: {', '.join(missing)}.")

    try:
        book = Book.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid book fields: {e.error_count()} error(s).") from e

    for idx, existing in enumerate(state.books):
        if existing.id == book.id:
            state.books[idx] = book
            logger.info(f"Updated book {book.id} ({book.title})")
            break
    else:
        state.books.append(book)
        logger.info(f"Added book {book.id} ({book.title})")

    return state


def delete_book(state: PortfolioState, book_id: str) -> PortfolioState:
    """Remove a book and every sales record that references it."""
    before = len(state.sales)
    state.books = [b for b in state.books if b.id != book_id]
    state.sales = [s for s in state.sales if s.book_id != book_id]
    logger.info(f"Deleted book {book_id} and {before - len(state.sales)} sales records")
    return state


def portfolio_stats(state: PortfolioState) -> Dict[str, Any]:
    niches = Counter(b.niche for b in state.books)
    return {
        "total_books": len(state.books),
        "by_niche": [{"niche": n, "count": c} for n, c in niches.most_common()],
    }
