"""
KDP Insights - Data model

Catalog, ledger and import-log records. Stored payloads use camelCase keys
(`bookId`, `designCost`, ...) so backups keep the same shape across versions.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_SETTINGS: Dict[str, Any] = {
    "firstRunNoticeDismissed": False,
}


def new_id() -> str:
    return uuid.uuid4().hex


class Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Book(Record):
    id: str
    title: str
    series: str = ""
    niche: str = ""
    format: str = "Paperback"
    publish_date: str = ""
    design_cost: float = 0.0
    marketing_cost: float = 0.0

    @field_validator("series", "niche", "format", "publish_date", mode="before")
    @classmethod
    def none_as_blank(cls, v):
        return "" if v is None else v

    @field_validator("design_cost", "marketing_cost", mode="before")
    @classmethod
    def blank_cost_as_zero(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0.0
        return v

    @property
    def investment(self) -> float:
        return float(self.design_cost or 0) + float(self.marketing_cost or 0)


class SalesRecord(Record):
    """One ledger bucket: a single (book, month) pair."""

    id: str
    book_id: str
    month: str
    units: int = 0
    royalty: float = 0.0
    source_imports: List[str] = []


class ImportRecord(Record):
    id: str
    import_hash: str
    file_name: str
    imported_at: str
    latest_month: Optional[str] = None
    affected_books: int = 0
    rows_count: int = 0


class PortfolioState(Record):
    books: List[Book] = []
    sales: List[SalesRecord] = []
    imports: List[ImportRecord] = []
    settings: Dict[str, Any] = Field(default_factory=lambda: dict(DEFAULT_SETTINGS))

    @field_validator("settings", mode="before")
    @classmethod
    def merge_default_settings(cls, v):
        return {**DEFAULT_SETTINGS, **(v or {})}

    def find_book(self, book_id: str) -> Optional[Book]:
        for book in self.books:
            if book.id == book_id:
                return book
        return None


@dataclass(frozen=True)
class ParsedRow:
    """A single report line after cleaning. Never persisted."""

    source_title: str
    title_key: str
    units: int
    royalty: float
    month: str

    def as_dict(self) -> Dict[str, Any]:
        # key order feeds the spreadsheet fingerprint
        return {
            "sourceTitle": self.source_title,
            "titleKey": self.title_key,
            "units": self.units,
            "royalty": self.royalty,
            "month": self.month,
        }
