import io

import pandas as pd
import pytest

from kdp_insights.models import Book, PortfolioState, SalesRecord


def make_book(book_id, title, niche="Cozy Mystery", design=0.0, marketing=0.0, **extra):
    return Book(
        id=book_id,
        title=title,
        niche=niche,
        format="Paperback",
        publish_date="2023-06-01",
        design_cost=design,
        marketing_cost=marketing,
        **extra,
    )


def make_sale(book_id, month, royalty, units=0, imports=("seed",)):
    return SalesRecord(
        id=f"{book_id}-{month}",
        book_id=book_id,
        month=month,
        units=units,
        royalty=royalty,
        source_imports=list(imports),
    )


def workbook_bytes(sheets):
    """{sheet name: list of rows} -> xlsx bytes"""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return buffer.getvalue()


@pytest.fixture
def cozy_state():
    return PortfolioState(books=[make_book("b1", "Cozy Mysteries Vol 1")])


COZY_CSV = (
    "Title,Date,Units Sold,Royalty\n"
    "Cozy Mysteries Vol 1,2024-01-15,30,102.50\n"
    "Cozy Mysteries Vol 1,2024-01-20,10,50.00\n"
).encode("utf-8")
