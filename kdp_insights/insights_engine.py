"""
KDP Insights - Insights Engine
Threshold-based portfolio advice. Advisory text only.

Operates on the per-book and per-niche aggregates the analyzer already built,
plus the raw ledger frame for month windows.
"""

import logging
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Sequence

from .models import Book

logger = logging.getLogger(__name__)

# Thresholds
CONCENTRATION_SHARE = 0.4
DORMANT_WINDOW_MONTHS = 3
NICHE_LEAD_FACTOR = 2
MOMENTUM_MONTHS = 3

FALLBACK_MESSAGE = "Import another month of KDP data to unlock stronger trend-based recommendations."


class InsightsEngine:
    """Concentration, dormant titles, niche leadership and revenue momentum."""

    def __init__(
        self,
        books: Sequence[Book],
        sales_df: pd.DataFrame,
        revenue_by_book: pd.Series,
        niche_revenue: pd.Series,
    ):
        self.books = list(books)
        self.sales_df = sales_df
        self.revenue_by_book = revenue_by_book
        self.niche_revenue = niche_revenue
        self._titles = {b.id: b.title for b in self.books}

    def get_concentration_insights(self) -> List[Dict[str, str]]:
        """One book carrying more than 40% of lifetime revenue."""
        total = float(self.sales_df['royalty'].sum())
        if total <= 0 or self.revenue_by_book.empty:
            return []

        ranked = self.revenue_by_book.sort_values(ascending=False, kind='stable')
        top_id = ranked.index[0]
        share = float(ranked.iloc[0]) / total
        if share <= CONCENTRATION_SHARE:
            return []

        return [{
            "kind": "concentration",
            "message": (
                f'"{self._titles.get(top_id)}" drives {share * 100:.1f}% of revenue. '
                "Focus upcoming books in this direction."
            ),
        }]

    def get_dormant_book_insights(self) -> List[Dict[str, str]]:
        """Catalog books with no royalty in the 3 most recent months with sales."""
        recent = sorted(self.sales_df['month'].unique())[-DORMANT_WINDOW_MONTHS:]
        if len(recent) < DORMANT_WINDOW_MONTHS:
            return []

        window = self.sales_df[self.sales_df['month'].isin(recent)]
        recent_revenue = window.groupby('book_id')['royalty'].sum()

        insights = []
        for book in self.books:
            if float(recent_revenue.get(book.id, 0.0)) == 0:
                insights.append({
                    "kind": "dormant_book",
                    "message": (
                        f'"{book.title}" has zero sales over the last {DORMANT_WINDOW_MONTHS} months. '
                        "Update listing, keywords, and cover."
                    ),
                })
        return insights

    def get_niche_leader_insights(self) -> List[Dict[str, str]]:
        """Top niche earning at least twice the runner-up."""
        if len(self.niche_revenue) < 2:
            return []

        top = float(self.niche_revenue.iloc[0])
        runner_up = float(self.niche_revenue.iloc[1])
        if top <= 0 or top < runner_up * NICHE_LEAD_FACTOR:
            return []

        return [{
            "kind": "niche_leader",
            "message": (
                f'Niche leader "{self.niche_revenue.index[0]}" is outperforming others by '
                f"{NICHE_LEAD_FACTOR}x+. Prioritize this niche for next launches."
            ),
        }]

    def get_momentum_insights(self) -> List[Dict[str, str]]:
        """Portfolio revenue strictly rising over the last 3 months with sales."""
        monthly = self.sales_df.groupby('month')['royalty'].sum().sort_index()
        if len(monthly) < MOMENTUM_MONTHS:
            return []

        last = monthly.iloc[-MOMENTUM_MONTHS:].to_numpy()
        if not np.all(np.diff(last) > 0):
            return []

        return [{
            "kind": "momentum",
            "message": (
                f"Portfolio revenue is rising for {MOMENTUM_MONTHS} consecutive months. "
                "You have momentum; increase publishing cadence."
            ),
        }]

    def get_all_insights(self) -> List[Dict[str, str]]:
        """Run all heuristics with per-section error handling."""
        sections = {
            "concentration": self.get_concentration_insights,
            "dormant_books": self.get_dormant_book_insights,
            "niche_leader": self.get_niche_leader_insights,
            "momentum": self.get_momentum_insights,
        }

        insights: List[Dict[str, str]] = []
        for key, method in sections.items():
            try:
                insights.extend(method())
            except Exception as e:
                logger.error(f"InsightsEngine.{key} failed: {e}", exc_info=True)

        if not insights:
            insights.append({"kind": "more_data", "message": FALLBACK_MESSAGE})

        return insights


def clean_for_json(obj: Any) -> Any:
    """Recursively clean NaN/Inf/numpy types for JSON serialization."""
    if isinstance(obj, dict):
        return {k: clean_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [clean_for_json(item) for item in obj]
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        v = float(obj)
        if np.isnan(v) or np.isinf(v):
            return None
        return v
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, float):
        if np.isnan(obj) or np.isinf(obj):
            return None
    return obj
