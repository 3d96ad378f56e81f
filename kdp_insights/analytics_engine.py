"""
KDP Insights - Analytics Engine
Portfolio profitability metrics derived from the catalog and the sales ledger.

Everything is recomputed from scratch on each call; nothing is cached between
imports.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .insights_engine import InsightsEngine, clean_for_json
from .models import Book, SalesRecord
from .report_parser import month_label

UNCATEGORIZED = "Uncategorized"
TOP_BOOKS_LIMIT = 15


class PortfolioAnalyzer:
    """
    Analyzes a book catalog against its monthly sales ledger.

    Usage:
        analyzer = PortfolioAnalyzer(state.books, state.sales)
        results = analyzer.get_full_analysis()
    """

    def __init__(self, books: Sequence[Book], sales: Sequence[SalesRecord], today: Optional[date] = None):
        self.books = list(books)
        self.today = today or date.today()
        self._prepare_data(sales)

    def _prepare_data(self, sales: Sequence[SalesRecord]):
        """Build the catalog and ledger frames"""
        self.books_df = pd.DataFrame({
            'book_id': [b.id for b in self.books],
            'title': [b.title for b in self.books],
            'niche': [b.niche or UNCATEGORIZED for b in self.books],
            'investment': [b.investment for b in self.books],
        }, columns=['book_id', 'title', 'niche', 'investment'])

        self.sales_df = pd.DataFrame({
            'book_id': [s.book_id for s in sales],
            'month': [s.month for s in sales],
            'units': [s.units for s in sales],
            'royalty': [s.royalty for s in sales],
        }, columns=['book_id', 'month', 'units', 'royalty'])
        self.sales_df['units'] = pd.to_numeric(self.sales_df['units'], errors='coerce').fillna(0)
        self.sales_df['royalty'] = pd.to_numeric(self.sales_df['royalty'], errors='coerce').fillna(0.0)

        # Per-book revenue in catalog order (books with at least one sales row)
        revenue = self.sales_df.groupby('book_id', sort=False)['royalty'].sum()
        catalog_ids = [b for b in self.books_df['book_id'] if b in revenue.index]
        self._revenue_by_book = pd.Series(
            revenue.reindex(catalog_ids).values,
            index=pd.Index(catalog_ids, name='book_id', dtype=object),
            dtype=float,
        )

        # Niche revenue, highest first; stable sort keeps first-seen order on ties
        with_niche = self.books_df.set_index('book_id').join(self._revenue_by_book.rename('revenue'), how='inner')
        self._niche_revenue = (
            with_niche.groupby('niche', sort=False)['revenue'].sum()
            .sort_values(ascending=False, kind='stable')
        )

    @property
    def current_month(self) -> str:
        return self.today.strftime('%Y-%m')

    def get_overview(self) -> Dict[str, Any]:
        """Portfolio KPIs"""
        lifetime_revenue = float(self.sales_df['royalty'].sum())
        total_investment = float(self.books_df['investment'].sum())
        total_profit = lifetime_revenue - total_investment
        portfolio_roi = (total_profit / total_investment * 100) if total_investment > 0 else 0.0
        current_month_revenue = float(
            self.sales_df.loc[self.sales_df['month'] == self.current_month, 'royalty'].sum()
        )

        best_book = "-"
        if not self._revenue_by_book.empty:
            best_id = self._revenue_by_book.idxmax()
            best_book = self.books_df.loc[self.books_df['book_id'] == best_id, 'title'].iloc[0]

        best_niche = self._niche_revenue.index[0] if not self._niche_revenue.empty else "-"

        return {
            "lifetime_revenue": round(lifetime_revenue, 2),
            "current_month": self.current_month,
            "current_month_revenue": round(current_month_revenue, 2),
            "total_investment": round(total_investment, 2),
            "total_profit": round(total_profit, 2),
            "portfolio_roi_pct": round(portfolio_roi, 1),
            "best_book": best_book,
            "best_niche": best_niche,
            "total_books": len(self.books),
            "total_units": int(self.sales_df['units'].sum()),
        }

    def get_book_roi(self) -> List[Dict]:
        """Per-book investment vs revenue, most profitable first"""
        roi = self.books_df.copy()
        roi['revenue'] = roi['book_id'].map(self._revenue_by_book).fillna(0.0)
        roi['profit'] = roi['revenue'] - roi['investment']

        has_cost = roi['investment'] > 0
        roi['roi_pct'] = np.where(has_cost, roi['profit'] / roi['investment'].where(has_cost, 1) * 100, 0.0)
        # No investment but revenue: ROI is unbounded, reported as None
        roi['roi_unbounded'] = ~has_cost & (roi['revenue'] > 0)

        roi['status'] = np.select(
            [roi['profit'] > 0, roi['revenue'] > 0],
            ['Profitable', 'Close'],
            default='Not Profitable',
        )
        roi = roi.sort_values('profit', ascending=False, kind='stable')

        return [
            {
                "book_id": row['book_id'],
                "title": row['title'],
                "investment": round(float(row['investment']), 2),
                "revenue": round(float(row['revenue']), 2),
                "profit": round(float(row['profit']), 2),
                "roi_pct": None if row['roi_unbounded'] else round(float(row['roi_pct']), 1),
                "roi_unbounded": bool(row['roi_unbounded']),
                "status": row['status'],
            }
            for _, row in roi.iterrows()
        ]

    def get_monthly_trend(self) -> List[Dict]:
        """Revenue and units by month, chronological"""
        if self.sales_df.empty:
            return []

        monthly = self.sales_df.groupby('month').agg({
            'units': 'sum',
            'royalty': 'sum'
        }).reset_index()

        monthly.columns = ['month', 'units', 'revenue']
        monthly = monthly.sort_values('month')
        monthly['label'] = monthly['month'].map(month_label)
        monthly['units'] = monthly['units'].astype(int)
        monthly['revenue'] = monthly['revenue'].round(2)

        # Month-over-month change
        change = monthly['revenue'].pct_change() * 100
        monthly['revenue_change_pct'] = change.replace([np.inf, -np.inf], np.nan).round(1).fillna(0)

        return monthly[['month', 'label', 'units', 'revenue', 'revenue_change_pct']].to_dict('records')

    def get_book_breakdown(self, limit: int = TOP_BOOKS_LIMIT) -> List[Dict]:
        """Top books by revenue, for charting"""
        total = float(self.sales_df['royalty'].sum())
        titles = self.books_df.set_index('book_id')['title']

        books = self._revenue_by_book.rename('revenue').reset_index()
        books['title'] = books['book_id'].map(titles).fillna('Unknown')
        books = books.sort_values('revenue', ascending=False, kind='stable').head(limit)
        books['pct_of_total'] = (books['revenue'] / total * 100).round(1) if total > 0 else 0.0
        books['revenue'] = books['revenue'].round(2)

        return books[['book_id', 'title', 'revenue', 'pct_of_total']].to_dict('records')

    def get_niche_breakdown(self) -> List[Dict]:
        """Revenue per niche, highest first"""
        total = float(self._niche_revenue.sum())
        return [
            {
                "niche": niche,
                "revenue": round(float(revenue), 2),
                "pct_of_total": round(float(revenue / total * 100), 1) if total > 0 else 0.0,
            }
            for niche, revenue in self._niche_revenue.items()
        ]

    def get_insights(self) -> List[Dict[str, str]]:
        engine = InsightsEngine(
            self.books,
            self.sales_df,
            self._revenue_by_book,
            self._niche_revenue,
        )
        return engine.get_all_insights()

    def get_full_analysis(self) -> Dict[str, Any]:
        """Everything the dashboard renders"""
        result = {
            "overview": self.get_overview(),
            "book_roi": self.get_book_roi(),
            "monthly_trend": self.get_monthly_trend(),
            "books": self.get_book_breakdown(),
            "niches": self.get_niche_breakdown(),
            "insights": self.get_insights(),
        }
        return clean_for_json(result)
