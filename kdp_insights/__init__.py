"""KDP Insights - sales report import and portfolio analytics for self-published authors."""
