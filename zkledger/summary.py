"""
Spending summaries over decrypted transactions.

Monthly and per-category aggregates for display, plus the monthly series the
anomaly detector uses for its period checks. Months are 'YYYY-MM' strings;
months with no spending between the first and last month appear with a
zero total.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from zkledger.decimal_utils import ZERO, round_usd

logger = logging.getLogger("zkledger")


def _frame(transactions: Iterable) -> pd.DataFrame:
    rows = [
        {'amount': tx.amount, 'category': tx.category, 'date': tx.date}
        for tx in transactions
    ]
    df = pd.DataFrame(rows, columns=['amount', 'category', 'date'])
    if not df.empty:
        df['month'] = pd.to_datetime(df['date']).dt.to_period('M')
    return df


def _month_range(df: pd.DataFrame, through: Optional[date] = None) -> pd.PeriodIndex:
    end = df['month'].max()
    if through is not None:
        end = max(end, pd.Period(through, freq='M'))
    return pd.period_range(start=df['month'].min(), end=end, freq='M')


def _decimal_sum(series: pd.Series) -> Decimal:
    return sum(series, ZERO)


def monthly_totals(transactions: Iterable, through: Optional[date] = None) -> List[Tuple[str, Decimal]]:
    """
    Total spending per month, ascending.

    Args:
        transactions: Decrypted transactions
        through: Extend the series with zero months up to this date
    """
    df = _frame(transactions)
    if df.empty:
        return []
    totals = df.groupby('month')['amount'].agg(_decimal_sum)
    totals = totals.reindex(_month_range(df, through), fill_value=ZERO)
    return [(str(month), total) for month, total in totals.items()]


def monthly_category_counts(transactions: Iterable, through: Optional[date] = None) -> Dict[str, Dict[str, int]]:
    """Transaction count per month and category; every month in range is present."""
    df = _frame(transactions)
    if df.empty:
        return {}
    counts = df.groupby(['month', 'category']).size()
    result = {str(month): {} for month in _month_range(df, through)}
    for (month, category), count in counts.items():
        result[str(month)][category] = int(count)
    return result


def category_summary(transactions: Iterable) -> List[Dict]:
    """Total, count and share of spending per category, largest first."""
    df = _frame(transactions)
    if df.empty:
        return []
    overall = _decimal_sum(df['amount'])
    grouped = df.groupby('category')['amount']
    totals = grouped.agg(_decimal_sum)
    counts = grouped.size()

    summary = []
    for category, total in totals.items():
        percentage = (total / overall * 100) if overall > 0 else ZERO
        summary.append({
            'category': category,
            'total': total,
            'count': int(counts[category]),
            'percentage': percentage.quantize(Decimal('0.1')),
        })
    summary.sort(key=lambda row: (-row['total'], row['category']))
    return summary


def spending_summary(transactions: Iterable, as_of: Optional[date] = None) -> Dict:
    """
    Dashboard figures: totals, averages, breakdowns, this month vs. last month.

    Args:
        transactions: Decrypted transactions
        as_of: Reference date for this/last month (default: today)
    """
    transactions = list(transactions)
    as_of = as_of or date.today()
    total = sum((tx.amount for tx in transactions), ZERO)
    count = len(transactions)

    this_month = pd.Period(as_of, freq='M')
    last_month = this_month - 1
    by_month = monthly_totals(transactions)
    month_lookup = dict(by_month)

    return {
        'total': round_usd(total),
        'count': count,
        'average': round_usd(total / count) if count else round_usd(ZERO),
        'by_category': category_summary(transactions),
        'by_month': [{'month': month, 'total': value} for month, value in by_month],
        'this_month': month_lookup.get(str(this_month), ZERO),
        'last_month': month_lookup.get(str(last_month), ZERO),
    }
