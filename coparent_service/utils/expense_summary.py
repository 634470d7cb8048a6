import calendar
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from coparent_service.schemas.expense_schema import CategorySummary
from coparent_service.utils.split_allocator import round_decimal, to_decimal


def month_bounds(day: date) -> Tuple[date, date]:
    """First and last calendar day of the month containing `day`"""
    last_day = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last_day)


def summarize_by_category(expenses: Iterable) -> List[CategorySummary]:
    """
    Total expenses per category with each category's share of the overall sum.

    Category names are capitalised for display. Results are sorted by amount,
    highest first.
    """
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    grand_total = Decimal('0')

    for expense in expenses:
        amount = to_decimal(expense.amount)
        if amount is None:
            continue
        totals[expense.category] += amount
        grand_total += amount

    summaries = [
        CategorySummary(
            name=category[:1].upper() + category[1:],
            amount=round_decimal(amount),
            percentage=round_decimal(amount * 100 / grand_total) if grand_total > 0 else Decimal('0.00')
        )
        for category, amount in totals.items()
    ]
    summaries.sort(key=lambda summary: summary.amount, reverse=True)
    return summaries
