import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from coparent_service.utils.expense_summary import month_bounds, summarize_by_category


def _expense(amount, category):
    return SimpleNamespace(amount=Decimal(amount), category=category)


@pytest.mark.unit
class TestMonthBounds:

    def test_leap_february(self):
        assert month_bounds(date(2024, 2, 14)) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_december(self):
        assert month_bounds(date(2023, 12, 31)) == (date(2023, 12, 1), date(2023, 12, 31))


@pytest.mark.unit
class TestSummarizeByCategory:

    def test_totals_sorted_by_amount(self):
        summary = summarize_by_category([
            _expense("20", "food"),
            _expense("50", "medical"),
            _expense("30", "food"),
            _expense("100", "education"),
        ])

        assert [(s.name, s.amount) for s in summary] == [
            ("Education", Decimal("100.00")),
            ("Food", Decimal("50.00")),
            ("Medical", Decimal("50.00")),
        ]
        assert sum(s.percentage for s in summary) == Decimal("100.00")

    def test_percentages_are_rounded(self):
        summary = summarize_by_category([_expense("10", "food"), _expense("20", "clothing")])
        assert {s.name: s.percentage for s in summary} == {
            "Clothing": Decimal("66.67"),
            "Food": Decimal("33.33"),
        }

    def test_custom_category_keeps_its_name(self):
        summary = summarize_by_category([_expense("12.50", "swimming lessons")])
        assert summary[0].name == "Swimming lessons"
        assert summary[0].percentage == Decimal("100.00")

    def test_no_expenses(self):
        assert summarize_by_category([]) == []
