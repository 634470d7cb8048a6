"""
Split Allocation Module

Computes how much of an expense each co-parent bears under the expense's
split method. Every function here is pure: it reads the expense attributes
(`amount`, `paid_by`, `split_method`, `split_amounts`, `split_percentage`)
and never touches the database.

Split methods:
- "none":   the payer bears the full amount, the counterpart owes nothing
- "50/50":  each side bears half; the odd cent goes to the payer
- "custom": explicit per-party amounts, else per-party percentages;
            amounts win when both are present, and with neither the
            expense is treated as "none"

Malformed map entries degrade to a zero share instead of raising, and
custom maps are not required to sum to the expense amount. Callers that
want to flag mismatches use split_discrepancy().

Example Usage:
    from coparent_service.utils.split_allocator import compute_owed_amount

    expense = Expense(amount=Decimal("100"), paid_by="alice", split_method="50/50")
    compute_owed_amount(expense, "bob")    # Decimal('50.00')
    compute_owed_amount(expense, "alice")  # Decimal('50.00')
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def round_decimal(value: Decimal, precision: Decimal = CENT) -> Decimal:
    """
    Round a Decimal value to the specified precision.

    Uses the context rounding (ROUND_HALF_EVEN), matching how balances are
    rounded elsewhere in the service.

    Example:
        >>> round_decimal(Decimal("43.335"))
        Decimal('43.34')
    """
    return value.quantize(precision)


def to_decimal(value) -> Optional[Decimal]:
    """Convert a stored amount or percentage to Decimal, None if malformed."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


def _method(expense) -> str:
    method = getattr(expense, "split_method", None)
    return getattr(method, "value", method) or "none"


def _amount(expense) -> Decimal:
    return to_decimal(expense.amount) or ZERO


def _authoritative_map(expense) -> Optional[str]:
    """
    Name the custom map that decides shares, or None to fall back to "none".
    """
    if _method(expense) != "custom":
        return None
    if getattr(expense, "split_amounts", None):
        return "split_amounts"
    if getattr(expense, "split_percentage", None):
        return "split_percentage"
    return None


def _map_share(expense, source: str, party_id: str) -> Decimal:
    entries: Dict = getattr(expense, source) or {}
    raw = to_decimal(entries.get(party_id))
    if raw is None:
        if party_id in entries:
            logger.warning(f"Ignoring malformed {source} entry for {party_id} on expense {getattr(expense, 'id', None)}")
        return ZERO
    if source == "split_amounts":
        return round_decimal(raw)
    return round_decimal(_amount(expense) * raw / Decimal(100))


def equal_split(amount: Decimal) -> Dict[str, Decimal]:
    """
    Split an amount in two so that the parts sum exactly to the amount.

    The counterpart's half is truncated to the cent and the payer absorbs
    the remainder.

    Returns:
        {"payer": Decimal, "counterpart": Decimal}

    Example:
        >>> equal_split(Decimal("100.01"))
        {'payer': Decimal('50.01'), 'counterpart': Decimal('50.00')}
    """
    counterpart = (amount / 2).quantize(CENT, rounding=ROUND_DOWN)
    return {"payer": round_decimal(amount - counterpart), "counterpart": counterpart}


def compute_owed_amount(expense, party_id: str) -> Decimal:
    """
    Compute a party's share of an expense.

    The allocator answers a single question, "what part of the total does
    this party bear". Whether that share is owed to or by the party is up to
    the caller.

    Args:
        expense: Expense-like object
        party_id: Party whose share is requested

    Returns:
        Share rounded to cents; Decimal('0.00') for parties with no share
    """
    amount = _amount(expense)
    is_payer = party_id == expense.paid_by
    method = _method(expense)

    if method == "50/50":
        halves = equal_split(amount)
        return halves["payer"] if is_payer else halves["counterpart"]

    source = _authoritative_map(expense)
    if source is not None:
        return _map_share(expense, source, party_id)

    # "none", unknown methods and custom splits without any map
    return round_decimal(amount) if is_payer else ZERO


def counterpart_share(expense) -> Decimal:
    """
    Total the non-payer side owes the payer for one expense.

    For explicit amounts this is the sum of every entry that is not the
    payer's. For percentages it is whatever the payer does not bear, so the
    two sides always add back up to the expense amount.
    """
    method = _method(expense)
    if method == "50/50":
        return equal_split(_amount(expense))["counterpart"]

    source = _authoritative_map(expense)
    if source == "split_amounts":
        return sum(
            (_map_share(expense, source, party_id) for party_id in expense.split_amounts
             if party_id != expense.paid_by),
            ZERO
        )
    if source == "split_percentage":
        return round_decimal(_amount(expense) - compute_owed_amount(expense, expense.paid_by))
    return ZERO


def compute_owed_to_user(expenses: Iterable, user_id: str) -> Decimal:
    """
    Sum what counterparts owe a user across the expenses that user paid.

    Args:
        expenses: Expense-like objects; those not paid by user_id are skipped
        user_id: The payer whose receivable is totalled

    Returns:
        Total rounded to cents (accumulated in Decimal, so no float drift)
    """
    total = ZERO
    for expense in expenses:
        if expense.paid_by != user_id:
            continue
        total += counterpart_share(expense)
    return round_decimal(total)


def split_discrepancy(expense) -> Decimal:
    """
    Difference between the expense amount and the sum of its custom shares.

    Returns Decimal('0.00') for non-custom splits. A non-zero result means the
    custom map under- or over-allocates the expense; this is reported, not
    corrected.
    """
    source = _authoritative_map(expense)
    if source is None:
        return ZERO
    entries = getattr(expense, source) or {}
    allocated = sum((_map_share(expense, source, party_id) for party_id in entries), ZERO)
    return round_decimal(_amount(expense) - allocated)
