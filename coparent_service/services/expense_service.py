import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from coparent_service.models.expenses import Expense, ExpenseChild, ExpenseStatus
from coparent_service.models.obligations import PaymentObligation
from coparent_service.schemas.audit_schema import Actor
from coparent_service.schemas.expense_schema import (
    ExpenseCreate, ExpenseUpdate, ExpenseOut, ExpenseQuery, OwedSummary, CategorySummary
)
from coparent_service.services import audit_service
from coparent_service.services.errors import (
    DependencyFailure, ExpenseValidationError, NotFoundError, PermissionDeniedError
)
from coparent_service.services.family_service import get_child_ids, get_co_parent_ids
from coparent_service.services.obligation_service import get_expense_obligations
from coparent_service.utils.expense_summary import month_bounds, summarize_by_category
from coparent_service.utils.split_allocator import compute_owed_to_user

logger = logging.getLogger(__name__)

# Columns an update may not clear
NON_NULLABLE_FIELDS = ("description", "category", "date", "amount", "split_method")
# Fields that size payment obligations
SPLIT_FIELDS = ("amount", "split_method", "split_percentage", "split_amounts")


def _serialize_split_map(values: Optional[Dict[str, Decimal]]) -> Optional[Dict[str, str]]:
    # JSON columns cannot hold Decimal
    if not values:
        return None
    return {party_id: str(value) for party_id, value in values.items()}


def _validate_amount(amount: Optional[Decimal]):
    if amount is not None and amount <= 0:
        raise ExpenseValidationError("Expense amount must be positive")


def create_expense(db: Session, expense_data: ExpenseCreate, paid_by: str) -> Expense:
    """Create a pending expense, link its children and open its audit trail"""
    _validate_amount(expense_data.amount)

    expense = Expense(
        description=expense_data.description,
        category=expense_data.category,
        date=expense_data.date,
        amount=expense_data.amount,
        paid_by=paid_by,
        status=ExpenseStatus.pending,
        split_method=expense_data.split_method,
        split_percentage=_serialize_split_map(expense_data.split_percentage),
        split_amounts=_serialize_split_map(expense_data.split_amounts),
        notes=expense_data.notes,
        receipt_url=expense_data.receipt_url
    )
    db.add(expense)
    db.flush()

    for child_id in dict.fromkeys(expense_data.child_ids):
        db.add(ExpenseChild(expense_id=expense.id, child_id=child_id))

    db.commit()
    db.refresh(expense)

    try:
        audit_service.record(db, expense.id, ExpenseStatus.pending, Actor.user(paid_by), "Expense created")
    except DependencyFailure as e:
        logger.error(f"Expense {expense.id} created without an initial audit entry: {e.detail}")

    return expense


def get_expense(db: Session, expense_id: str) -> Optional[Expense]:
    """Get an expense by ID"""
    return db.query(Expense).filter(Expense.id == expense_id).first()


def get_expense_or_404(db: Session, expense_id: str) -> Expense:
    expense = get_expense(db, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def get_expense_child_ids(db: Session, expense_id: str) -> List[str]:
    """Get ids of the children an expense is associated with"""
    rows = db.query(ExpenseChild.child_id).filter(ExpenseChild.expense_id == expense_id).all()
    return [row.child_id for row in rows]


def can_view_expense(db: Session, expense: Expense, user_id: str) -> bool:
    """
    Whether a user may see an expense: they paid it, they share a child with
    the payer, or one of their children is on it.
    """
    if user_id == expense.paid_by:
        return True
    if expense.paid_by in get_co_parent_ids(db, user_id):
        return True
    return bool(set(get_expense_child_ids(db, expense.id)) & set(get_child_ids(db, user_id)))


def get_visible_expense(db: Session, expense_id: str, user_id: str) -> Expense:
    expense = get_expense_or_404(db, expense_id)
    if not can_view_expense(db, expense, user_id):
        raise PermissionDeniedError("You can only access expenses of your own family")
    return expense


def serialize_expense(db: Session, expense: Expense) -> ExpenseOut:
    out = ExpenseOut.model_validate(expense)
    return out.model_copy(update={"child_ids": get_expense_child_ids(db, expense.id)})


def get_expenses(db: Session, query: ExpenseQuery = ExpenseQuery(), viewer_id: Optional[str] = None) -> List[Expense]:
    """
    Get expenses matching a filter set, most recent first.

    With viewer_id, only expenses that user may see (see can_view_expense)
    are returned.
    """
    q = db.query(Expense)

    if viewer_id is not None:
        visible = Expense.paid_by.in_([viewer_id] + get_co_parent_ids(db, viewer_id))
        own_children = get_child_ids(db, viewer_id)
        if own_children:
            shared = select(ExpenseChild.expense_id).where(ExpenseChild.child_id.in_(own_children))
            visible = or_(visible, Expense.id.in_(shared))
        q = q.filter(visible)

    if query.status != "all":
        q = q.filter(Expense.status == query.status)
    if query.category != "all":
        q = q.filter(Expense.category == query.category)
    if query.search:
        q = q.filter(Expense.description.ilike(f"%{query.search}%"))
    if query.paid_by:
        q = q.filter(Expense.paid_by == query.paid_by)
    if query.date_from:
        q = q.filter(Expense.date >= query.date_from)
    if query.date_to:
        q = q.filter(Expense.date <= query.date_to)

    return q.order_by(Expense.date.desc(), Expense.created_at.desc()).all()


def update_expense(db: Session, expense_id: str, update_data: ExpenseUpdate, user_id: str) -> Expense:
    """Update an expense's details (payer only); only fields that were sent change"""
    expense = get_expense_or_404(db, expense_id)

    if expense.paid_by != user_id:
        raise PermissionDeniedError("Only the parent who paid can update this expense")

    changes = update_data.model_dump(exclude_unset=True)
    cleared = [field for field in NON_NULLABLE_FIELDS if field in changes and changes[field] is None]
    if cleared:
        raise ExpenseValidationError(f"Fields cannot be null: {', '.join(cleared)}")
    if any(field in changes for field in SPLIT_FIELDS) and get_expense_obligations(db, expense_id):
        raise ExpenseValidationError("Reopen the expense before changing its amount or split")
    _validate_amount(changes.get("amount"))
    child_ids = changes.pop("child_ids", None)

    for field, value in changes.items():
        if field in ("split_percentage", "split_amounts"):
            value = _serialize_split_map(value)
        setattr(expense, field, value)

    if child_ids is not None:
        db.query(ExpenseChild).filter(ExpenseChild.expense_id == expense_id).delete(synchronize_session=False)
        for child_id in dict.fromkeys(child_ids):
            db.add(ExpenseChild(expense_id=expense_id, child_id=child_id))

    db.commit()
    db.refresh(expense)
    return expense


def delete_expense(db: Session, expense_id: str, user_id: str):
    """
    Delete an expense (payer only).

    Child associations and obligations are removed in the same commit as the
    expense row. The audit trail is kept.
    """
    expense = get_expense_or_404(db, expense_id)

    if expense.paid_by != user_id:
        raise PermissionDeniedError("Only the parent who paid can delete this expense")

    db.query(ExpenseChild).filter(ExpenseChild.expense_id == expense_id).delete(synchronize_session=False)
    db.query(PaymentObligation).filter(PaymentObligation.expense_id == expense_id).delete(synchronize_session=False)
    db.delete(expense)
    db.commit()
    logger.info(f"Expense {expense_id} deleted by {user_id}")


def get_owed_summary(db: Session, user_id: str) -> OwedSummary:
    """How much co-parents owe the user on expenses still pending"""
    pending = get_expenses(db, ExpenseQuery(status=ExpenseStatus.pending, paid_by=user_id))
    return OwedSummary(
        user_id=user_id,
        pending_count=len(pending),
        total_owed=compute_owed_to_user(pending, user_id)
    )


def get_monthly_summary(db: Session, month: date, viewer_id: Optional[str] = None) -> List[CategorySummary]:
    """Category breakdown of expenses dated in the month containing `month`"""
    first_day, last_day = month_bounds(month)
    expenses = get_expenses(db, ExpenseQuery(date_from=first_day, date_to=last_day), viewer_id)
    return summarize_by_category(expenses)
