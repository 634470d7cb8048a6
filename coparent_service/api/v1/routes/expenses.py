from datetime import date
from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import List, Optional
from coparent_service.db.database import get_db
from coparent_service.api.v1.dependencies import get_current_user_id
from coparent_service.services.expense_service import (
    create_expense, get_expense_or_404, get_visible_expense, get_expenses, update_expense, delete_expense,
    serialize_expense, get_owed_summary, get_monthly_summary
)
from coparent_service.services import audit_service, status_service
from coparent_service.services.expense_action_service import issue_approval_request
from coparent_service.services.messaging_bridge import share_expense
from coparent_service.services.errors import ExpenseValidationError, PermissionDeniedError
from coparent_service.schemas.audit_schema import Actor, AuditTrailEntryOut
from coparent_service.schemas.expense_schema import (
    ExpenseCreate, ExpenseUpdate, ExpenseOut, ExpenseQuery, StatusChangeRequest, TransitionOut,
    ShareRequest, ApprovalRequestCreate, ApprovalRequestOut, OwedSummary, CategorySummary
)

router = APIRouter(prefix="/expenses", tags=["expenses"])


def get_expense_query(
    status: str = Query("all"),
    category: str = Query("all"),
    search: str = Query(""),
    paid_by: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None)
) -> ExpenseQuery:
    try:
        return ExpenseQuery(
            status=status, category=category, search=search,
            paid_by=paid_by, date_from=date_from, date_to=date_to
        )
    except ValidationError:
        raise ExpenseValidationError(f"Unknown status filter: {status}")


@router.post("", response_model=ExpenseOut, status_code=201)
def create_new_expense(
    expense_data: ExpenseCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create a new pending expense paid by the current user"""
    expense = create_expense(db, expense_data, user_id)
    return serialize_expense(db, expense)


@router.get("", response_model=List[ExpenseOut])
def list_expenses(
    query: ExpenseQuery = Depends(get_expense_query),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List expenses matching the given filters"""
    return [serialize_expense(db, expense) for expense in get_expenses(db, query, viewer_id=user_id)]


@router.get("/summary/owed", response_model=OwedSummary)
def get_amount_owed_to_me(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Total co-parents owe the current user on pending expenses"""
    return get_owed_summary(db, user_id)


@router.get("/summary/monthly", response_model=List[CategorySummary])
def get_monthly_category_summary(
    month: Optional[date] = Query(None, description="Any day in the month; defaults to today"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Expense totals per category for one month"""
    return get_monthly_summary(db, month or date.today(), viewer_id=user_id)


@router.get("/{expense_id}", response_model=ExpenseOut)
def get_expense_details(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get expense details"""
    return serialize_expense(db, get_visible_expense(db, expense_id, user_id))


@router.patch("/{expense_id}", response_model=ExpenseOut)
def update_existing_expense(
    expense_id: str,
    update_data: ExpenseUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Update an expense (payer only)"""
    return serialize_expense(db, update_expense(db, expense_id, update_data, user_id))


@router.delete("/{expense_id}")
def delete_existing_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete an expense (payer only)"""
    delete_expense(db, expense_id, user_id)
    return {"message": "Expense deleted successfully"}


@router.post("/{expense_id}/status", response_model=TransitionOut)
def change_expense_status(
    expense_id: str,
    request: StatusChangeRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Approve, dispute, mark paid or reopen an expense"""
    expense = get_visible_expense(db, expense_id, user_id)
    result = status_service.transition(
        db, expense, request.action, Actor.user(user_id), request.note,
        expected_updated_at=request.expected_updated_at
    )
    return TransitionOut(
        expense=serialize_expense(db, result.expense),
        audit_entry_id=result.audit_entry.id if result.audit_entry else None,
        obligation_id=result.obligation.id if result.obligation else None,
        failures=result.failures
    )


@router.get("/{expense_id}/audit-trail", response_model=List[AuditTrailEntryOut])
def get_expense_audit_trail(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Status history of an expense, oldest first"""
    get_visible_expense(db, expense_id, user_id)
    return audit_service.get_trail(db, expense_id)


@router.post("/{expense_id}/share")
def share_expense_with_co_parents(
    expense_id: str,
    request: ShareRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Send an expense link to the co-parents of its children"""
    expense = get_visible_expense(db, expense_id, user_id)
    recipients = share_expense(db, expense, user_id, request.message, request.link)
    return {"message": "Expense shared successfully", "recipients": recipients}


@router.post("/{expense_id}/approval-request", response_model=ApprovalRequestOut, status_code=201)
def request_expense_approval(
    expense_id: str,
    request: ApprovalRequestCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """E-mail the co-parent a one-click approve/clarify link"""
    expense = get_expense_or_404(db, expense_id)
    if expense.paid_by != user_id:
        raise PermissionDeniedError("Only the parent who paid can request approval")
    return issue_approval_request(db, expense, request.recipient_id, request.recipient_email)
