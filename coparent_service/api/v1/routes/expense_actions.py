from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from coparent_service.db.database import get_db
from coparent_service.services.expense_action_service import handle_expense_action
from coparent_service.schemas.expense_schema import ExpenseActionRequest, ExpenseActionOut

router = APIRouter(prefix="/expense-actions", tags=["expense-actions"])


@router.post("", response_model=ExpenseActionOut)
def apply_expense_action(
    request: ExpenseActionRequest,
    db: Session = Depends(get_db)
):
    """Approve or request clarification through an e-mailed token; no login required"""
    return handle_expense_action(db, request.token, request.action)
