import logging
import uuid
from datetime import datetime, timezone
from urllib.parse import urlencode
from sqlalchemy.orm import Session
from coparent_service.config import settings
from coparent_service.models.expenses import Expense, ExpenseNotification, ExpenseStatus
from coparent_service.rabbitmq.producer import get_rabbitmq_producer
from coparent_service.schemas.audit_schema import Actor
from coparent_service.schemas.expense_schema import ExpenseAction
from coparent_service.services import status_service
from coparent_service.services.errors import (
    AlreadyProcessedError, DependencyFailure, ExpenseValidationError, NotFoundError, PermissionDeniedError
)

logger = logging.getLogger(__name__)

# External link action -> state machine action
LINK_ACTIONS = {
    "approve": ExpenseAction.approve,
    "clarify": ExpenseAction.dispute,
}
CLARIFY_NOTE = "Clarification requested from e-mail link"


def action_url(token: str, action: str) -> str:
    return f"{settings.frontend_url}/api/expense-action?{urlencode({'token': token, 'action': action})}"


def issue_approval_request(db: Session, expense: Expense, recipient_id: str, recipient_email: str, producer=None) -> ExpenseNotification:
    """
    Issue a single-use approval token for a pending expense and e-mail it to
    the counterpart.

    The token is stored before the e-mail is queued, so a broker failure
    leaves a valid token behind and raises DependencyFailure.
    """
    if expense.status != ExpenseStatus.pending:
        raise AlreadyProcessedError()
    if recipient_id == expense.paid_by:
        raise PermissionDeniedError("Approval requests go to the co-parent, not the payer")

    token = uuid.uuid4().hex
    expense.approval_token = token
    notification = ExpenseNotification(
        token=token,
        expense_id=expense.id,
        recipient_id=recipient_id,
        recipient_email=recipient_email
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    payload = {
        "expense_id": expense.id,
        "recipient_email": recipient_email,
        "expense_amount": str(expense.amount),
        "expense_description": expense.description,
        "category": expense.category,
        "date": expense.date.isoformat(),
        "payer_id": expense.paid_by,
        "receipt_url": expense.receipt_url,
        "approval_token": token,
        "approve_url": action_url(token, "approve"),
        "clarify_url": action_url(token, "clarify"),
    }
    producer = producer or get_rabbitmq_producer()
    if not producer.publish_expense_approval_email(payload):
        raise DependencyFailure("email", f"approval request for expense {expense.id} not queued")

    logger.info(f"Approval request for expense {expense.id} sent to {recipient_id}")
    return notification


def handle_expense_action(db: Session, token: str, action: str, producer=None) -> dict:
    """
    Apply an approve/clarify action arriving from an e-mailed link.

    Returns:
        {"expenseId": str, "action": str, "status": "approved" | "disputed"}

    Raises:
        ExpenseValidationError: Missing token or unknown action ("invalid-parameters")
        NotFoundError: Token does not resolve to an expense ("not-found")
        AlreadyProcessedError: Token already used or superseded, or the expense
            is no longer pending ("already-processed")
    """
    if not token or action not in LINK_ACTIONS:
        raise ExpenseValidationError("invalid-parameters")

    notification = db.query(ExpenseNotification).filter(ExpenseNotification.token == token).first()
    expense = db.query(Expense).filter(Expense.id == notification.expense_id).first() if notification else None
    if not expense:
        logger.warning("Expense action with unknown token")
        raise NotFoundError("not-found")

    # Tokens are single-use and superseded by newer requests
    if notification.actioned_at is not None or expense.approval_token != token:
        raise AlreadyProcessedError()
    if expense.status != ExpenseStatus.pending:
        raise AlreadyProcessedError()

    notification.actioned_at = datetime.now(timezone.utc)
    notification.action = action
    expense.approval_token = None

    result = status_service.transition(
        db,
        expense,
        LINK_ACTIONS[action],
        Actor.system(),
        CLARIFY_NOTE if action == "clarify" else None,
        external=True,
        counterpart_id=notification.recipient_id,
        producer=producer
    )
    for failure in result.failures:
        logger.error(f"Expense action {action} on {expense.id} completed with failure: {failure}")

    return {"expenseId": result.expense.id, "action": action, "status": result.expense.status.value}
