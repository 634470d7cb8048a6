"""
Expense Status State Machine

Moves an expense between pending, approved, disputed and paid, and fires the
side effects of each move:

    approve    pending                     -> approved  notify payer, open payment obligation (at most one per expense)
    dispute    pending                     -> disputed  notify payer, message payer
    mark_paid  pending, approved, disputed -> paid      settle payment obligations
    reopen     approved, disputed, paid    -> pending   cancel payment obligations

Every transition commits the new status first and then appends exactly one
audit entry. Failures after that commit (audit, notification, messaging,
obligation) are logged and reported in TransitionResult.failures; the
status change is never rolled back because of them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from coparent_service.models.expenses import Expense, ExpenseAuditEntry, ExpenseStatus
from coparent_service.models.obligations import PaymentObligation
from coparent_service.schemas.audit_schema import Actor
from coparent_service.schemas.expense_schema import ExpenseAction
from coparent_service.services import audit_service, notification_service
from coparent_service.services.errors import (
    AlreadyProcessedError, DependencyFailure, ExpenseValidationError, StaleExpenseError
)
from coparent_service.services.messaging_bridge import (
    default_dispute_text, format_amount, notify_counterpart, resolve_counterpart
)
from coparent_service.services.obligation_service import (
    cancel_expense_obligations, create_obligation, get_expense_obligations, settle_expense_obligations
)
from coparent_service.utils.split_allocator import compute_owed_amount

logger = logging.getLogger(__name__)

TRANSITIONS = {
    ExpenseAction.approve: ({ExpenseStatus.pending}, ExpenseStatus.approved),
    ExpenseAction.dispute: ({ExpenseStatus.pending}, ExpenseStatus.disputed),
    ExpenseAction.mark_paid: (
        {ExpenseStatus.pending, ExpenseStatus.approved, ExpenseStatus.disputed},
        ExpenseStatus.paid
    ),
    ExpenseAction.reopen: (
        {ExpenseStatus.approved, ExpenseStatus.disputed, ExpenseStatus.paid},
        ExpenseStatus.pending
    ),
}


@dataclass
class TransitionResult:
    expense: Expense
    audit_entry: Optional[ExpenseAuditEntry] = None
    obligation: Optional[PaymentObligation] = None
    failures: List[str] = field(default_factory=list)


def _naive_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def allowed_actions(status: ExpenseStatus) -> List[ExpenseAction]:
    """Actions that may be taken on an expense in the given status"""
    return [action for action, (sources, _) in TRANSITIONS.items() if status in sources]


def transition(
    db: Session,
    expense: Expense,
    action: Union[ExpenseAction, str],
    actor: Actor,
    note: Optional[str] = None,
    *,
    expected_updated_at: Optional[datetime] = None,
    external: bool = False,
    counterpart_id: Optional[str] = None,
    producer=None
) -> TransitionResult:
    """
    Apply an action to an expense.

    Args:
        db: Database session
        expense: Expense to move
        action: approve, dispute, mark_paid or reopen
        actor: Who performs the action (a user, or the system for external triggers)
        note: Free text stored on the audit entry; required for disputes
        expected_updated_at: When given, the expense must not have changed since
        external: The action comes from a token link and requires a pending expense
        counterpart_id: Non-payer party, when the actor cannot identify it
        producer: RabbitMQ producer override for outbound messages

    Raises:
        ExpenseValidationError: Dispute without a note
        AlreadyProcessedError: Expense is not in a state the action starts from
        StaleExpenseError: expected_updated_at no longer matches
    """
    action = ExpenseAction(action)
    sources, target = TRANSITIONS[action]
    note = note.strip() if note else None

    if action == ExpenseAction.dispute and not note:
        raise ExpenseValidationError("A note is required to dispute an expense")

    if external and expense.status != ExpenseStatus.pending:
        logger.warning(f"External {action.value} on expense {expense.id} rejected: status is {expense.status.value}")
        raise AlreadyProcessedError()

    if expense.status not in sources:
        logger.warning(f"Rejected {action.value} on expense {expense.id} in status {expense.status.value}")
        raise AlreadyProcessedError()

    if expected_updated_at is not None and _naive_utc(expected_updated_at) != _naive_utc(expense.updated_at):
        raise StaleExpenseError()

    previous = expense.status
    expense.status = target
    expense.updated_at = datetime.now(timezone.utc)
    if action == ExpenseAction.dispute:
        expense.dispute_notes = note
    db.commit()
    db.refresh(expense)
    logger.info(f"Expense {expense.id}: {previous.value} -> {target.value} by {actor.user_id or 'system'}")

    result = TransitionResult(expense=expense)

    try:
        result.audit_entry = audit_service.record(db, expense.id, target, actor, note)
    except DependencyFailure as e:
        logger.error(f"Status of expense {expense.id} changed without an audit entry: {e.detail}")
        result.failures.append(e.detail)

    if action == ExpenseAction.approve:
        _notify_payer(expense, actor, "expense_approved",
                      f'Your expense "{expense.description}" was approved', result, producer)
        _open_obligation(db, expense, actor, counterpart_id, result)
    elif action == ExpenseAction.dispute:
        _notify_payer(expense, actor, "expense_disputed",
                      f'Your expense "{expense.description}" was disputed: {note}', result, producer)
        if not actor.is_system:
            try:
                notify_counterpart(db, expense, actor.user_id, default_dispute_text(expense, note), producer)
            except DependencyFailure as e:
                logger.error(f"Dispute message for expense {expense.id} not delivered: {e.detail}")
                result.failures.append(e.detail)
    elif action == ExpenseAction.mark_paid:
        try:
            settle_expense_obligations(db, expense.id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not settle obligations of expense {expense.id}: {e}")
            result.failures.append(f"obligation: {e}")
    elif action == ExpenseAction.reopen:
        try:
            cancel_expense_obligations(db, expense.id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not cancel obligations of expense {expense.id}: {e}")
            result.failures.append(f"obligation: {e}")

    return result


def _notify_payer(expense: Expense, actor: Actor, type: str, message: str, result: TransitionResult, producer):
    if actor.user_id == expense.paid_by:
        return
    try:
        notification_service.notify(expense.paid_by, type, message, expense.id, producer)
    except DependencyFailure as e:
        logger.error(f"Payer of expense {expense.id} not notified: {e.detail}")
        result.failures.append(e.detail)


def _open_obligation(db: Session, expense: Expense, actor: Actor, counterpart_id: Optional[str], result: TransitionResult):
    # The debtor is always the non-payer party
    debtor_id = counterpart_id
    if debtor_id is None and not actor.is_system:
        if actor.user_id != expense.paid_by:
            debtor_id = actor.user_id
        else:
            debtor_id = resolve_counterpart(db, expense, actor.user_id)
    if not debtor_id or debtor_id == expense.paid_by:
        logger.warning(f"No counterpart to charge for approved expense {expense.id}")
        return

    amount = compute_owed_amount(expense, debtor_id)
    if amount <= 0:
        return

    existing = get_expense_obligations(db, expense.id)
    if existing:
        logger.warning(f"Expense {expense.id} already has an obligation, not opening another")
        result.obligation = existing[0]
        return

    try:
        result.obligation = create_obligation(db, expense.id, debtor_id, expense.paid_by, amount)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Obligation of {format_amount(amount)} for expense {expense.id} not recorded: {e}")
        result.failures.append(f"obligation: {e}")
