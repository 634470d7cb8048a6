import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session
from coparent_service.models.obligations import PaymentObligation, ObligationStatus
from coparent_service.services.errors import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)


def create_obligation(db: Session, expense_id: str, debtor_id: str, creditor_id: str, amount: Decimal) -> PaymentObligation:
    """Record that the counterpart owes the payer for an approved expense"""
    obligation = PaymentObligation(
        expense_id=expense_id,
        debtor_id=debtor_id,
        creditor_id=creditor_id,
        amount=amount,
        status=ObligationStatus.pending
    )
    db.add(obligation)
    db.commit()
    db.refresh(obligation)
    logger.info(f"Created obligation {obligation.id}: {debtor_id} owes {creditor_id} {amount} for expense {expense_id}")
    return obligation


def get_obligation(db: Session, obligation_id: str) -> Optional[PaymentObligation]:
    """Get an obligation by ID"""
    return db.query(PaymentObligation).filter(PaymentObligation.id == obligation_id).first()


def get_expense_obligations(db: Session, expense_id: str) -> List[PaymentObligation]:
    """Get all obligations for an expense"""
    return db.query(PaymentObligation).filter(PaymentObligation.expense_id == expense_id).all()


def get_user_obligations(db: Session, user_id: str, status: Optional[ObligationStatus] = None) -> List[PaymentObligation]:
    """Get obligations the user owes or is owed"""
    query = db.query(PaymentObligation).filter(
        (PaymentObligation.debtor_id == user_id) | (PaymentObligation.creditor_id == user_id)
    )
    if status is not None:
        query = query.filter(PaymentObligation.status == status)
    return query.order_by(PaymentObligation.created_at.desc()).all()


def settle_obligation(db: Session, obligation_id: str, user_id: str) -> PaymentObligation:
    """Mark an obligation as paid (either party may settle it)"""
    obligation = get_obligation(db, obligation_id)
    if not obligation:
        raise NotFoundError("Obligation not found")

    if user_id not in (obligation.debtor_id, obligation.creditor_id):
        raise PermissionDeniedError("You can only settle obligations you're involved in")

    if obligation.status != ObligationStatus.paid:
        obligation.status = ObligationStatus.paid
        obligation.settled_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(obligation)
    return obligation


def settle_expense_obligations(db: Session, expense_id: str) -> List[PaymentObligation]:
    """Mark every pending obligation of an expense as paid"""
    pending = db.query(PaymentObligation).filter(
        PaymentObligation.expense_id == expense_id,
        PaymentObligation.status == ObligationStatus.pending
    ).all()

    settled_at = datetime.now(timezone.utc)
    for obligation in pending:
        obligation.status = ObligationStatus.paid
        obligation.settled_at = settled_at
    db.commit()
    return pending


def cancel_expense_obligations(db: Session, expense_id: str) -> int:
    """
    Remove every obligation of an expense, paid or not.

    Used when an expense goes back to pending: a pending expense owes nothing
    until it is approved again.
    """
    removed = db.query(PaymentObligation)\
        .filter(PaymentObligation.expense_id == expense_id)\
        .delete(synchronize_session=False)
    db.commit()
    if removed:
        logger.info(f"Cancelled {removed} obligation(s) of expense {expense_id}")
    return removed
