import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from coparent_service.models.expenses import ExpenseAuditEntry, ExpenseStatus
from coparent_service.schemas.audit_schema import Actor
from coparent_service.services.errors import DependencyFailure

logger = logging.getLogger(__name__)


def record(db: Session, expense_id: str, status: ExpenseStatus, actor: Actor, note: Optional[str] = None) -> ExpenseAuditEntry:
    """
    Append an audit entry for a status an expense has just entered.

    Storage errors are rolled back and re-raised as DependencyFailure so the
    caller can decide whether they are fatal.
    """
    try:
        position = db.query(ExpenseAuditEntry).filter(ExpenseAuditEntry.expense_id == expense_id).count()
        entry = ExpenseAuditEntry(
            expense_id=expense_id,
            status=status,
            actor_kind=actor.kind,
            user_id=actor.user_id,
            note=note,
            position=position
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to record audit entry for expense {expense_id}: {e}")
        raise DependencyFailure("audit", str(e)) from e

    logger.info(f"Recorded audit entry {entry.id}: expense {expense_id} -> {status.value}")
    return entry


def get_trail(db: Session, expense_id: str) -> List[ExpenseAuditEntry]:
    """Get the audit trail for an expense, oldest first"""
    return db.query(ExpenseAuditEntry)\
        .filter(ExpenseAuditEntry.expense_id == expense_id)\
        .order_by(ExpenseAuditEntry.timestamp.asc(), ExpenseAuditEntry.position.asc())\
        .all()
