import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, Date, DECIMAL, Text, JSON, Integer, Enum
from coparent_service.db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpenseStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    disputed = "disputed"
    paid = "paid"


class SplitMethod(str, enum.Enum):
    none = "none"
    equal = "50/50"
    custom = "custom"


class ActorKind(str, enum.Enum):
    user = "user"
    system = "system"


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    description = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False, index=True)  # Default category or custom name
    date = Column(Date, nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    paid_by = Column(String, nullable=False, index=True)  # Reference to user service
    status = Column(Enum(ExpenseStatus), nullable=False, default=ExpenseStatus.pending, index=True)
    split_method = Column(Enum(SplitMethod, values_callable=lambda e: [m.value for m in e]),
                          nullable=False, default=SplitMethod.equal)
    split_percentage = Column(JSON, nullable=True)  # party id -> percent
    split_amounts = Column(JSON, nullable=True)  # party id -> amount, wins over split_percentage
    notes = Column(Text, nullable=True)
    dispute_notes = Column(Text, nullable=True)
    receipt_url = Column(String, nullable=True)
    approval_token = Column(String, nullable=True, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ExpenseChild(Base):
    __tablename__ = "expense_children"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    expense_id = Column(String, nullable=False, index=True)  # Reference to expenses
    child_id = Column(String, nullable=False, index=True)  # Reference to children


class ExpenseAuditEntry(Base):
    """Append-only record of a status change"""
    __tablename__ = "expense_audit_entries"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    expense_id = Column(String, nullable=False, index=True)  # No FK, entries outlive the expense
    status = Column(Enum(ExpenseStatus), nullable=False)
    actor_kind = Column(Enum(ActorKind), nullable=False, default=ActorKind.user)
    user_id = Column(String, nullable=True)  # Null for system actors
    note = Column(Text, nullable=True)
    position = Column(Integer, nullable=False, default=0)  # Tie-breaker for equal timestamps
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class ExpenseNotification(Base):
    """Approval request e-mailed to the counterpart, addressed by token"""
    __tablename__ = "expense_notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    token = Column(String, nullable=False, unique=True, index=True)
    expense_id = Column(String, nullable=False, index=True)
    recipient_id = Column(String, nullable=False)
    recipient_email = Column(String, nullable=True)
    action = Column(String, nullable=True)  # approve, clarify
    sent_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    actioned_at = Column(DateTime(timezone=True), nullable=True)
