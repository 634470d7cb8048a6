import enum
import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, DECIMAL, Enum
from coparent_service.db.database import Base


class ObligationStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"


class PaymentObligation(Base):
    __tablename__ = "payment_obligations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    expense_id = Column(String, nullable=False, index=True)  # Reference to expenses
    debtor_id = Column(String, nullable=False, index=True)  # Counterpart who owes
    creditor_id = Column(String, nullable=False, index=True)  # Payer of the expense
    amount = Column(DECIMAL(10, 2), nullable=False)
    status = Column(Enum(ObligationStatus), nullable=False, default=ObligationStatus.pending, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    settled_at = Column(DateTime(timezone=True), nullable=True)
