from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from decimal import Decimal
from coparent_service.models.obligations import ObligationStatus


class ObligationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str
    debtor_id: str
    creditor_id: str
    amount: Decimal
    status: ObligationStatus
    created_at: datetime
    settled_at: Optional[datetime] = None
