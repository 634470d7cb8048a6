from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Dict, Literal, Union
from datetime import datetime, date as date_type
from decimal import Decimal
from enum import Enum
from coparent_service.models.expenses import ExpenseStatus, SplitMethod


class ExpenseCategory(str, Enum):
    medical = "medical"
    education = "education"
    clothing = "clothing"
    activities = "activities"
    food = "food"
    other = "other"


class ExpenseAction(str, Enum):
    approve = "approve"
    dispute = "dispute"
    mark_paid = "mark_paid"
    reopen = "reopen"


def _check_percentages(value: Optional[Dict[str, Decimal]]):
    if value:
        for party_id, percentage in value.items():
            if percentage < 0 or percentage > 100:
                raise ValueError(f"Percentage for {party_id} must be between 0 and 100")
    return value


class ExpenseBase(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(ExpenseCategory.other.value, min_length=1, max_length=100)
    date: date_type
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    split_method: SplitMethod = SplitMethod.equal
    split_percentage: Optional[Dict[str, Decimal]] = None
    split_amounts: Optional[Dict[str, Decimal]] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None


class ExpenseCreate(ExpenseBase):
    child_ids: List[str] = []

    check_percentages = field_validator("split_percentage")(_check_percentages)


class ExpenseUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    date: Optional[date_type] = None
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    split_method: Optional[SplitMethod] = None
    split_percentage: Optional[Dict[str, Decimal]] = None
    split_amounts: Optional[Dict[str, Decimal]] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    child_ids: Optional[List[str]] = None

    check_percentages = field_validator("split_percentage")(_check_percentages)

    @field_validator("description", "category", "date", "amount", "split_method", mode="before")
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class ExpenseOut(ExpenseBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    paid_by: str
    status: ExpenseStatus
    dispute_notes: Optional[str] = None
    child_ids: List[str] = []
    created_at: datetime
    updated_at: datetime


class ExpenseQuery(BaseModel):
    """Immutable filter set for listing expenses"""
    model_config = ConfigDict(frozen=True)

    status: Union[ExpenseStatus, Literal["all"]] = "all"
    category: str = "all"
    search: str = ""
    paid_by: Optional[str] = None
    date_from: Optional[date_type] = None
    date_to: Optional[date_type] = None


class StatusChangeRequest(BaseModel):
    action: ExpenseAction
    note: Optional[str] = None
    expected_updated_at: Optional[datetime] = None


class ShareRequest(BaseModel):
    message: str = ""
    link: str = Field(..., min_length=1)


class ApprovalRequestCreate(BaseModel):
    recipient_id: str
    recipient_email: str


class ApprovalRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    expense_id: str
    recipient_id: str
    sent_at: datetime


class ExpenseActionRequest(BaseModel):
    token: str = Field(..., min_length=1)
    action: str


class ExpenseActionOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    expense_id: str = Field(..., alias="expenseId")
    action: str
    status: ExpenseStatus


class OwedSummary(BaseModel):
    user_id: str
    pending_count: int
    total_owed: Decimal


class CategorySummary(BaseModel):
    name: str
    amount: Decimal
    percentage: Decimal


class TransitionOut(BaseModel):
    expense: ExpenseOut
    audit_entry_id: Optional[str] = None
    obligation_id: Optional[str] = None
    failures: List[str] = []
