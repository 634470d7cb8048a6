from pydantic import BaseModel, ConfigDict, model_validator
from typing import Optional
from datetime import datetime
from coparent_service.models.expenses import ActorKind, ExpenseStatus


class Actor(BaseModel):
    """Identity behind a status change: a user or the system itself"""
    model_config = ConfigDict(frozen=True)

    kind: ActorKind
    user_id: Optional[str] = None

    @model_validator(mode="after")
    def check_identity(self):
        if self.kind == ActorKind.user and not self.user_id:
            raise ValueError("User actors require a user_id")
        if self.kind == ActorKind.system and self.user_id is not None:
            raise ValueError("System actors carry no user_id")
        return self

    @classmethod
    def user(cls, user_id: str) -> "Actor":
        return cls(kind=ActorKind.user, user_id=user_id)

    @classmethod
    def system(cls) -> "Actor":
        return cls(kind=ActorKind.system)

    @property
    def is_system(self) -> bool:
        return self.kind == ActorKind.system


class AuditTrailEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str
    status: ExpenseStatus
    actor_kind: ActorKind
    user_id: Optional[str] = None
    note: Optional[str] = None
    timestamp: datetime
