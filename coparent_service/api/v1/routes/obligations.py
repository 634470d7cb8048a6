from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from coparent_service.db.database import get_db
from coparent_service.api.v1.dependencies import get_current_user_id
from coparent_service.models.obligations import ObligationStatus
from coparent_service.services.obligation_service import get_user_obligations, settle_obligation
from coparent_service.schemas.obligation_schema import ObligationOut

router = APIRouter(prefix="/obligations", tags=["obligations"])


@router.get("", response_model=List[ObligationOut])
def list_my_obligations(
    status: Optional[ObligationStatus] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Obligations the current user owes or is owed"""
    return get_user_obligations(db, user_id, status)


@router.patch("/{obligation_id}/settle", response_model=ObligationOut)
def settle_obligation_endpoint(
    obligation_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Mark an obligation as paid"""
    return settle_obligation(db, obligation_id, user_id)
