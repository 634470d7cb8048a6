from typing import List, Optional, Iterable
from sqlalchemy.orm import Session
from coparent_service.models.family import ParentChild


def get_child_ids(db: Session, parent_id: str) -> List[str]:
    """Get ids of all children linked to a parent"""
    rows = db.query(ParentChild.child_id).filter(ParentChild.parent_id == parent_id).all()
    return [row.child_id for row in rows]


def get_co_parent_ids(db: Session, user_id: str, child_ids: Optional[Iterable[str]] = None) -> List[str]:
    """
    Get parents who share a child with the user.

    When child_ids is given only those children are considered. Ids come back
    in the order the links were created, without duplicates.
    """
    children = list(child_ids) if child_ids is not None else get_child_ids(db, user_id)
    if not children:
        return []

    rows = db.query(ParentChild.parent_id)\
        .filter(ParentChild.child_id.in_(children), ParentChild.parent_id != user_id)\
        .order_by(ParentChild.created_at.asc(), ParentChild.id.asc())\
        .all()

    co_parents: List[str] = []
    for row in rows:
        if row.parent_id not in co_parents:
            co_parents.append(row.parent_id)
    return co_parents


def get_co_parent_id(db: Session, user_id: str, child_ids: Optional[Iterable[str]] = None) -> Optional[str]:
    """
    The configured co-parent for a user.

    Prefers parents linked to the given children and falls back to any
    parent sharing a child with the user.
    """
    if child_ids:
        co_parents = get_co_parent_ids(db, user_id, child_ids)
        if co_parents:
            return co_parents[0]
    co_parents = get_co_parent_ids(db, user_id)
    return co_parents[0] if co_parents else None
