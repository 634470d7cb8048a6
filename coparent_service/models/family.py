import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, Date, ForeignKey
from coparent_service.db.database import Base


class Child(Base):
    __tablename__ = "children"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ParentChild(Base):
    __tablename__ = "parent_children"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    parent_id = Column(String, nullable=False, index=True)  # Reference to user service
    child_id = Column(String, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
