"""SQLAlchemy ORM table models for the portal data layer.

The tabular store holds every business record; only the ownership mapping
(which user may see which space) lives in this database.
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.db.session import Base


class SpaceOwnerRow(Base):
    """One (user, space) ownership pair. Never updated."""

    __tablename__ = "noco_space_owners"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    space_id: Mapped[str] = mapped_column(String(255), primary_key=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
