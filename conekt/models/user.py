# conekt/models/user.py
"""
User model.

Users are owned by the auth provider; the messaging core only reads them to
build participant summaries and to decide therapist/client slots.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, String
import ulid

from ..database import Base
from ..domain.participants import Role


class User(Base):
    """
    Marketplace user, either a client or a therapist.

    Attributes:
        id: ULID primary key (UUIDs from the auth provider also fit)
        name: Display name
        avatar_url: Optional avatar reference
        role: client | therapist
        is_active: Whether the account is active
        created_at: Account creation timestamp
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False, default="")
    avatar_url = Column(String(1024), nullable=True)
    role = Column(
        Enum(Role, name="user_role", values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role})>"
