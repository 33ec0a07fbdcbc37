# conekt/repositories/user_repository.py
"""
User Repository.

Read-only access to user rows owned by the auth provider.
"""

from typing import Dict, Iterable

from sqlalchemy.orm import Session

from ..models.user import User
from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User lookups."""

    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Load several users in one query, keyed by id."""
        ids = list(set(user_ids))
        if not ids:
            return {}
        users = self._execute_query(self.db.query(User).filter(User.id.in_(ids)))
        return {user.id: user for user in users}
