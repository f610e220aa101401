"""User and team lookups used by audience resolution and the API layer"""
from typing import Iterable, List, Optional, Set
from sqlalchemy.orm import Session as DBSession
import logging

from alerting.models.team import Team
from alerting.models.user import User

logger = logging.getLogger(__name__)


class UserDirectory:
    """
    Read-only view over the users and teams tables.

    Inactive users are still returned by get_user(); filtering on is_active is
    the caller's decision.
    """

    def __init__(self, db: DBSession):
        self.db = db

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_users(self, user_ids: Iterable[str]) -> List[User]:
        ids = list(user_ids)
        if not ids:
            return []
        return self.db.query(User).filter(User.id.in_(ids)).all()

    def get_active_users(self) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.is_active.is_(True))
            .order_by(User.created_at, User.id)
            .all()
        )

    def get_active_users_in_teams(self, team_ids: Iterable[str]) -> List[User]:
        ids = list(team_ids)
        if not ids:
            return []
        return (
            self.db.query(User)
            .filter(User.team_id.in_(ids), User.is_active.is_(True))
            .order_by(User.created_at, User.id)
            .all()
        )

    def get_teams(self, team_ids: Iterable[str]) -> List[Team]:
        ids = list(team_ids)
        if not ids:
            return []
        return self.db.query(Team).filter(Team.id.in_(ids)).all()

    def missing_user_ids(self, user_ids: Iterable[str]) -> Set[str]:
        wanted = set(user_ids)
        found = {u.id for u in self.get_users(wanted)}
        return wanted - found

    def missing_team_ids(self, team_ids: Iterable[str]) -> Set[str]:
        wanted = set(team_ids)
        found = {t.id for t in self.get_teams(wanted)}
        return wanted - found
