"""
Audience Resolver

Maps an alert's visibility scope to the list of active recipients:

    Organization -> every active user
    Team         -> active users whose team_id is one of the targets
    User         -> active users whose id is one of the targets

Results are deduplicated by user id, keeping first-appearance order.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session as DBSession

from alerting.core.exceptions import ValidationError
from alerting.models.alert import Alert, AlertStatus, VisibilityType
from alerting.models.user import User
from alerting.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)


class AudienceResolver:
    """Resolves visibility scopes against the user directory."""

    def __init__(self, db: DBSession, directory: Optional[UserDirectory] = None):
        self.db = db
        self.directory = directory or UserDirectory(db)

    def resolve(self, visibility_type: VisibilityType, target_ids: Sequence[str]) -> List[User]:
        visibility_type = VisibilityType(visibility_type)
        target_ids = list(target_ids or [])

        if visibility_type == VisibilityType.ORGANIZATION:
            users = self.directory.get_active_users()
        elif visibility_type == VisibilityType.TEAM:
            users = self.directory.get_active_users_in_teams(target_ids)
        else:
            by_id = {u.id: u for u in self.directory.get_users(target_ids)}
            users = [by_id[uid] for uid in target_ids if uid in by_id and by_id[uid].is_active]

        recipients = _dedupe(users)
        logger.debug(
            f"Resolved {len(recipients)} recipients for {visibility_type.value} scope",
            extra={
                "event_type": "audience_resolved",
                "visibility_type": visibility_type.value,
                "target_count": len(target_ids),
                "recipient_count": len(recipients),
            }
        )
        return recipients

    def resolve_for_alert(self, alert: Alert) -> List[User]:
        return self.resolve(alert.visibility_type, alert.target_ids)

    def validate_visibility_targets(self, visibility_type: VisibilityType, target_ids: Sequence[str]) -> List[str]:
        """
        Check that Team/User targets exist.

        Returns:
            The target ids to store (always empty for Organization scope)

        Raises:
            ValidationError: No targets for Team/User scope, or an id that does not resolve
        """
        visibility_type = VisibilityType(visibility_type)
        if visibility_type == VisibilityType.ORGANIZATION:
            return []

        ids = list(dict.fromkeys(target_ids or []))
        if not ids:
            raise ValidationError(
                f"{visibility_type.value} visibility requires at least one target id",
                {"visibility_type": visibility_type.value}
            )

        if visibility_type == VisibilityType.TEAM:
            missing = self.directory.missing_team_ids(ids)
            kind = "team"
        else:
            missing = self.directory.missing_user_ids(ids)
            kind = "user"

        if missing:
            raise ValidationError(
                f"Unknown {kind} id(s) in visibility targets: {', '.join(sorted(missing))}",
                {"visibility_type": visibility_type.value, "missing_ids": sorted(missing)}
            )
        return ids

    def alerts_visible_to(self, user: User, now: datetime) -> List[Alert]:
        """
        Active, started, unexpired alerts whose scope includes the user.

        JSON target lists are matched in Python so the query stays portable
        across SQLAlchemy dialects.
        """
        candidates = (
            self.db.query(Alert)
            .filter(
                Alert.is_active.is_(True),
                Alert.status == AlertStatus.ACTIVE.value,
                Alert.start_time <= now,
                or_(Alert.expiry_time.is_(None), Alert.expiry_time > now),
            )
            .order_by(Alert.created_at.desc())
            .all()
        )
        return [alert for alert in candidates if alert.is_currently_active(now) and is_in_scope(alert, user)]


def is_in_scope(alert: Alert, user: User) -> bool:
    if alert.visibility_type == VisibilityType.ORGANIZATION.value:
        return True
    if alert.visibility_type == VisibilityType.TEAM.value:
        return user.team_id is not None and user.team_id in alert.target_ids
    return user.id in alert.target_ids


def _dedupe(users: Iterable[User]) -> List[User]:
    seen = set()
    result = []
    for user in users:
        if user.id not in seen:
            seen.add(user.id)
            result.append(user)
    return result
