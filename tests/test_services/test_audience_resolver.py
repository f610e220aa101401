"""
Unit tests for AudienceResolver and UserDirectory

Tests cover:
- Organization / Team / User scope resolution
- Inactive users excluded, duplicates removed, order kept
- Visibility target validation
- Alerts visible to a given user
"""
from datetime import timedelta

import pytest

from alerting.core.exceptions import ValidationError
from alerting.models.alert import AlertStatus, VisibilityType
from alerting.services.audience_resolver import AudienceResolver, is_in_scope
from alerting.services.user_directory import UserDirectory
from tests.conftest import BASE_TIME, make_alert, make_team, make_user


@pytest.fixture
def resolver(db_session):
    return AudienceResolver(db_session)


@pytest.fixture
def org(db_session):
    """Two teams, three active users and one inactive user."""
    platform = make_team(db_session, name="Platform")
    support = make_team(db_session, name="Support")
    alice = make_user(db_session, name="Alice", team_id=platform.id)
    bob = make_user(db_session, name="Bob", team_id=platform.id)
    carol = make_user(db_session, name="Carol", team_id=support.id)
    dave = make_user(db_session, name="Dave", team_id=support.id, is_active=False)
    return {"platform": platform, "support": support, "alice": alice, "bob": bob, "carol": carol, "dave": dave}


class TestResolve:
    """Tests for resolve()."""

    def test_organization_returns_all_active(self, resolver, org):
        ids = {u.id for u in resolver.resolve(VisibilityType.ORGANIZATION, [])}
        assert ids == {org["alice"].id, org["bob"].id, org["carol"].id}

    def test_team_scope(self, resolver, org):
        users = resolver.resolve(VisibilityType.TEAM, [org["platform"].id])
        assert {u.id for u in users} == {org["alice"].id, org["bob"].id}

    def test_team_scope_excludes_inactive(self, resolver, org):
        users = resolver.resolve(VisibilityType.TEAM, [org["support"].id])
        assert [u.id for u in users] == [org["carol"].id]

    def test_user_scope_keeps_target_order_and_dedupes(self, resolver, org):
        targets = [org["carol"].id, org["alice"].id, org["carol"].id]
        users = resolver.resolve(VisibilityType.USER, targets)
        assert [u.id for u in users] == [org["carol"].id, org["alice"].id]

    def test_user_scope_skips_inactive_and_unknown(self, resolver, org):
        users = resolver.resolve(VisibilityType.USER, [org["dave"].id, "missing-user", org["bob"].id])
        assert [u.id for u in users] == [org["bob"].id]

    def test_empty_team_resolves_to_nobody(self, resolver, db_session):
        empty = make_team(db_session, name="Empty")
        assert resolver.resolve(VisibilityType.TEAM, [empty.id]) == []

    def test_accepts_string_scope(self, resolver, org):
        assert len(resolver.resolve("Organization", [])) == 3


class TestValidateVisibilityTargets:
    """Tests for validate_visibility_targets()."""

    def test_organization_stores_no_targets(self, resolver):
        assert resolver.validate_visibility_targets(VisibilityType.ORGANIZATION, ["ignored"]) == []

    def test_team_requires_targets(self, resolver):
        with pytest.raises(ValidationError):
            resolver.validate_visibility_targets(VisibilityType.TEAM, [])

    def test_unknown_team_rejected(self, resolver, org):
        with pytest.raises(ValidationError) as exc_info:
            resolver.validate_visibility_targets(VisibilityType.TEAM, [org["platform"].id, "no-such-team"])
        assert exc_info.value.details["missing_ids"] == ["no-such-team"]

    def test_unknown_user_rejected(self, resolver, org):
        with pytest.raises(ValidationError):
            resolver.validate_visibility_targets(VisibilityType.USER, ["ghost"])

    def test_valid_user_targets_deduped(self, resolver, org):
        ids = [org["alice"].id, org["alice"].id, org["bob"].id]
        assert resolver.validate_visibility_targets(VisibilityType.USER, ids) == [org["alice"].id, org["bob"].id]


class TestAlertsVisibleTo:
    """Tests for alerts_visible_to() and is_in_scope()."""

    def test_scope_filtering(self, resolver, db_session, org):
        org_alert = make_alert(db_session, title="Org wide")
        team_alert = make_alert(
            db_session, title="Platform only",
            visibility_type=VisibilityType.TEAM.value, visibility_target_ids=[org["platform"].id],
        )
        user_alert = make_alert(
            db_session, title="Carol only",
            visibility_type=VisibilityType.USER.value, visibility_target_ids=[org["carol"].id],
        )

        alice_ids = {a.id for a in resolver.alerts_visible_to(org["alice"], BASE_TIME)}
        carol_ids = {a.id for a in resolver.alerts_visible_to(org["carol"], BASE_TIME)}

        assert alice_ids == {org_alert.id, team_alert.id}
        assert carol_ids == {org_alert.id, user_alert.id}

    def test_excludes_not_started_expired_and_archived(self, resolver, db_session, org):
        live = make_alert(db_session)
        make_alert(db_session, start_time=BASE_TIME + timedelta(hours=1))
        make_alert(db_session, expiry_time=BASE_TIME - timedelta(minutes=1))
        make_alert(db_session, status=AlertStatus.ARCHIVED.value, is_active=False)
        make_alert(db_session, is_active=False)

        visible = resolver.alerts_visible_to(org["alice"], BASE_TIME)
        assert [a.id for a in visible] == [live.id]

    def test_team_scope_needs_membership(self, db_session):
        team = make_team(db_session)
        loner = make_user(db_session, team_id=None)
        alert = make_alert(db_session, visibility_type="Team", visibility_target_ids=[team.id])
        assert is_in_scope(alert, loner) is False


class TestUserDirectory:
    """Tests for UserDirectory lookups."""

    def test_missing_ids(self, db_session, org):
        directory = UserDirectory(db_session)
        assert directory.missing_user_ids([org["alice"].id, "x"]) == {"x"}
        assert directory.missing_team_ids([org["support"].id, "y"]) == {"y"}

    def test_get_user_returns_inactive(self, db_session, org):
        directory = UserDirectory(db_session)
        assert directory.get_user(org["dave"].id).is_active is False

    def test_active_users_in_no_teams(self, db_session, org):
        assert UserDirectory(db_session).get_active_users_in_teams([]) == []
