"""Tests for the authorization policy table."""

from uuid import uuid4

import pytest

from flowops.exceptions import Unauthorized
from flowops.models.user import User
from flowops.services.access_control import POLICY, AccessTarget, authorize, require


def _user(role: str = "member") -> User:
    return User(id=uuid4(), name="Someone", email="someone@example.com", role=role)


class TestAuthorize:
    def test_admin_is_allowed_every_operation(self):
        admin = _user("admin")
        empty = AccessTarget()
        assert all(authorize(admin, op, empty) for op in POLICY)

    def test_owner_and_member_read_project(self):
        owner, member, stranger = _user(), _user(), _user()
        target = AccessTarget(owner_id=owner.id, member_ids=frozenset({member.id}))
        assert authorize(owner, "project.read", target)
        assert authorize(member, "project.read", target)
        assert not authorize(stranger, "project.read", target)

    def test_only_owner_updates_project(self):
        owner, member = _user(), _user()
        target = AccessTarget(owner_id=owner.id, member_ids=frozenset({member.id}))
        assert authorize(owner, "project.update", target)
        assert not authorize(member, "project.update", target)

    def test_task_update_allows_assignee_and_reporter_but_not_plain_member(self):
        owner, assignee, reporter, member = _user(), _user(), _user(), _user()
        target = AccessTarget(
            owner_id=owner.id,
            member_ids=frozenset({assignee.id, reporter.id, member.id}),
            assignee_id=assignee.id,
            reporter_id=reporter.id,
        )
        assert authorize(owner, "task.update", target)
        assert authorize(assignee, "task.update", target)
        assert authorize(reporter, "task.update", target)
        assert not authorize(member, "task.update", target)

    def test_task_delete_is_owner_only(self):
        owner, reporter = _user(), _user()
        target = AccessTarget(owner_id=owner.id, reporter_id=reporter.id)
        assert authorize(owner, "task.delete", target)
        assert not authorize(reporter, "task.delete", target)

    def test_team_lead_manages_team_members(self):
        owner, lead, member = _user(), _user(), _user()
        target = AccessTarget(
            owner_id=owner.id, member_ids=frozenset({lead.id, member.id}), lead_id=lead.id
        )
        assert authorize(lead, "team.manage_members", target)
        assert authorize(lead, "team.update", target)
        assert not authorize(lead, "team.delete", target)
        assert not authorize(member, "team.manage_members", target)

    def test_sprint_manage_needs_project_manager_membership(self):
        owner = _user()
        manager = _user("project_manager")
        outside_manager = _user("project_manager")
        plain = _user()
        target = AccessTarget(owner_id=owner.id, member_ids=frozenset({manager.id, plain.id}))
        assert authorize(owner, "sprint.manage", target)
        assert authorize(manager, "sprint.manage", target)
        assert not authorize(outside_manager, "sprint.manage", target)
        assert not authorize(plain, "sprint.manage", target)

    def test_author_only_rules(self):
        author, other = _user(), _user()
        assert authorize(author, "comment.edit", AccessTarget(author_id=author.id))
        assert not authorize(other, "comment.delete", AccessTarget(author_id=author.id))
        assert authorize(author, "timelog.edit", AccessTarget(user_id=author.id))
        assert not authorize(other, "attachment.delete", AccessTarget(uploader_id=author.id))

    def test_missing_relationship_never_matches(self):
        # a target without an assignee must not match an actor by accident
        actor = _user()
        assert not authorize(actor, "task.update", AccessTarget())

    def test_unknown_operation_is_a_programming_error(self):
        with pytest.raises(ValueError):
            authorize(_user(), "task.teleport", AccessTarget())


class TestRequire:
    def test_raises_with_operation_message(self):
        with pytest.raises(Unauthorized) as exc_info:
            require(_user(), "task.update", AccessTarget(owner_id=uuid4()))
        assert exc_info.value.message == "Not authorized to update this task"
        assert exc_info.value.status_code == 403

    def test_passes_silently_when_allowed(self):
        owner = _user()
        require(owner, "project.delete", AccessTarget(owner_id=owner.id))
