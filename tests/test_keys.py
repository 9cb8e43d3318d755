"""Tests for project and task key generation."""

import pytest

from flowops.exceptions import Conflict, ValidationFailed
from flowops.models.project import Project
from flowops.services.keys import (
    derive_project_key,
    generate_project_key,
    next_task_key,
    resolve_project_key,
    task_key_prefix,
)
from tests._factory import make_user


class TestDerivation:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("FlowOps Platform", "FLOW"),
            ("my app", "MYAP"),
            ("a-b c!d", "ABCD"),
            ("Go", "GO"),
            ("!!!", "PROJ"),
            ("", "PROJ"),
        ],
    )
    def test_derive_project_key(self, name, expected):
        assert derive_project_key(name) == expected

    def test_task_prefix_keeps_leading_characters(self):
        assert task_key_prefix("Flow Board") == "FLOW"
        assert task_key_prefix("ab") == "AB"
        assert task_key_prefix("   ") == "TASK"


async def _add_project(session, owner, name: str, key: str) -> Project:
    project = Project(name=name, description="x", key=key, owner_id=owner.id)
    session.add(project)
    await session.flush()
    return project


class TestGeneration:
    async def test_suffixes_until_unused(self, session_factory):
        owner = await make_user(session_factory, "Owner")
        async with session_factory() as session:
            await _add_project(session, owner, "Flow", "FLOW")
            await _add_project(session, owner, "Flow again", "FLOW1")
            assert await generate_project_key(session, "Flow third") == "FLOW2"

    async def test_explicit_key_is_validated(self, session_factory):
        owner = await make_user(session_factory, "Owner")
        async with session_factory() as session:
            await _add_project(session, owner, "Customer", "CUST")
            with pytest.raises(Conflict):
                await resolve_project_key(session, "Another", "CUST")
            with pytest.raises(ValidationFailed):
                await resolve_project_key(session, "Another", "cust-1")
            assert await resolve_project_key(session, "Another", "CUST2") == "CUST2"

    async def test_task_keys_are_sequential(self, session_factory):
        owner = await make_user(session_factory, "Owner")
        async with session_factory() as session:
            project = await _add_project(session, owner, "Flow Board", "FLOW")
            assert await next_task_key(session, project) == "FLOW-1"
            assert await next_task_key(session, project) == "FLOW-2"
            assert project.task_sequence == 2
