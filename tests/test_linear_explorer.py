"""Tests for the admin Linear explorer endpoints."""

import pytest

from portal.core.errors import UpstreamError


@pytest.mark.asyncio
async def test_explorer_requires_admin(viewer_client):
    res = await viewer_client.get("/linear/teams")

    assert res.status_code == 403


@pytest.mark.asyncio
async def test_list_teams_projects_labels(admin_client):
    teams = await admin_client.get("/linear/teams")
    projects = await admin_client.get("/linear/projects", params={"team_id": "team-1"})
    labels = await admin_client.get("/linear/labels")

    assert teams.json()[0]["key"] == "SUP"
    assert projects.json()[0]["id"] == "project-1"
    assert labels.json()[0]["name"] == "bug"


@pytest.mark.asyncio
async def test_workflow_states_are_ordered_and_cached(admin_client, fake_gateway):
    first = await admin_client.get("/linear/workflow-states", params={"team_id": "team-1"})
    await admin_client.get("/linear/workflow-states", params={"team_id": "team-1"})

    assert [s["name"] for s in first.json()] == ["Nuevo", "En progreso", "Resuelto"]
    assert fake_gateway.calls["list_workflow_states"] == 1


@pytest.mark.asyncio
async def test_connection_check(admin_client, fake_gateway):
    ok = await admin_client.get("/linear/connection")
    assert ok.json() == {
        "connected": True,
        "viewer": {"id": "viewer-1", "name": "Support Bot", "email": "bot@example.com"},
    }

    fake_gateway.fail_with = UpstreamError("Linear API 401")
    failed = await admin_client.get("/linear/connection")
    assert failed.status_code == 502
