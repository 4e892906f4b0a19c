"""
Tests for the portal API: boards, tickets, activity, preferences and issues.
"""
import pytest

from portal.core.errors import UpstreamError
from portal.services.linear_gateway import (
    ActivityIssue,
    Comment,
    IssueAttachment,
    IssueDetails,
    WorkflowState,
)

from conftest import make_issue

OPEN = WorkflowState(id="s-wip", name="En progreso", type="started", color="#ff0")
DONE = WorkflowState(id="s-done", name="Resuelto", type="completed", color="#0f0")


def _details(issue_id="issue-1", state=OPEN, team_id="team-1", project_id=None) -> IssueDetails:
    issue = make_issue(1, team_id=team_id, project_id=project_id, state=state)
    return IssueDetails(
        issue=issue,
        comments=[
            Comment(id="c1", body="#sync\nWe are on it", created_at="2026-01-02T10:00:00.000Z"),
            Comment(id="c2", body="internal triage note", created_at="2026-01-02T11:00:00.000Z"),
        ],
        attachments=[
            IssueAttachment(
                id="a1",
                url="https://uploads.linear.app/a1",
                created_at="2026-01-02T09:00:00.000Z",
                title="screenshot.png",
            )
        ],
    )


# =============================================================================
# Auth
# =============================================================================


@pytest.mark.asyncio
async def test_health(client):
    res = await client.get("/health")

    assert res.status_code == 200
    assert res.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_unauthenticated_is_rejected(client, board):
    res = await client.get("/boards")

    assert res.status_code == 401


@pytest.mark.asyncio
async def test_mutation_without_csrf_header_is_rejected(admin_client, board):
    res = await admin_client.post(
        f"/boards/{board.id}/tickets",
        json={"title": "New"},
        headers={"X-Requested-With": ""},
    )

    assert res.status_code == 403


# =============================================================================
# Boards & tickets
# =============================================================================


@pytest.mark.asyncio
async def test_viewer_lists_only_own_boards(viewer_client, board, project_board, other_board):
    res = await viewer_client.get("/boards")

    assert res.status_code == 200
    assert {b["name"] for b in res.json()} == {"Support", "Roadmap"}


@pytest.mark.asyncio
async def test_admin_lists_every_board(admin_client, board, other_board):
    res = await admin_client.get("/boards")

    assert {b["name"] for b in res.json()} == {"Support", "Globex Support"}


@pytest.mark.asyncio
async def test_board_tickets_with_ordered_states(viewer_client, fake_gateway, board):
    fake_gateway.issues = [make_issue(1, priority=1), make_issue(2, priority=0)]

    res = await viewer_client.get(f"/boards/{board.id}/tickets")

    assert res.status_code == 200
    body = res.json()
    assert [t["id"] for t in body["tickets"]] == ["issue-1", "issue-2"]
    assert [t["priority_label"] for t in body["tickets"]] == ["Urgent", "No priority"]
    assert [s["name"] for s in body["states"]] == ["Nuevo", "En progreso", "Resuelto"]
    assert body["page_info"]["has_next_page"] is False


@pytest.mark.asyncio
async def test_board_tickets_cached_until_forced(viewer_client, fake_gateway, board):
    fake_gateway.issues = [make_issue(1)]
    await viewer_client.get(f"/boards/{board.id}/tickets")
    fake_gateway.issues.append(make_issue(2))

    cached = await viewer_client.get(f"/boards/{board.id}/tickets")
    forced = await viewer_client.get(f"/boards/{board.id}/tickets", params={"force": "true"})

    assert len(cached.json()["tickets"]) == 1
    assert len(forced.json()["tickets"]) == 2
    assert fake_gateway.calls["list_issues"] == 2


@pytest.mark.asyncio
async def test_other_account_board_is_forbidden(viewer_client, other_board):
    res = await viewer_client.get(f"/boards/{other_board.id}/tickets")

    assert res.status_code == 403


@pytest.mark.asyncio
async def test_upstream_failure_maps_to_502(viewer_client, fake_gateway, board):
    fake_gateway.fail_with = UpstreamError("Linear API 503")

    res = await viewer_client.get(f"/boards/{board.id}/tickets")

    assert res.status_code == 502


@pytest.mark.asyncio
async def test_admin_creates_ticket_and_refreshes_list(admin_client, fake_gateway, board):
    fake_gateway.issues = [make_issue(1)]
    await admin_client.get(f"/boards/{board.id}/tickets")

    res = await admin_client.post(
        f"/boards/{board.id}/tickets",
        json={"title": "  Printer on fire ", "description": "Help", "priority": 1},
    )

    assert res.status_code == 201
    assert res.json()["id"] == "issue-new-1"
    assert fake_gateway.created_issues[0]["title"] == "Printer on fire"
    tickets = (await admin_client.get(f"/boards/{board.id}/tickets")).json()["tickets"]
    assert len(tickets) == 2


@pytest.mark.asyncio
async def test_project_board_is_read_only(admin_client, fake_gateway, project_board):
    res = await admin_client.post(f"/boards/{project_board.id}/tickets", json={"title": "x"})

    assert res.status_code == 400
    assert "read-only" in res.json()["detail"]
    assert fake_gateway.created_issues == []


@pytest.mark.asyncio
async def test_viewer_cannot_create_ticket(viewer_client, board):
    res = await viewer_client.post(f"/boards/{board.id}/tickets", json={"title": "x"})

    assert res.status_code == 403


# =============================================================================
# Activity
# =============================================================================


def _seed_activity(fake_gateway):
    fake_gateway.activity["team-1"] = [
        ActivityIssue(
            id="issue-1",
            identifier="SUP-1",
            title="Ticket 1",
            updated_at="2026-01-03T10:00:00.000Z",
            comments=[
                Comment(id="c1", body="#sync Update for you", created_at="2026-01-02T10:00:00.000Z"),
                Comment(id="c2", body="not for customers", created_at="2026-01-02T11:00:00.000Z"),
            ],
        )
    ]


@pytest.mark.asyncio
async def test_activity_feed_marks_unread(viewer_client, fake_gateway, board):
    _seed_activity(fake_gateway)

    res = await viewer_client.get(f"/boards/{board.id}/activity")

    assert res.status_code == 200
    body = res.json()
    assert [i["id"] for i in body["items"]] == [
        "issue-1-update-2026-01-03T10:00:00.000Z",
        "c1",
    ]
    assert body["items"][1]["body"] == "Update for you"
    assert body["unread_count"] == 2


@pytest.mark.asyncio
async def test_mark_seen_and_read_all(viewer_client, fake_gateway, board):
    _seed_activity(fake_gateway)

    seen = await viewer_client.post(
        f"/boards/{board.id}/activity/seen", json={"item_ids": ["c1"]}
    )
    assert seen.json()["seen_ids"] == ["c1"]

    feed = (await viewer_client.get(f"/boards/{board.id}/activity")).json()
    assert feed["unread_count"] == 1

    state = await viewer_client.post(
        f"/boards/{board.id}/activity/read-all",
        json={
            "items": [
                {"id": i["id"], "created_at": i["created_at"]} for i in feed["items"]
            ]
        },
    )
    assert state.json()["last_seen_timestamp"] == "2026-01-03T10:00:00.000Z"

    # Watermark now hides everything at or before the newest item
    after = (await viewer_client.get(f"/boards/{board.id}/activity")).json()
    assert after["items"] == []
    assert after["since"] == "2026-01-03T10:00:00.000Z"


@pytest.mark.asyncio
async def test_activity_since_overrides_watermark(viewer_client, fake_gateway, board):
    _seed_activity(fake_gateway)

    res = await viewer_client.get(
        f"/boards/{board.id}/activity", params={"since": "2026-01-02T12:00:00Z"}
    )

    assert [i["type"] for i in res.json()["items"]] == ["update"]


@pytest.mark.asyncio
async def test_activity_rejects_unparseable_since(viewer_client, fake_gateway, board):
    _seed_activity(fake_gateway)

    res = await viewer_client.get(f"/boards/{board.id}/activity", params={"since": "garbage"})

    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid since timestamp"
    assert fake_gateway.calls["list_activity_issues"] == 0


@pytest.mark.asyncio
async def test_seen_state_defaults_empty(viewer_client, board):
    res = await viewer_client.get(f"/boards/{board.id}/activity/seen")

    assert res.json() == {"seen_ids": [], "last_seen_timestamp": None}


# =============================================================================
# Preferences
# =============================================================================


@pytest.mark.asyncio
async def test_preferences_default_and_update(viewer_client, board):
    default = await viewer_client.get(f"/boards/{board.id}/preferences")
    assert default.json() == {"view": "kanban", "sort_rules": []}

    res = await viewer_client.put(
        f"/boards/{board.id}/preferences",
        json={
            "view": "table",
            "sort_rules": [
                {"field": "priority", "direction": "asc"},
                {"field": "priority", "direction": "desc"},
                {"field": "bogus", "direction": "asc"},
                {"field": "createdAt", "direction": "sideways"},
                {"field": "updatedAt", "direction": "desc"},
            ],
        },
    )

    assert res.status_code == 200
    assert res.json() == {
        "view": "table",
        "sort_rules": [
            {"field": "priority", "direction": "asc"},
            {"field": "updatedAt", "direction": "desc"},
        ],
    }


@pytest.mark.asyncio
async def test_preferences_reject_unknown_view(viewer_client, board):
    res = await viewer_client.put(f"/boards/{board.id}/preferences", json={"view": "gallery"})

    assert res.status_code == 400


# =============================================================================
# Issues & comments
# =============================================================================


@pytest.mark.asyncio
async def test_issue_details_only_synced_comments(viewer_client, fake_gateway, board):
    fake_gateway.details["issue-1"] = _details()

    res = await viewer_client.get("/issues/issue-1")

    assert res.status_code == 200
    body = res.json()
    assert body["comments"] == [
        {"id": "c1", "body": "We are on it", "created_at": "2026-01-02T10:00:00.000Z", "user_name": None}
    ]
    assert body["attachments"][0]["title"] == "screenshot.png"
    assert body["comments_allowed"] is True


@pytest.mark.asyncio
async def test_closed_issue_disallows_comments(viewer_client, fake_gateway, board):
    fake_gateway.details["issue-1"] = _details(state=DONE)

    res = await viewer_client.get("/issues/issue-1")

    assert res.json()["comments_allowed"] is False


@pytest.mark.asyncio
async def test_viewer_cannot_open_issue_outside_boards(viewer_client, fake_gateway, board):
    fake_gateway.details["issue-1"] = _details(team_id="team-3")

    res = await viewer_client.get("/issues/issue-1")

    assert res.status_code == 404


@pytest.mark.asyncio
async def test_project_board_scopes_issue_by_project(
    viewer_client, fake_gateway, project_board
):
    fake_gateway.details["issue-1"] = _details(team_id="team-2", project_id="project-9")
    assert (await viewer_client.get("/issues/issue-1")).status_code == 404

    fake_gateway.details["issue-1"] = _details(team_id="team-2", project_id="project-1")
    assert (await viewer_client.get("/issues/issue-1")).status_code == 200


@pytest.mark.asyncio
async def test_missing_issue_is_404(admin_client):
    res = await admin_client.get("/issues/nope")

    assert res.status_code == 404


@pytest.mark.asyncio
async def test_admin_posts_synced_comment(admin_client, fake_gateway):
    fake_gateway.details["issue-1"] = _details()

    res = await admin_client.post("/issues/issue-1/comments", json={"body": "Fixed in 2.3"})

    assert res.status_code == 201
    assert res.json()["body"] == "Fixed in 2.3"
    assert fake_gateway.created_comments == [("issue-1", "#sync\nFixed in 2.3")]


@pytest.mark.asyncio
async def test_comment_on_closed_issue_rejected(admin_client, fake_gateway):
    fake_gateway.details["issue-1"] = _details(state=DONE)

    res = await admin_client.post("/issues/issue-1/comments", json={"body": "One more thing"})

    assert res.status_code == 400
    assert res.json()["detail"] == "Comments are disabled for closed or canceled tickets."
    assert fake_gateway.created_comments == []


@pytest.mark.asyncio
async def test_empty_comment_rejected(admin_client, fake_gateway):
    fake_gateway.details["issue-1"] = _details()

    res = await admin_client.post("/issues/issue-1/comments", json={"body": "   "})

    assert res.status_code == 400


@pytest.mark.asyncio
async def test_viewer_cannot_comment(viewer_client, fake_gateway):
    fake_gateway.details["issue-1"] = _details()

    res = await viewer_client.post("/issues/issue-1/comments", json={"body": "hi"})

    assert res.status_code == 403
