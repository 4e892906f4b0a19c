"""Linear explorer endpoints used by admins when binding boards."""

from fastapi import APIRouter, Depends, Query

from portal.core.deps import get_issue_gateway, get_workflow_state_cache, require_admin
from portal.schemas.auth import UserSession
from portal.schemas.portal import WorkflowStateRead
from portal.utils.presentation import order_workflow_states

router = APIRouter()


@router.get("/teams")
async def list_teams(
    session: UserSession = Depends(require_admin),
    gateway=Depends(get_issue_gateway),
):
    return await gateway.list_teams()


@router.get("/projects")
async def list_projects(
    team_id: str | None = Query(None),
    session: UserSession = Depends(require_admin),
    gateway=Depends(get_issue_gateway),
):
    return await gateway.list_projects(team_id)


@router.get("/labels")
async def list_labels(
    team_id: str | None = Query(None),
    session: UserSession = Depends(require_admin),
    gateway=Depends(get_issue_gateway),
):
    return await gateway.list_labels(team_id)


@router.get("/workflow-states", response_model=list[WorkflowStateRead])
async def list_workflow_states(
    team_id: str = Query(...),
    session: UserSession = Depends(require_admin),
    state_cache=Depends(get_workflow_state_cache),
):
    states = await state_cache.get(team_id)
    return [WorkflowStateRead.model_validate(s) for s in order_workflow_states(states)]


@router.get("/connection")
async def check_connection(
    session: UserSession = Depends(require_admin),
    gateway=Depends(get_issue_gateway),
):
    """Verify the configured API key by fetching the Linear viewer."""
    viewer = await gateway.viewer()
    return {"connected": True, "viewer": viewer}
