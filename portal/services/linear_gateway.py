"""Linear GraphQL gateway.

Typed async facade over the Linear API used by the caches, the activity
aggregator, comment sync and release snapshots. Every transport failure,
non-200 response, GraphQL error or unexpected payload shape is raised as
UpstreamError; callers decide whether to propagate or drop it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from portal.core.config import settings
from portal.core.errors import ConfigurationError, NotFound, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_STATE_COLOR = "#cbd5f5"
ACTIVITY_COMMENTS_PER_ISSUE = 15
DETAIL_COMMENTS_LIMIT = 100


# =============================================================================
# Types
# =============================================================================


@dataclass(frozen=True)
class IssueFilter:
    """Board scope: one team, optionally narrowed to one project."""

    team_id: str
    project_id: str | None = None

    def to_graphql(self) -> dict[str, Any]:
        value: dict[str, Any] = {"team": {"id": {"eq": self.team_id}}}
        if self.project_id:
            value["project"] = {"id": {"eq": self.project_id}}
        return value


@dataclass(frozen=True)
class PageInfo:
    has_next_page: bool = False
    end_cursor: str | None = None


@dataclass(frozen=True)
class WorkflowState:
    id: str
    name: str
    type: str
    color: str


@dataclass(frozen=True)
class Comment:
    id: str
    body: str
    created_at: str
    user_name: str | None = None


@dataclass(frozen=True)
class IssueSnapshot:
    """Ephemeral projection of a Linear issue. Never persisted."""

    id: str
    identifier: str
    title: str
    description: str | None = None
    due_date: str | None = None
    url: str | None = None
    priority: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    state: WorkflowState | None = None
    assignee_name: str | None = None
    project_name: str | None = None
    team_id: str | None = None
    project_id: str | None = None


@dataclass(frozen=True)
class IssuePage:
    nodes: list[IssueSnapshot] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=PageInfo)


@dataclass(frozen=True)
class ActivityIssue:
    """Issue plus its most recent comments, as polled for the activity feed."""

    id: str
    identifier: str
    title: str
    updated_at: str | None = None
    comments: list[Comment] = field(default_factory=list)


@dataclass(frozen=True)
class ActivityIssuePage:
    nodes: list[ActivityIssue] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=PageInfo)


@dataclass(frozen=True)
class IssueAttachment:
    id: str
    url: str
    created_at: str
    title: str | None = None


@dataclass(frozen=True)
class IssueDetails:
    issue: IssueSnapshot
    comments: list[Comment] = field(default_factory=list)
    attachments: list[IssueAttachment] = field(default_factory=list)


class IssueGateway(Protocol):
    """Operations the portal needs from the issue tracker."""

    async def list_issues(
        self, issue_filter: IssueFilter, *, first: int, after: str | None = None
    ) -> IssuePage: ...

    async def list_activity_issues(
        self, issue_filter: IssueFilter, *, first: int, after: str | None = None
    ) -> ActivityIssuePage: ...

    async def list_workflow_states(self, team_id: str) -> list[WorkflowState]: ...

    async def get_issue(self, issue_id: str) -> IssueDetails | None: ...

    async def get_issue_state(self, issue_id: str) -> WorkflowState | None: ...

    async def list_comments(self, issue_id: str) -> list[Comment]: ...

    async def create_comment(self, issue_id: str, body: str) -> Comment: ...

    async def create_issue(
        self,
        *,
        team_id: str,
        title: str,
        description: str,
        priority: int | None = None,
        due_date: str | None = None,
        project_id: str | None = None,
    ) -> str: ...

    async def list_teams(self) -> list[dict[str, Any]]: ...

    async def list_projects(self, team_id: str | None = None) -> list[dict[str, Any]]: ...

    async def list_labels(self, team_id: str | None = None) -> list[dict[str, Any]]: ...

    async def viewer(self) -> dict[str, Any]: ...


# =============================================================================
# GraphQL documents
# =============================================================================

_ISSUE_FIELDS = """
    id
    identifier
    title
    description
    dueDate
    url
    priority
    updatedAt
    createdAt
    state { id name type color }
    assignee { name }
    project { id name }
    team { id }
"""

ISSUES_QUERY = f"""
  query BoardIssues($filter: IssueFilter, $first: Int!, $after: String) {{
    issues(first: $first, after: $after, filter: $filter) {{
      nodes {{ {_ISSUE_FIELDS} }}
      pageInfo {{ hasNextPage endCursor }}
    }}
  }}
"""

ACTIVITY_QUERY = f"""
  query BoardActivity($filter: IssueFilter, $first: Int!, $after: String) {{
    issues(first: $first, after: $after, filter: $filter, orderBy: updatedAt) {{
      nodes {{
        id
        identifier
        title
        updatedAt
        comments(first: {ACTIVITY_COMMENTS_PER_ISSUE}) {{
          nodes {{ id body createdAt }}
        }}
      }}
      pageInfo {{ hasNextPage endCursor }}
    }}
  }}
"""

WORKFLOW_STATES_QUERY = """
  query WorkflowStates($filter: WorkflowStateFilter) {
    workflowStates(filter: $filter) {
      nodes { id name type color }
    }
  }
"""

ISSUE_DETAILS_QUERY = f"""
  query IssueDetails($id: String!) {{
    issue(id: $id) {{
      {_ISSUE_FIELDS}
      comments(first: {DETAIL_COMMENTS_LIMIT}) {{
        nodes {{ id body createdAt user {{ name }} }}
      }}
      attachments {{
        nodes {{ id title url createdAt }}
      }}
    }}
  }}
"""

ISSUE_STATE_QUERY = """
  query IssueState($id: String!) {
    issue(id: $id) {
      state { id name type color }
    }
  }
"""

ISSUE_COMMENTS_QUERY = f"""
  query IssueComments($id: String!) {{
    issue(id: $id) {{
      comments(first: {DETAIL_COMMENTS_LIMIT}) {{
        nodes {{ id body createdAt user {{ name }} }}
      }}
    }}
  }}
"""

CREATE_COMMENT_MUTATION = """
  mutation CreateComment($input: CommentCreateInput!) {
    commentCreate(input: $input) {
      success
      comment { id body createdAt user { name } }
    }
  }
"""

CREATE_ISSUE_MUTATION = """
  mutation CreateIssue($input: IssueCreateInput!) {
    issueCreate(input: $input) {
      success
      issue { id identifier }
    }
  }
"""

TEAMS_QUERY = """
  query Teams { teams(first: 250) { nodes { id name key } } }
"""

PROJECTS_QUERY = """
  query Projects { projects(first: 250) { nodes { id name state } } }
"""

TEAM_PROJECTS_QUERY = """
  query TeamProjects($id: String!) {
    team(id: $id) { projects(first: 250) { nodes { id name state } } }
  }
"""

LABELS_QUERY = """
  query Labels($filter: IssueLabelFilter) {
    issueLabels(first: 250, filter: $filter) { nodes { id name color } }
  }
"""

VIEWER_QUERY = """
  query Viewer { viewer { id name email } }
"""


# =============================================================================
# Parsing helpers
# =============================================================================


def _parse_state(raw: dict | None) -> WorkflowState | None:
    if not raw:
        return None
    return WorkflowState(
        id=raw["id"],
        name=raw.get("name") or "Unknown",
        type=raw.get("type") or "",
        color=raw.get("color") or DEFAULT_STATE_COLOR,
    )


def _parse_comment(raw: dict) -> Comment:
    user = raw.get("user") or {}
    return Comment(
        id=raw["id"],
        body=raw.get("body") or "",
        created_at=raw["createdAt"],
        user_name=user.get("name"),
    )


def _parse_issue(raw: dict) -> IssueSnapshot:
    return IssueSnapshot(
        id=raw["id"],
        identifier=raw["identifier"],
        title=raw["title"],
        description=raw.get("description"),
        due_date=raw.get("dueDate"),
        url=raw.get("url"),
        priority=raw.get("priority"),
        created_at=raw.get("createdAt"),
        updated_at=raw.get("updatedAt"),
        state=_parse_state(raw.get("state")),
        assignee_name=(raw.get("assignee") or {}).get("name"),
        project_name=(raw.get("project") or {}).get("name"),
        team_id=(raw.get("team") or {}).get("id"),
        project_id=(raw.get("project") or {}).get("id"),
    )


def _parse_page_info(raw: dict | None) -> PageInfo:
    raw = raw or {}
    return PageInfo(
        has_next_page=bool(raw.get("hasNextPage")),
        end_cursor=raw.get("endCursor"),
    )


def _nodes(container: dict | None) -> list[dict]:
    if not container:
        return []
    nodes = container.get("nodes") or []
    if not isinstance(nodes, list):
        raise TypeError("nodes is not a list")
    return nodes


# =============================================================================
# Gateway
# =============================================================================


class LinearGateway:
    """IssueGateway backed by the Linear GraphQL API."""

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = "https://api.linear.app/graphql",
        timeout: float = 15.0,
        file_url_expires_in: int = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._timeout = timeout
        self._file_url_expires_in = file_url_expires_in
        self._transport = transport

    async def _execute(
        self,
        operation: str,
        query: str,
        variables: dict | None = None,
        *,
        issue_lookup: bool = False,
    ) -> dict:
        """POST one GraphQL document and return its ``data``.

        Only issue-keyed lookups turn a "not found" GraphQL error into
        NotFound; for every other call it is an UpstreamError.
        """
        if not self._api_key:
            raise ConfigurationError("LINEAR_API_KEY is not configured")

        headers = {
            "Authorization": self._api_key,
            "Content-Type": "application/json",
            # Signed, temporary URLs for uploads.linear.app
            "public-file-urls-expire-in": str(self._file_url_expires_in),
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self._api_url,
                    json={"query": query, "variables": variables or {}},
                    headers=headers,
                )
        except httpx.TimeoutException as exc:
            logger.warning("Linear %s timed out", operation)
            raise UpstreamError("Linear API timeout") from exc
        except httpx.HTTPError as exc:
            logger.warning("Linear %s transport error: %s", operation, type(exc).__name__)
            raise UpstreamError("Linear API connection failed") from exc

        if resp.status_code != 200:
            logger.warning("Linear %s returned %s", operation, resp.status_code)
            raise UpstreamError(f"Linear API {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError("Linear API returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise UpstreamError("Linear API returned an unexpected payload")

        errors = payload.get("errors") or []
        if errors:
            messages = [str(err.get("message", "")) for err in errors if isinstance(err, dict)]
            not_found = bool(messages) and all("not found" in m.lower() for m in messages)
            if issue_lookup and not_found:
                raise NotFound("Issue not found.")
            logger.warning("Linear %s GraphQL errors: %s", operation, "; ".join(messages)[:300])
            raise UpstreamError(messages[0] if messages else "Linear API error")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise UpstreamError("Linear API response is missing data")
        return data

    async def list_issues(
        self, issue_filter: IssueFilter, *, first: int, after: str | None = None
    ) -> IssuePage:
        data = await self._execute(
            "list_issues",
            ISSUES_QUERY,
            {"filter": issue_filter.to_graphql(), "first": first, "after": after},
        )
        try:
            issues = data.get("issues") or {}
            return IssuePage(
                nodes=[_parse_issue(node) for node in _nodes(issues)],
                page_info=_parse_page_info(issues.get("pageInfo")),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError("Unexpected issue list shape from Linear") from exc

    async def list_activity_issues(
        self, issue_filter: IssueFilter, *, first: int, after: str | None = None
    ) -> ActivityIssuePage:
        data = await self._execute(
            "list_activity_issues",
            ACTIVITY_QUERY,
            {"filter": issue_filter.to_graphql(), "first": first, "after": after},
        )
        try:
            issues = data.get("issues") or {}
            nodes = [
                ActivityIssue(
                    id=node["id"],
                    identifier=node["identifier"],
                    title=node["title"],
                    updated_at=node.get("updatedAt"),
                    comments=[_parse_comment(c) for c in _nodes(node.get("comments"))],
                )
                for node in _nodes(issues)
            ]
            return ActivityIssuePage(
                nodes=nodes, page_info=_parse_page_info(issues.get("pageInfo"))
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError("Unexpected activity shape from Linear") from exc

    async def list_workflow_states(self, team_id: str) -> list[WorkflowState]:
        data = await self._execute(
            "list_workflow_states",
            WORKFLOW_STATES_QUERY,
            {"filter": {"team": {"id": {"eq": team_id}}}},
        )
        try:
            return [_parse_state(node) for node in _nodes(data.get("workflowStates"))]
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError("Unexpected workflow state shape from Linear") from exc

    async def get_issue(self, issue_id: str) -> IssueDetails | None:
        try:
            data = await self._execute(
                "get_issue", ISSUE_DETAILS_QUERY, {"id": issue_id}, issue_lookup=True
            )
        except NotFound:
            return None
        raw = data.get("issue")
        if not raw:
            return None
        try:
            return IssueDetails(
                issue=_parse_issue(raw),
                comments=[_parse_comment(c) for c in _nodes(raw.get("comments"))],
                attachments=[
                    IssueAttachment(
                        id=a["id"],
                        url=a["url"],
                        created_at=a["createdAt"],
                        title=a.get("title"),
                    )
                    for a in _nodes(raw.get("attachments"))
                ],
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError("Unexpected issue shape from Linear") from exc

    async def get_issue_state(self, issue_id: str) -> WorkflowState | None:
        data = await self._execute(
            "get_issue_state", ISSUE_STATE_QUERY, {"id": issue_id}, issue_lookup=True
        )
        raw = data.get("issue")
        if not raw:
            raise NotFound("Issue not found.")
        try:
            return _parse_state(raw.get("state"))
        except (KeyError, TypeError) as exc:
            raise UpstreamError("Unexpected issue state shape from Linear") from exc

    async def list_comments(self, issue_id: str) -> list[Comment]:
        data = await self._execute(
            "list_comments", ISSUE_COMMENTS_QUERY, {"id": issue_id}, issue_lookup=True
        )
        raw = data.get("issue")
        if not raw:
            raise NotFound("Issue not found.")
        try:
            return [_parse_comment(c) for c in _nodes(raw.get("comments"))]
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError("Unexpected comment shape from Linear") from exc

    async def create_comment(self, issue_id: str, body: str) -> Comment:
        data = await self._execute(
            "create_comment",
            CREATE_COMMENT_MUTATION,
            {"input": {"issueId": issue_id, "body": body}},
        )
        result = data.get("commentCreate") or {}
        raw = result.get("comment")
        if not result.get("success") or not raw:
            raise UpstreamError("Failed to create comment.")
        try:
            return _parse_comment(raw)
        except (KeyError, TypeError) as exc:
            raise UpstreamError("Unexpected comment shape from Linear") from exc

    async def create_issue(
        self,
        *,
        team_id: str,
        title: str,
        description: str,
        priority: int | None = None,
        due_date: str | None = None,
        project_id: str | None = None,
    ) -> str:
        issue_input: dict[str, Any] = {
            "teamId": team_id,
            "title": title,
            "description": description,
        }
        if priority is not None:
            issue_input["priority"] = priority
        if due_date:
            issue_input["dueDate"] = due_date
        if project_id:
            issue_input["projectId"] = project_id

        data = await self._execute("create_issue", CREATE_ISSUE_MUTATION, {"input": issue_input})
        result = data.get("issueCreate") or {}
        issue = result.get("issue") or {}
        if not result.get("success") or not issue.get("id"):
            raise UpstreamError("Failed to create issue in Linear.")
        return issue["id"]

    async def list_teams(self) -> list[dict[str, Any]]:
        data = await self._execute("list_teams", TEAMS_QUERY)
        try:
            return [
                {"id": t["id"], "name": t["name"], "key": t.get("key")}
                for t in _nodes(data.get("teams"))
            ]
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError("Unexpected team shape from Linear") from exc

    async def list_projects(self, team_id: str | None = None) -> list[dict[str, Any]]:
        try:
            if team_id:
                data = await self._execute("list_projects", TEAM_PROJECTS_QUERY, {"id": team_id})
                container = (data.get("team") or {}).get("projects")
            else:
                data = await self._execute("list_projects", PROJECTS_QUERY)
                container = data.get("projects")
            return [
                {"id": p["id"], "name": p["name"], "state": p.get("state")}
                for p in _nodes(container)
            ]
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError("Unexpected project shape from Linear") from exc

    async def list_labels(self, team_id: str | None = None) -> list[dict[str, Any]]:
        variables = {"filter": {"team": {"id": {"eq": team_id}}}} if team_id else {}
        data = await self._execute("list_labels", LABELS_QUERY, variables)
        try:
            return [
                {"id": label["id"], "name": label["name"], "color": label.get("color")}
                for label in _nodes(data.get("issueLabels"))
            ]
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError("Unexpected label shape from Linear") from exc

    async def viewer(self) -> dict[str, Any]:
        data = await self._execute("viewer", VIEWER_QUERY)
        viewer = data.get("viewer")
        if not isinstance(viewer, dict) or not viewer:
            raise UpstreamError("Linear viewer not available")
        return {"id": viewer.get("id"), "name": viewer.get("name"), "email": viewer.get("email")}


def build_gateway() -> LinearGateway:
    """Gateway configured from settings."""
    return LinearGateway(
        settings.LINEAR_API_KEY,
        api_url=settings.LINEAR_API_URL,
        timeout=settings.LINEAR_HTTP_TIMEOUT_SECONDS,
        file_url_expires_in=settings.LINEAR_FILE_URL_EXPIRES_IN,
    )
