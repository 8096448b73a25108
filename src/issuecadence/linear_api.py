from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import redact

DEFAULT_API_URL = "https://api.linear.app/graphql"
USER_AGENT = "issuecadence/0.2.0"
HTTP_ERROR_STATUS = 400
PAGE_SIZE = 100

ISSUE_FIELDS = """
    id
    identifier
    title
    description
    updatedAt
    completedAt
    canceledAt
    archivedAt
    snoozedUntilAt
    dueDate
    state { id name }
"""

_NAMED_NODES_QUERY = """
query NamedNodes($first: Int!, $after: String) {
  %(root)s(first: $first, after: $after) {
    nodes { id name }
    pageInfo { hasNextPage endCursor }
  }
}
"""

_STATE_ISSUES_QUERY = """
query StateIssues($id: String!, $first: Int!, $after: String) {
  workflowState(id: $id) {
    issues(first: $first, after: $after) {
      nodes { %(fields)s }
      pageInfo { hasNextPage endCursor }
    }
  }
}
""" % {"fields": ISSUE_FIELDS}

_ALL_ISSUES_QUERY = """
query AllIssues($first: Int!, $after: String) {
  issues(first: $first, after: $after) {
    nodes { %(fields)s }
    pageInfo { hasNextPage endCursor }
  }
}
""" % {"fields": ISSUE_FIELDS}

_SEARCH_ISSUES_QUERY = """
query SearchIssues($text: String!, $first: Int!, $after: String) {
  issues(first: $first, after: $after, filter: { title: { containsIgnoreCase: $text } }) {
    nodes { %(fields)s }
    pageInfo { hasNextPage endCursor }
  }
}
""" % {"fields": ISSUE_FIELDS}

_ISSUE_UPDATE_MUTATION = """
mutation IssueUpdate($id: String!, $input: IssueUpdateInput!) {
  issueUpdate(id: $id, input: $input) {
    success
    issue { %(fields)s }
  }
}
""" % {"fields": ISSUE_FIELDS}

_ISSUE_CREATE_MUTATION = """
mutation IssueCreate($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue { %(fields)s }
  }
}
""" % {"fields": ISSUE_FIELDS}


class LinearAPIError(RuntimeError):
    """Raised when the Linear GraphQL API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(redact(message))
        self.status = status
        self.response_text = response_text


@dataclass
class LinearClient:
    """Blocking GraphQL client for the Linear API.

    Each call maps onto one query or mutation; connection fields are walked
    page by page with Relay cursors. Callers needing async behaviour wrap
    this client (see :class:`issuecadence.tracker.LinearTracker`).
    """

    api_key: str
    api_url: str = DEFAULT_API_URL
    session: requests.Session | None = None
    timeout: float = 30.0
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        # Personal API keys are sent verbatim; OAuth tokens need the Bearer scheme
        auth = self.api_key if self.api_key.startswith("lin_api_") else f"Bearer {self.api_key}"
        self._session.headers.setdefault("Authorization", auth)
        self._session.headers.setdefault("Content-Type", "application/json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- transport ----------------------------------------------------
    def graphql(self, query: str, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        payload = {"query": query, "variables": dict(variables or {})}
        response = self._session.request(
            "POST",
            self.api_url,
            json=payload,
            headers=self._session.headers,
            timeout=self.timeout,
        )
        if response.status_code >= HTTP_ERROR_STATUS:
            raise LinearAPIError(
                f"Linear API request failed with {response.status_code}: {response.text[:200]}",
                status=response.status_code,
                response_text=response.text,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise LinearAPIError(
                "Linear API returned a non-JSON response",
                status=response.status_code,
                response_text=response.text,
            ) from exc
        if not isinstance(body, dict):
            raise LinearAPIError("Linear API returned an unexpected payload", status=response.status_code)
        if body.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in body["errors"]
            )
            raise LinearAPIError(f"GraphQL query failed: {messages}", status=response.status_code)
        data = body.get("data")
        return data if isinstance(data, dict) else {}

    def _paginate(
        self, query: str, path: tuple[str, ...], variables: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {**(variables or {}), "first": PAGE_SIZE, "after": None}
        nodes: list[dict[str, Any]] = []
        while True:
            connection: Any = self.graphql(query, params)
            for key in path:
                connection = connection.get(key) if isinstance(connection, dict) else None
            if not isinstance(connection, dict):
                break
            nodes.extend(n for n in connection.get("nodes") or [] if isinstance(n, dict))
            page = connection.get("pageInfo") or {}
            if not page.get("hasNextPage") or not page.get("endCursor"):
                break
            params["after"] = page["endCursor"]
        return nodes

    # ---- catalogs -----------------------------------------------------
    def _named_nodes(self, root: str) -> list[dict[str, Any]]:
        return self._paginate(_NAMED_NODES_QUERY % {"root": root}, (root,))

    def workflow_states(self) -> list[dict[str, Any]]:
        return self._named_nodes("workflowStates")

    def teams(self) -> list[dict[str, Any]]:
        return self._named_nodes("teams")

    def projects(self) -> list[dict[str, Any]]:
        return self._named_nodes("projects")

    def labels(self) -> list[dict[str, Any]]:
        return self._named_nodes("issueLabels")

    # ---- issues -------------------------------------------------------
    def issues_in_state(self, state_id: str) -> list[dict[str, Any]]:
        return self._paginate(_STATE_ISSUES_QUERY, ("workflowState", "issues"), {"id": state_id})

    def all_issues(self) -> list[dict[str, Any]]:
        return self._paginate(_ALL_ISSUES_QUERY, ("issues",))

    def search_issues(self, text: str) -> list[dict[str, Any]]:
        return self._paginate(_SEARCH_ISSUES_QUERY, ("issues",), {"text": text})

    def update_issue(self, issue_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        data = self.graphql(_ISSUE_UPDATE_MUTATION, {"id": issue_id, "input": dict(payload)})
        result = data.get("issueUpdate")
        return result if isinstance(result, dict) else {"success": False}

    def create_issue(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        data = self.graphql(_ISSUE_CREATE_MUTATION, {"input": dict(payload)})
        result = data.get("issueCreate")
        return result if isinstance(result, dict) else {"success": False}


__all__ = ["LinearAPIError", "LinearClient", "DEFAULT_API_URL"]
