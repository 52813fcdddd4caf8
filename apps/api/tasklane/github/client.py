from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from tasklane.config import settings
from tasklane.models import Board
from tasklane.security import decrypt_integration_secret

API_VERSION = "2022-11-28"


def normalize_base_url(base_url: str) -> str:
  b = (base_url or "").strip().rstrip("/")
  if not b:
    b = "https://api.github.com"
  if not (b.startswith("http://") or b.startswith("https://")):
    b = "https://" + b
  return b


def graphql_url(base_url: str) -> str:
  b = normalize_base_url(base_url)
  # GitHub Enterprise serves REST under /api/v3 and GraphQL under /api/graphql.
  if b.endswith("/api/v3"):
    return b[: -len("/v3")] + "/graphql"
  return b + "/graphql"


def split_repo_name(repo_name: str) -> tuple[str, str]:
  owner, sep, repo = (repo_name or "").strip().partition("/")
  if not sep or not owner or not repo or "/" in repo:
    raise ValueError(f"Invalid repository name {repo_name!r}; expected 'owner/name'")
  return owner, repo


class GitHubApiError(RuntimeError):
  def __init__(self, *, status_code: int, message: str, details: dict[str, Any] | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.message = message
    self.details = details or {}

  @property
  def not_found(self) -> bool:
    return self.status_code == 404


class GitHubTransportError(GitHubApiError):
  """No response from GitHub: timeout, connection failure or protocol error."""

  def __init__(self, exc: httpx.HTTPError) -> None:
    super().__init__(status_code=0, message=str(exc) or type(exc).__name__, details={"exception": type(exc).__name__})


class GitHubGraphQLError(GitHubApiError):
  def __init__(self, *, errors: list[dict[str, Any]], data: Any = None, status_code: int = 200) -> None:
    messages = [str(e.get("message") or "").strip() for e in errors if isinstance(e, dict)]
    message = "; ".join([m for m in messages if m]) or "GitHub GraphQL request failed"
    super().__init__(status_code=status_code, message=message, details={"errors": errors})
    self.errors = errors
    self.data = data

  @property
  def is_not_found(self) -> bool:
    return bool(self.errors) and all(isinstance(e, dict) and e.get("type") == "NOT_FOUND" for e in self.errors)

  @property
  def is_scope_error(self) -> bool:
    for e in self.errors:
      if not isinstance(e, dict):
        continue
      if e.get("type") == "INSUFFICIENT_SCOPES":
        return True
      if "read:project" in str(e.get("message") or ""):
        return True
    return False


def _extract_github_error(payload: Any) -> tuple[str, dict[str, Any]]:
  if isinstance(payload, dict):
    msg = str(payload.get("message") or "").strip()
    errs = payload.get("errors")
    parts: list[str] = [msg] if msg else []
    if isinstance(errs, list):
      for e in errs:
        if isinstance(e, dict):
          detail = e.get("message") or e.get("code")
          if detail:
            parts.append(str(detail))
        elif e:
          parts.append(str(e))
    details: dict[str, Any] = {"errors": errs or []}
    if payload.get("documentation_url"):
      details["documentationUrl"] = payload["documentation_url"]
    return "; ".join(parts) or "GitHub request failed", details
  if isinstance(payload, str) and payload.strip():
    return payload.strip()[:500], {}
  return "GitHub request failed", {}


async def _request_json(client: httpx.AsyncClient, method: str, path: str, **kwargs: Any) -> Any:
  try:
    r = await client.request(method, path, **kwargs)
  except httpx.HTTPError as e:
    raise GitHubTransportError(e) from e
  if r.status_code >= 400:
    try:
      payload = r.json()
    except Exception:
      payload = (r.text or "")[:800]
    msg, details = _extract_github_error(payload)
    raise GitHubApiError(status_code=r.status_code, message=msg, details=details)
  if r.status_code == 204 or not r.content:
    return None
  return r.json()


_PROJECT_FIELDS = """
  id
  title
  fields(first: 50) {
    nodes {
      ... on ProjectV2Field {
        id
        name
      }
      ... on ProjectV2SingleSelectField {
        id
        name
        options {
          id
          name
        }
      }
    }
  }
"""

ISSUE_NODE_QUERY = """
query GetIssueNodeId($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    issue(number: $number) {
      id
    }
  }
}
"""

USER_PROJECT_QUERY = (
  """
query GetUserProject($login: String!, $number: Int!) {
  user(login: $login) {
    projectV2(number: $number) {"""
  + _PROJECT_FIELDS
  + """    }
  }
}
"""
)

ORG_PROJECT_QUERY = (
  """
query GetOrgProject($login: String!, $number: Int!) {
  organization(login: $login) {
    projectV2(number: $number) {"""
  + _PROJECT_FIELDS
  + """    }
  }
}
"""
)

PROJECT_ITEMS_QUERY = """
query GetProjectItems($projectId: ID!, $first: Int!, $after: String) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: $first, after: $after) {
        pageInfo {
          hasNextPage
          endCursor
        }
        nodes {
          id
          content {
            ... on Issue {
              id
              number
            }
          }
        }
      }
    }
  }
}
"""

ADD_PROJECT_ITEM_MUTATION = """
mutation AddProjectItem($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: { projectId: $projectId, contentId: $contentId }) {
    item {
      id
    }
  }
}
"""

SET_PROJECT_ITEM_OPTION_MUTATION = """
mutation UpdateProjectItem($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(
    input: { projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: { singleSelectOptionId: $optionId } }
  ) {
    projectV2Item {
      id
    }
  }
}
"""


@dataclass
class GitHubClient:
  token: str
  base_url: str = "https://api.github.com"
  user_agent: str = "Tasklane/1.0"
  timeout: float = 15.0

  def httpx_client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(
      base_url=normalize_base_url(self.base_url),
      timeout=self.timeout,
      headers={
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {self.token}",
        "X-GitHub-Api-Version": API_VERSION,
        "User-Agent": self.user_agent,
      },
    )

  # Issues (REST)

  async def get_issue(self, owner: str, repo: str, number: int) -> dict:
    async with self.httpx_client() as client:
      return await _request_json(client, "GET", f"/repos/{owner}/{repo}/issues/{number}")

  async def list_issues(self, owner: str, repo: str, *, state: str = "all", per_page: int = 100, max_pages: int = 10) -> list[dict]:
    out: list[dict] = []
    async with self.httpx_client() as client:
      for page in range(1, max_pages + 1):
        data = await _request_json(
          client,
          "GET",
          f"/repos/{owner}/{repo}/issues",
          params={"state": state, "per_page": per_page, "page": page},
        )
        if not isinstance(data, list) or not data:
          break
        out.extend([x for x in data if isinstance(x, dict)])
        if len(data) < per_page:
          break
    return out

  async def create_issue(self, owner: str, repo: str, *, title: str, body: str, labels: list[str] | None = None) -> dict:
    payload: dict[str, Any] = {"title": title, "body": body}
    if labels:
      payload["labels"] = labels
    async with self.httpx_client() as client:
      return await _request_json(client, "POST", f"/repos/{owner}/{repo}/issues", json=payload)

  async def update_issue(self, owner: str, repo: str, number: int, *, title: str, body: str, state: str) -> dict:
    async with self.httpx_client() as client:
      return await _request_json(
        client,
        "PATCH",
        f"/repos/{owner}/{repo}/issues/{number}",
        json={"title": title, "body": body, "state": state},
      )

  async def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> list[dict]:
    async with self.httpx_client() as client:
      out = await _request_json(client, "POST", f"/repos/{owner}/{repo}/issues/{number}/labels", json={"labels": labels})
      return out if isinstance(out, list) else []

  async def remove_label(self, owner: str, repo: str, number: int, name: str) -> None:
    async with self.httpx_client() as client:
      await _request_json(client, "DELETE", f"/repos/{owner}/{repo}/issues/{number}/labels/{quote(name, safe='')}")

  async def create_label(self, owner: str, repo: str, name: str, *, color: str) -> dict:
    async with self.httpx_client() as client:
      return await _request_json(client, "POST", f"/repos/{owner}/{repo}/labels", json={"name": name, "color": color})

  async def add_assignees(self, owner: str, repo: str, number: int, assignees: list[str]) -> dict:
    async with self.httpx_client() as client:
      return await _request_json(
        client, "POST", f"/repos/{owner}/{repo}/issues/{number}/assignees", json={"assignees": assignees}
      )

  async def remove_assignees(self, owner: str, repo: str, number: int, assignees: list[str]) -> dict:
    async with self.httpx_client() as client:
      return await _request_json(
        client, "DELETE", f"/repos/{owner}/{repo}/issues/{number}/assignees", json={"assignees": assignees}
      )

  # Projects v2 (GraphQL)

  async def graphql(self, query: str, variables: dict[str, Any]) -> dict:
    try:
      async with self.httpx_client() as client:
        r = await client.post(graphql_url(self.base_url), json={"query": query, "variables": variables})
    except httpx.HTTPError as e:
      raise GitHubTransportError(e) from e
    try:
      payload = r.json()
    except Exception:
      payload = (r.text or "")[:800]
    if r.status_code >= 400:
      msg, details = _extract_github_error(payload)
      raise GitHubApiError(status_code=r.status_code, message=msg, details=details)
    if not isinstance(payload, dict):
      raise GitHubApiError(status_code=r.status_code, message="GitHub GraphQL returned a non-object response")
    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
      raise GitHubGraphQLError(errors=errors, data=payload.get("data"), status_code=r.status_code)
    return payload.get("data") or {}

  async def get_issue_node_id(self, owner: str, repo: str, number: int) -> str | None:
    try:
      data = await self.graphql(ISSUE_NODE_QUERY, {"owner": owner, "repo": repo, "number": number})
    except GitHubGraphQLError as e:
      if e.is_not_found:
        return None
      raise
    issue = ((data.get("repository") or {}).get("issue")) or {}
    node_id = issue.get("id")
    return str(node_id) if node_id else None

  async def get_user_project(self, login: str, number: int) -> dict | None:
    data = await self.graphql(USER_PROJECT_QUERY, {"login": login, "number": number})
    return ((data.get("user") or {}).get("projectV2")) or None

  async def get_org_project(self, login: str, number: int) -> dict | None:
    data = await self.graphql(ORG_PROJECT_QUERY, {"login": login, "number": number})
    return ((data.get("organization") or {}).get("projectV2")) or None

  async def list_project_items(self, project_id: str, *, first: int = 100, after: str | None = None) -> tuple[list[dict], str | None]:
    data = await self.graphql(PROJECT_ITEMS_QUERY, {"projectId": project_id, "first": first, "after": after})
    items = ((data.get("node") or {}).get("items")) or {}
    nodes = [n for n in (items.get("nodes") or []) if isinstance(n, dict)]
    page_info = items.get("pageInfo") or {}
    cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
    return nodes, cursor

  async def add_project_item(self, project_id: str, content_id: str) -> str | None:
    data = await self.graphql(ADD_PROJECT_ITEM_MUTATION, {"projectId": project_id, "contentId": content_id})
    item = ((data.get("addProjectV2ItemById") or {}).get("item")) or {}
    return str(item["id"]) if item.get("id") else None

  async def set_project_item_option(self, project_id: str, item_id: str, field_id: str, option_id: str) -> None:
    await self.graphql(
      SET_PROJECT_ITEM_OPTION_MUTATION,
      {"projectId": project_id, "itemId": item_id, "fieldId": field_id, "optionId": option_id},
    )


def client_for_token(token: str) -> GitHubClient:
  t = (token or "").strip()
  if not t:
    raise ValueError("GitHub token is required")
  return GitHubClient(
    token=t,
    base_url=settings.github_api_url,
    user_agent=settings.github_user_agent,
    timeout=settings.github_timeout_seconds,
  )


def client_for_board(board: Board) -> GitHubClient:
  if not board.github_access_token_encrypted:
    raise ValueError("GitHub access token not configured for this board")
  return client_for_token(decrypt_integration_secret(board.github_access_token_encrypted))


async def github_ping(*, base_url: str, api_token: str) -> dict[str, Any]:
  token = (api_token or "").strip()
  if not token:
    raise ValueError("apiToken is required")
  gh = GitHubClient(token=token, base_url=base_url, user_agent=settings.github_user_agent, timeout=settings.github_timeout_seconds)
  async with gh.httpx_client() as client:
    data = await _request_json(client, "GET", "/user")
  if not isinstance(data, dict):
    return {"ok": True}
  out: dict[str, Any] = {"ok": True}
  if isinstance(data.get("login"), str):
    out["login"] = data["login"]
  if isinstance(data.get("id"), int):
    out["id"] = data["id"]
  if isinstance(data.get("html_url"), str):
    out["url"] = data["html_url"]
  return out
