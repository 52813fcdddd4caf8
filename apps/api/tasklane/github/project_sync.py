from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from tasklane.config import settings
from tasklane.github.client import GitHubApiError, GitHubClient, GitHubGraphQLError, split_repo_name
from tasklane.github.labels import reconcile_status_labels
from tasklane.github.mapping import project_option_name
from tasklane.github.results import SyncResult
from tasklane.models import TaskStatus

logger = logging.getLogger(__name__)

STATUS_FIELD_NAME = "Status"


class ProjectNotFoundError(RuntimeError):
  def __init__(self, *, owner: str, project_id: int) -> None:
    super().__init__(
      f"GitHub project #{project_id} was not found for {owner!r} (checked user and organization projects). "
      "Check the board's project number."
    )
    self.owner = owner
    self.project_id = project_id


class ProjectScopeError(RuntimeError):
  def __init__(self, message: str | None = None) -> None:
    super().__init__(
      message
      or "GitHub token is missing the 'read:project' scope. Reconnect GitHub with project access and save the board again."
    )


@dataclass(frozen=True)
class ProjectOption:
  id: str
  name: str


@dataclass(frozen=True)
class ProjectField:
  id: str
  name: str
  options: tuple[ProjectOption, ...] | None = None

  @property
  def is_single_select(self) -> bool:
    return self.options is not None

  @classmethod
  def from_payload(cls, payload: dict[str, Any]) -> ProjectField | None:
    if not isinstance(payload, dict) or not payload.get("id") or not payload.get("name"):
      return None
    raw = payload.get("options")
    if isinstance(raw, dict):
      raw = raw.get("nodes")
    options: tuple[ProjectOption, ...] | None = None
    if isinstance(raw, list):
      options = tuple(
        ProjectOption(id=str(o["id"]), name=str(o["name"]))
        for o in raw
        if isinstance(o, dict) and o.get("id") and isinstance(o.get("name"), str)
      )
    return cls(id=str(payload["id"]), name=str(payload["name"]), options=options)

  def option_for(self, name: str) -> ProjectOption | None:
    for o in self.options or ():
      if o.name == name:
        return o
    key = name.casefold()
    for o in self.options or ():
      if o.name.casefold() == key:
        return o
    return None


@dataclass(frozen=True)
class ProjectBoard:
  id: str
  title: str
  fields: tuple[ProjectField, ...]

  @classmethod
  def from_payload(cls, payload: dict[str, Any]) -> ProjectBoard:
    nodes = ((payload.get("fields") or {}).get("nodes")) or []
    fields = tuple(f for f in (ProjectField.from_payload(n) for n in nodes) if f is not None)
    return cls(id=str(payload["id"]), title=str(payload.get("title") or ""), fields=fields)

  def status_field(self) -> ProjectField | None:
    candidates = [f for f in self.fields if f.is_single_select]
    for f in candidates:
      if f.name == STATUS_FIELD_NAME:
        return f
    for f in candidates:
      if f.name.casefold() == STATUS_FIELD_NAME.casefold():
        return f
    return None


async def resolve_project(client: GitHubClient, owner: str, project_id: int) -> ProjectBoard:
  """User-owned project first, then organization-owned; the first hit wins."""
  for lookup in (client.get_user_project, client.get_org_project):
    try:
      payload = await lookup(owner, project_id)
    except GitHubGraphQLError as e:
      if e.is_scope_error:
        raise ProjectScopeError() from e
      if e.is_not_found:
        continue
      raise
    if payload:
      return ProjectBoard.from_payload(payload)
  raise ProjectNotFoundError(owner=owner, project_id=project_id)


async def find_project_item(client: GitHubClient, project_node_id: str, issue_node_id: str) -> str | None:
  after: str | None = None
  for _ in range(max(1, settings.github_project_items_max_pages)):
    nodes, after = await client.list_project_items(
      project_node_id, first=settings.github_project_items_page_size, after=after
    )
    for n in nodes:
      content = n.get("content") or {}
      if content.get("id") == issue_node_id:
        return str(n["id"])
    if not after:
      return None
  logger.warning(
    "Project %s has more than %s pages of items; issue %s treated as absent",
    project_node_id,
    settings.github_project_items_max_pages,
    issue_node_id,
  )
  return None


async def sync_project_field(
  client: GitHubClient,
  issue_number: int,
  project_id: int,
  status: TaskStatus | str,
  repo_name: str,
) -> SyncResult:
  """Keep the issue's Status field on a GitHub project equal to `status`.

  Adds the issue to the project when it is not an item yet. Raises
  ProjectNotFoundError / ProjectScopeError when the project cannot be read.
  """
  owner, repo = split_repo_name(repo_name)
  option_name = project_option_name(status)

  issue_node_id = await client.get_issue_node_id(owner, repo, issue_number)
  if not issue_node_id:
    logger.info("Issue %s#%s not found; skipping project sync", repo_name, issue_number)
    return SyncResult.skipped(f"Issue #{issue_number} not found")

  project = await resolve_project(client, owner, project_id)
  field = project.status_field()
  result = SyncResult.success()
  if field is None:
    logger.warning("Project %r has no single-select %r field", project.title, STATUS_FIELD_NAME)
    result.note("warn", f"Project {project.title!r} has no {STATUS_FIELD_NAME} field")

  option = field.option_for(option_name) if field else None
  if field is not None and option is None:
    logger.warning("Project %r has no %r option for status %s", project.title, option_name, status)
    result.note("warn", f"No {option_name!r} option on the {field.name} field")

  item_id = await find_project_item(client, project.id, issue_node_id)
  if item_id:
    if field and option:
      await client.set_project_item_option(project.id, item_id, field.id, option.id)
      result.step("projectField", "success")
    else:
      result.step("projectField", "skipped")
    return result

  item_id = await client.add_project_item(project.id, issue_node_id)
  if not item_id:
    return SyncResult.failed(f"Adding issue #{issue_number} to project {project.title!r} returned no item")
  result.step("projectItem", "success", f"added issue #{issue_number} to {project.title!r}")
  if field and option:
    await client.set_project_item_option(project.id, item_id, field.id, option.id)
    result.step("projectField", "success")
  else:
    result.step("projectField", "skipped")

  try:
    await reconcile_status_labels(client, owner, repo, issue_number, status)
    result.step("labels", "success")
  except GitHubApiError as e:
    logger.warning("Label reconciliation after project add failed for %s#%s: %s", repo_name, issue_number, e.message)
    result.step("labels", "failed", e.message)
  return result
