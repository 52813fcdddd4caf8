from __future__ import annotations

import logging
from typing import Any, Iterable

from tasklane.config import settings
from tasklane.github.client import GitHubApiError, GitHubClient, GitHubTransportError
from tasklane.github.mapping import is_status_label, status_label
from tasklane.github.payloads import IssueSnapshot
from tasklane.models import TaskStatus

logger = logging.getLogger(__name__)


async def reconcile_status_labels(
  client: GitHubClient,
  owner: str,
  repo: str,
  number: int,
  status: TaskStatus | str,
  *,
  current: Iterable[str] | None = None,
) -> dict[str, Any]:
  """Leave exactly one status label on the issue: the one for `status`.

  Non-status labels are never touched.
  """
  if current is None:
    current = IssueSnapshot.from_payload(await client.get_issue(owner, repo, number)).labels
  current = list(current)
  target = status_label(status)

  removed: list[str] = []
  for name in current:
    if name == target or not is_status_label(name):
      continue
    try:
      await client.remove_label(owner, repo, number, name)
    except GitHubApiError as e:
      if not e.not_found:
        raise
    removed.append(name)

  added = False
  if target not in current:
    try:
      await client.add_labels(owner, repo, number, [target])
    except GitHubApiError as e:
      if isinstance(e, GitHubTransportError):
        raise
      logger.info("Adding label %r to %s/%s#%s failed (%s); creating it", target, owner, repo, number, e.message)
      try:
        await client.create_label(owner, repo, target, color=settings.github_label_color)
      except GitHubApiError as ce:
        # 422: the label already exists.
        if ce.status_code != 422:
          raise
      await client.add_labels(owner, repo, number, [target])
    added = True

  return {"target": target, "removed": removed, "added": added}
