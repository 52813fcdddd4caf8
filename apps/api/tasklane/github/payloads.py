from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Webhook `issues` actions -> importer operation.
ISSUE_ACTIONS: dict[str, str] = {
  "create": "create",
  "opened": "create",
  "update": "update",
  "edited": "update",
  "closed": "update",
  "reopened": "update",
  "assigned": "update",
  "unassigned": "update",
  "labeled": "update",
  "unlabeled": "update",
}


def issue_operation(action: str | None) -> str | None:
  return ISSUE_ACTIONS.get((action or "").strip().lower())


def _login(v: Any) -> str | None:
  if isinstance(v, dict):
    v = v.get("login")
  if isinstance(v, str) and v.strip():
    return v.strip()
  return None


def _label_name(v: Any) -> str | None:
  if isinstance(v, dict):
    v = v.get("name")
  if isinstance(v, str) and v.strip():
    return v.strip()
  return None


@dataclass(frozen=True)
class IssueSnapshot:
  """One canonical shape for an issue, whatever payload it came from."""

  number: int
  title: str | None
  body: str
  state: str
  labels: tuple[str, ...]
  assignees: tuple[str, ...]
  updated_at: str | None = None
  node_id: str | None = None

  @property
  def assignee(self) -> str | None:
    return self.assignees[0] if self.assignees else None

  @classmethod
  def from_payload(cls, payload: dict[str, Any]) -> "IssueSnapshot":
    if not isinstance(payload, dict):
      raise ValueError("Issue payload must be an object")
    try:
      number = int(payload.get("number"))
    except (TypeError, ValueError):
      raise ValueError("Issue payload is missing a number") from None

    labels = [_label_name(x) for x in (payload.get("labels") or [])]

    # The singular field wins; otherwise keep the plural list in order.
    logins: list[str] = []
    single = _login(payload.get("assignee"))
    if single:
      logins.append(single)
    for a in payload.get("assignees") or []:
      login = _login(a)
      if login and login not in logins:
        logins.append(login)

    title = payload.get("title")
    return cls(
      number=number,
      title=str(title) if title is not None else None,
      body=str(payload.get("body") or ""),
      state=str(payload.get("state") or "open").lower(),
      labels=tuple(x for x in labels if x),
      assignees=tuple(logins),
      updated_at=payload.get("updated_at") or None,
      node_id=payload.get("node_id") or None,
    )


@dataclass(frozen=True)
class RepositoryRef:
  owner: str
  name: str

  @property
  def full_name(self) -> str:
    return f"{self.owner}/{self.name}"

  @classmethod
  def from_payload(cls, payload: dict[str, Any]) -> "RepositoryRef":
    if not isinstance(payload, dict):
      raise ValueError("Repository payload must be an object")
    owner = _login(payload.get("owner"))
    name = payload.get("name")
    if owner and isinstance(name, str) and name.strip():
      return cls(owner=owner, name=name.strip())
    full = payload.get("full_name")
    if isinstance(full, str) and "/" in full:
      o, _, n = full.strip().partition("/")
      if o and n:
        return cls(owner=o, name=n)
    raise ValueError("Repository payload is missing owner/name")

  @classmethod
  def parse(cls, full_name: str) -> "RepositoryRef":
    return cls.from_payload({"full_name": full_name})
