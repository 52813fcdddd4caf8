from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class SyncOutcome(str, enum.Enum):
  SUCCESS = "success"
  SKIPPED = "skipped"
  FAILED = "failed"


@dataclass
class SyncResult:
  outcome: SyncOutcome
  reason: str | None = None
  steps: dict[str, str] = field(default_factory=dict)
  log: list[dict[str, Any]] = field(default_factory=list)

  @classmethod
  def success(cls, reason: str | None = None) -> "SyncResult":
    return cls(outcome=SyncOutcome.SUCCESS, reason=reason)

  @classmethod
  def skipped(cls, reason: str) -> "SyncResult":
    return cls(outcome=SyncOutcome.SKIPPED, reason=reason)

  @classmethod
  def failed(cls, reason: str) -> "SyncResult":
    return cls(outcome=SyncOutcome.FAILED, reason=reason)

  @property
  def ok(self) -> bool:
    return self.outcome == SyncOutcome.SUCCESS

  def note(self, level: str, msg: str) -> None:
    self.log.append({"level": level, "message": msg})

  def step(self, name: str, status: str, msg: str | None = None) -> None:
    self.steps[name] = status
    if msg:
      self.note("error" if status == "failed" else "warn" if status == "skipped" else "info", f"{name}: {msg}")

  @property
  def failed_steps(self) -> list[str]:
    return [k for k, v in self.steps.items() if v == "failed"]

  def to_dict(self) -> dict[str, Any]:
    return {"outcome": self.outcome.value, "reason": self.reason, "steps": dict(self.steps), "log": list(self.log)}
