from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasklane.models import Member, User


async def resolve_member(db: AsyncSession, username: str | None, *, organization_id: str) -> Member | None:
  u = (username or "").strip().lower()
  if not u:
    return None
  res = await db.execute(
    select(Member)
    .join(User, User.id == Member.user_id)
    .where(Member.organization_id == organization_id, func.lower(User.github_username) == u)
    .order_by(Member.created_at.asc())
    .limit(1)
  )
  return res.scalar_one_or_none()


async def resolve_username(db: AsyncSession, member: Member | str | None) -> str | None:
  if member is None:
    return None
  user_id = member.user_id if isinstance(member, Member) else None
  if user_id is None:
    m = (await db.execute(select(Member).where(Member.id == member))).scalar_one_or_none()
    if not m:
      return None
    user_id = m.user_id
  username = (await db.execute(select(User.github_username).where(User.id == user_id))).scalar_one_or_none()
  username = (username or "").strip()
  return username or None
