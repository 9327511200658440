"""Approver assignment policies.

Two ways of picking approvers exist in the field: from the submitter's team
(manager and skip-manager) or from whoever holds the approver role. Both are
implemented; ``SQLGATE_APPROVER_POLICY`` picks one.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.config import settings
from sqlgate.errors import ValidationError
from sqlgate.models.user import Team, User

logger = logging.getLogger(__name__)

TEAM_APPROVER_ROLE = "team_manager"
SKIP_APPROVER_ROLE = "skip_manager"


class ApproverAssignment(NamedTuple):
    team_approver_id: str
    skip_approver_id: str


class ApproverPolicy(ABC):
    @abstractmethod
    async def assign(self, db: AsyncSession, submitter: User) -> ApproverAssignment | None:
        """Return both approvers for a submission, or ``None`` if undecidable."""


class TeamHierarchyPolicy(ApproverPolicy):
    """Submitter's team manager, then that team's skip manager."""

    def __init__(self, fallback: ApproverPolicy | None = None):
        self.fallback = fallback

    async def assign(self, db: AsyncSession, submitter: User) -> ApproverAssignment | None:
        team = await db.get(Team, submitter.team_id) if submitter.team_id else None
        if team and team.manager_id and team.skip_manager_id:
            return ApproverAssignment(team.manager_id, team.skip_manager_id)
        if self.fallback is not None:
            logger.info("No team approvers for %s, falling back to role lookup", submitter.id)
            return await self.fallback.assign(db, submitter)
        return None


class RoleLookupPolicy(ApproverPolicy):
    """First user (by username) holding each approver role."""

    async def _first_with_role(self, db: AsyncSession, role: str, exclude: str) -> str | None:
        result = await db.execute(
            select(User.id).where(User.role == role, User.id != exclude).order_by(User.username).limit(1)
        )
        return result.scalar_one_or_none()

    async def assign(self, db: AsyncSession, submitter: User) -> ApproverAssignment | None:
        team_approver = await self._first_with_role(db, TEAM_APPROVER_ROLE, submitter.id)
        skip_approver = await self._first_with_role(db, SKIP_APPROVER_ROLE, submitter.id)
        if team_approver and skip_approver:
            return ApproverAssignment(team_approver, skip_approver)
        return None


def policy_from_settings(name: str | None = None) -> ApproverPolicy:
    name = name or settings.approver_policy
    if name == "team":
        return TeamHierarchyPolicy()
    if name == "role":
        return RoleLookupPolicy()
    if name == "team_then_role":
        return TeamHierarchyPolicy(fallback=RoleLookupPolicy())
    raise ValidationError(f"Unknown approver policy '{name}'")
