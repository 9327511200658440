"""Authorization collaborator — decides who may do what to a query."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import StrEnum

from sqlgate.errors import PermissionDeniedError
from sqlgate.models.approval import Approval
from sqlgate.models.query import QueryRecord
from sqlgate.models.user import User

logger = logging.getLogger(__name__)


class Action(StrEnum):
    SUBMIT = "submit"
    APPROVE_TEAM = "approve-team"
    APPROVE_SKIP = "approve-skip"
    EXECUTE = "execute"
    ROLLBACK = "rollback"


ELEVATED_ROLES = frozenset({"skip_manager", "admin"})


class Authorizer(ABC):
    @abstractmethod
    async def is_allowed(self, user: User, action: Action, resource: QueryRecord | Approval) -> bool:
        """Return True when ``user`` may perform ``action`` on ``resource``."""

    async def authorize(self, user: User, action: Action, resource: QueryRecord | Approval) -> None:
        if not await self.is_allowed(user, action, resource):
            logger.warning("Denied %s on %s for %s", action, resource.id, user.id)
            raise PermissionDeniedError(f"User '{user.id}' may not {action} '{resource.id}'")


class RoleAuthorizer(Authorizer):
    """Default rules: submitters own their drafts, approvers their steps."""

    async def is_allowed(self, user: User, action: Action, resource: QueryRecord | Approval) -> bool:
        if action in (Action.APPROVE_TEAM, Action.APPROVE_SKIP):
            return isinstance(resource, Approval) and resource.approver_id == user.id
        if not isinstance(resource, QueryRecord):
            return False
        if action is Action.SUBMIT:
            return resource.submitted_by == user.id
        if action is Action.EXECUTE:
            return resource.submitted_by == user.id or user.role in ELEVATED_ROLES
        if action is Action.ROLLBACK:
            return user.role in ELEVATED_ROLES
        return False
